import json
from pathlib import Path

import pytest

from footprint.config import Config, default_config, expand_path, load_config
from footprint.errors import ConfigError
from footprint.records import CATEGORIES


def write(tmp_path, data):
    path = tmp_path / "footprint.json"
    path.write_text(json.dumps(data) if not isinstance(data, str) else data, encoding="utf-8")
    return path


def test_expand_windows_and_posix_placeholders(monkeypatch):
    monkeypatch.setenv("FP_TEST_DIR", "/opt/apps")
    assert expand_path("%FP_TEST_DIR%/x") == "/opt/apps/x"
    assert expand_path("$FP_TEST_DIR/y") == "/opt/apps/y"
    assert expand_path("%FP_UNSET_VAR%/z") == "%FP_UNSET_VAR%/z"


def test_load_config(tmp_path, monkeypatch):
    monkeypatch.setenv("FP_TEST_DIR", str(tmp_path))
    path = write(tmp_path, {
        "roots": ["%FP_TEST_DIR%/apps", "%FP_UNSET_VAR%/gone"],
        "categories": {"files": False},
        "output_root": "%FP_TEST_DIR%/out",
    })
    config = load_config(path)

    assert config.roots == (tmp_path / "apps",)
    assert not config.is_enabled("files")
    assert config.is_enabled("services")
    assert config.output_root == tmp_path / "out"
    assert config.enabled_categories() == [c for c in CATEGORIES if c != "files"]


def test_output_root_argument_wins(tmp_path):
    path = write(tmp_path, {"output_root": "elsewhere"})
    assert load_config(path, output_root=tmp_path / "o").output_root == tmp_path / "o"


@pytest.mark.parametrize("data", [
    "{not json",
    "[]",
    {"roots": "C:/"},
    {"categories": {"files": "no"}},
    {"categories": {"printers": True}},
])
def test_bad_config_raises(tmp_path, data):
    with pytest.raises(ConfigError):
        load_config(write(tmp_path, data))


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError, match="cannot read"):
        load_config(tmp_path / "nope.json")


def test_config_is_immutable(tmp_path):
    config = Config(roots=[tmp_path], enabled={"files": True}, output_root=str(tmp_path))
    assert isinstance(config.roots, tuple)
    assert isinstance(config.output_root, Path)
    with pytest.raises(TypeError):
        config.enabled["files"] = False


def test_overrides_return_a_new_config(tmp_path):
    base = default_config(tmp_path / "out")
    changed = base.with_overrides(roots=[str(tmp_path)], disabled=["tasks"])

    assert changed is not base
    assert changed.roots == (tmp_path,)
    assert not changed.is_enabled("tasks")
    assert base.is_enabled("tasks")
    with pytest.raises(ConfigError):
        base.with_overrides(disabled=["printers"])


def test_needs_roots():
    assert Config().needs_roots()
    off = Config(enabled={"folders": False, "files": False, "shortcuts": False})
    assert not off.needs_roots()
