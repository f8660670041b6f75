import csv
import json
import os
from pathlib import Path

import pytest

from footprint.errors import SnapshotCorruptError
from footprint.records import FileRecord, ServiceRecord, Stage, TaskRecord
from footprint.store import SnapshotStore, make_timestamp


@pytest.fixture
def store(tmp_path):
    return SnapshotStore(tmp_path / "out")


def test_make_timestamp_is_sortable(clock):
    assert make_timestamp(clock()) == "20261019_100000"


def test_write_names_both_artifacts(store):
    records = [ServiceRecord("svcA", "A", "auto", "running", "a.exe")]
    json_path, csv_path = store.write("services", Stage.PRE, "20261019_100000", records)

    assert json_path.name == "services_Pre_20261019_100000.json"
    assert csv_path.name == "services_Pre_20261019_100000.csv"
    assert json_path.parent == store.output_root / "Pre"


def test_round_trip_is_lossless(store):
    records = [
        TaskRecord("\\", "Backup", "Ready", ("a.exe", "b.exe -x"), "me", "Highest"),
        TaskRecord("\\Vendor\\", "Update", "Disabled", (), "", "Limited"),
    ]
    store.write("tasks", Stage.POST, "20261019_100000", records)
    assert store.read_latest("tasks", Stage.POST) == records


def test_csv_has_one_row_per_record(store):
    records = [
        FileRecord("C:\\a.txt", "2026-10-19 10:00:00", 1),
        FileRecord("C:\\b.txt", "2026-10-19 10:00:01", 2),
    ]
    _, csv_path = store.write("files", Stage.PRE, "20261019_100000", records)
    with csv_path.open(newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert [r["full_name"] for r in rows] == ["C:\\a.txt", "C:\\b.txt"]
    assert rows[1]["length"] == "2"


def test_read_latest_without_artifacts_is_none(store):
    assert store.read_latest("services", Stage.PRE) is None


def test_read_latest_picks_newest_modification_time(store):
    old = [ServiceRecord("old", "", "", "", "")]
    new = [ServiceRecord("new", "", "", "", "")]
    # The name that sorts last is the older file: selection must go by mtime.
    p_new, _ = store.write("services", Stage.PRE, "20260101_000000", new)
    p_old, _ = store.write("services", Stage.PRE, "20261231_000000", old)
    os.utime(p_old, (1_000_000, 1_000_000))
    os.utime(p_new, (2_000_000, 2_000_000))

    assert store.read_latest("services", Stage.PRE) == new


def test_read_latest_ignores_other_categories_and_stages(store):
    store.write("services", Stage.POST, "20261019_100000", [ServiceRecord("x", "", "", "", "")])
    store.write("folders", Stage.PRE, "20261019_100000", [])
    assert store.read_latest("services", Stage.PRE) is None


def test_truncated_artifact_is_corrupt(store):
    path, _ = store.write("services", Stage.PRE, "20261019_100000", [ServiceRecord("a", "", "", "", "")])
    path.write_text(path.read_text(encoding="utf-8")[:20], encoding="utf-8")

    with pytest.raises(SnapshotCorruptError) as exc:
        store.read_latest("services", Stage.PRE)
    assert exc.value.path == path


def test_invalid_record_is_corrupt(store):
    path = store.stage_dir(Stage.PRE) / "services_Pre_20261019_100000.json"
    path.parent.mkdir(parents=True)
    path.write_text('{"items": [{"name": "only"}]}', encoding="utf-8")

    with pytest.raises(SnapshotCorruptError, match="item 0"):
        store.read_latest("services", Stage.PRE)


def test_has_artifacts_needs_directory_and_files(store):
    assert not store.has_artifacts(Stage.PRE)
    store.stage_dir(Stage.PRE).mkdir(parents=True)
    assert not store.has_artifacts(Stage.PRE)
    store.write("folders", Stage.PRE, "20261019_100000", [])
    assert store.has_artifacts(Stage.PRE)
    assert not store.has_artifacts(Stage.POST)


def test_clear_removes_one_stage(store):
    store.write("folders", Stage.PRE, "20261019_100000", [])
    store.write("folders", Stage.POST, "20261019_110000", [])
    store.clear(Stage.POST)
    assert store.has_artifacts(Stage.PRE)
    assert not store.stage_dir(Stage.POST).exists()

    store.clear_all()
    assert not store.output_root.exists()


def test_wrongly_typed_field_is_corrupt(store):
    path = store.stage_dir(Stage.PRE) / "services_Pre_20261019_100000.json"
    path.parent.mkdir(parents=True)
    item = ServiceRecord("a", "", "", "", "").to_dict()
    item["name"] = ["a"]
    path.write_text(json.dumps({"items": [item]}), encoding="utf-8")

    with pytest.raises(SnapshotCorruptError, match="expected a string"):
        store.read_latest("services", Stage.PRE)


def test_unreadable_artifact_is_corrupt(store):
    store.write("services", Stage.PRE, "20261019_100000", [ServiceRecord("a", "", "", "", "")])
    # A directory wearing an artifact name, newer than the real file.
    bogus = store.stage_dir(Stage.PRE) / "services_Pre_29991231_000000.json"
    bogus.mkdir()
    os.utime(bogus, (4_000_000_000, 4_000_000_000))

    assert store.latest("services", Stage.PRE) == bogus
    with pytest.raises(SnapshotCorruptError, match="cannot read") as exc:
        store.read_latest("services", Stage.PRE)
    assert exc.value.path == bogus


def test_latest_skips_artifacts_that_cannot_be_stat(store, monkeypatch):
    p_old, _ = store.write("services", Stage.PRE, "20260101_000000", [])
    p_gone, _ = store.write("services", Stage.PRE, "20261231_000000", [])
    real_stat = Path.stat

    def fake_stat(self, *args, **kwargs):
        if self == p_gone:
            raise FileNotFoundError(2, "No such file", str(self))
        return real_stat(self, *args, **kwargs)

    monkeypatch.setattr(Path, "stat", fake_stat)
    assert store.latest("services", Stage.PRE) == p_old


def test_latest_breaks_mtime_ties_by_name(store):
    p_early, _ = store.write("services", Stage.PRE, "20261019_100000", [ServiceRecord("early", "", "", "", "")])
    p_late, _ = store.write("services", Stage.PRE, "20261019_110000", [ServiceRecord("late", "", "", "", "")])
    os.utime(p_late, (2_000_000, 2_000_000))
    os.utime(p_early, (2_000_000, 2_000_000))

    assert store.latest("services", Stage.PRE) == p_late
