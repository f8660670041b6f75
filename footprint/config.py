"""
Run configuration.

The configuration is built once (from defaults, a JSON file, CLI flags) and
then passed to the orchestrator and every collector. It is never modified
during a run.
"""

import json
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from footprint.errors import ConfigError
from footprint.records import CATEGORIES, FILESYSTEM_CATEGORIES

DEFAULT_OUTPUT_DIR = "footprint-output"

# Locations where installers usually drop folders, files and shortcuts.
DEFAULT_ROOTS = (
    "%ProgramFiles%",
    "%ProgramFiles(x86)%",
    "%ProgramData%",
    "%APPDATA%",
    "%LOCALAPPDATA%",
    "%PUBLIC%\\Desktop",
    "%USERPROFILE%\\Desktop",
)

_WIN_VAR = re.compile(r"%([^%]+)%")


def expand_path(raw: str) -> str:
    """Expand `%VAR%`, `$VAR`/`${VAR}` and `~` placeholders.

    Unknown variables are left as-is, like `os.path.expandvars` does.
    """

    def _sub(m: re.Match) -> str:
        return os.environ.get(m.group(1), m.group(0))

    return os.path.expanduser(os.path.expandvars(_WIN_VAR.sub(_sub, raw)))


def _has_placeholder(path: str) -> bool:
    return bool(_WIN_VAR.search(path)) or "$" in path


@dataclass(frozen=True)
class Config:
    roots: tuple[Path, ...] = ()
    enabled: Mapping[str, bool] = field(default_factory=dict)
    output_root: Path = Path(DEFAULT_OUTPUT_DIR)

    def __post_init__(self):
        # Freeze the enable map so nothing can flip a category mid-run.
        object.__setattr__(self, "roots", tuple(Path(r) for r in self.roots))
        object.__setattr__(self, "enabled", MappingProxyType(dict(self.enabled)))
        object.__setattr__(self, "output_root", Path(self.output_root))

    def is_enabled(self, category: str) -> bool:
        return self.enabled.get(category, True)

    def enabled_categories(self) -> list[str]:
        return [c for c in CATEGORIES if self.is_enabled(c)]

    def needs_roots(self) -> bool:
        return any(self.is_enabled(c) for c in FILESYSTEM_CATEGORIES)

    def with_overrides(
        self,
        *,
        roots: Iterable[str] | None = None,
        disabled: Iterable[str] = (),
        output_root: str | Path | None = None,
    ) -> "Config":
        """Return a copy with CLI overrides applied."""
        changes: dict[str, Any] = {}
        if roots:
            changes["roots"] = tuple(Path(expand_path(r)) for r in roots)
        disabled = list(disabled)
        if disabled:
            _check_categories(disabled)
            enabled = dict(self.enabled)
            enabled.update({c: False for c in disabled})
            changes["enabled"] = enabled
        if output_root is not None:
            changes["output_root"] = Path(output_root)
        return replace(self, **changes) if changes else self


def _check_categories(names: Iterable[str]) -> None:
    unknown = sorted(set(names) - set(CATEGORIES))
    if unknown:
        raise ConfigError(
            f"unknown categories: {', '.join(unknown)} "
            f"(expected one of {', '.join(CATEGORIES)})"
        )


def _expand_roots(raw_roots: Iterable[str]) -> tuple[Path, ...]:
    roots: list[Path] = []
    for raw in raw_roots:
        expanded = expand_path(raw)
        # Placeholder that did not resolve on this machine: drop it.
        if _has_placeholder(expanded):
            continue
        roots.append(Path(expanded))
    return tuple(roots)


def default_config(output_root: str | Path = DEFAULT_OUTPUT_DIR) -> Config:
    return Config(
        roots=_expand_roots(DEFAULT_ROOTS),
        enabled={c: True for c in CATEGORIES},
        output_root=Path(output_root),
    )


def load_config(path: str | Path, output_root: str | Path | None = None) -> Config:
    """Load a JSON config file.

    Expected shape::

        {
            "roots": ["%ProgramFiles%", "~/Desktop"],
            "categories": {"services": true, "files": false},
            "output_root": "D:/footprint"
        }

    Every key is optional. Missing `roots` falls back to the defaults.
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON in config {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"config {path}: top level must be an object")

    raw_roots = raw.get("roots", list(DEFAULT_ROOTS))
    if not isinstance(raw_roots, list) or not all(isinstance(r, str) for r in raw_roots):
        raise ConfigError(f"config {path}: 'roots' must be a list of strings")

    categories = raw.get("categories", {})
    if not isinstance(categories, dict) or not all(isinstance(v, bool) for v in categories.values()):
        raise ConfigError(f"config {path}: 'categories' must map names to true/false")
    _check_categories(categories)

    out = output_root or raw.get("output_root") or DEFAULT_OUTPUT_DIR
    if not isinstance(out, (str, Path)):
        raise ConfigError(f"config {path}: 'output_root' must be a string")

    enabled = {c: True for c in CATEGORIES}
    enabled.update(categories)
    return Config(
        roots=_expand_roots(raw_roots),
        enabled=enabled,
        output_root=Path(expand_path(str(out))),
    )
