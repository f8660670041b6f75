"""
Collectors: enumerate the current system state for one category.

Every collector is best-effort. A service that vanishes mid-enumeration, a
registry key we may not open, a directory we may not list: each is logged
and skipped, and collection carries on with the siblings.
"""

import collections
import datetime
import json
import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Iterable, Iterator, Mapping, TypeAlias

import psutil

try:
    import winreg
except ImportError:  # not on Windows: every hive reads as absent
    winreg = None

from footprint.config import Config
from footprint.records import (
    FileRecord,
    FolderRecord,
    Record,
    RunKeyRecord,
    ServiceRecord,
    ShortcutRecord,
    TaskRecord,
    UninstallRecord,
)

logger = logging.getLogger(__name__)

SHORTCUT_EXTENSIONS = frozenset({".lnk", ".url"})

RUN_KEY_PATHS = (
    "HKLM\\SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\Run",
    "HKLM\\SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\RunOnce",
    "HKLM\\SOFTWARE\\WOW6432Node\\Microsoft\\Windows\\CurrentVersion\\Run",
    "HKLM\\SOFTWARE\\WOW6432Node\\Microsoft\\Windows\\CurrentVersion\\RunOnce",
    "HKCU\\SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\Run",
    "HKCU\\SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\RunOnce",
)

UNINSTALL_KEY_PATHS = (
    "HKLM\\SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\Uninstall",
    "HKLM\\SOFTWARE\\WOW6432Node\\Microsoft\\Windows\\CurrentVersion\\Uninstall",
    "HKCU\\SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\Uninstall",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def run_ps(command: str, *, timeout: int = 120) -> str | None:
    """Run a PowerShell command and return stdout, or None if it failed."""
    exe = shutil.which("powershell") or shutil.which("pwsh")
    if exe is None:
        logger.warning("PowerShell not found on PATH")
        return None
    try:
        r = subprocess.run(
            [exe, "-NoProfile", "-Command", command],
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning("PowerShell command failed: %s", e)
        return None
    if r.returncode != 0:
        logger.warning("PowerShell exited with %d: %s", r.returncode, r.stderr.strip())
        return None
    return r.stdout.strip()


def ps_json(command: str, *, timeout: int = 120) -> list[dict] | None:
    """Run a PowerShell command that outputs JSON, return parsed list."""
    raw = run_ps(f"{command} | ConvertTo-Json -Compress -Depth 4", timeout=timeout)
    if raw is None:
        return None
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Unparsable PowerShell JSON output: %s", e)
        return None
    # ConvertTo-Json emits a bare object when there is exactly one result
    if isinstance(data, dict):
        return [data]
    return [d for d in data if isinstance(d, dict)]


def format_time(ts: float) -> str:
    return datetime.datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")


def creation_time(st: os.stat_result) -> str:
    """Creation time where the platform records it, ctime otherwise."""
    return format_time(getattr(st, "st_birthtime", st.st_ctime))


def _text(value) -> str:
    if value is None:
        return ""
    # REG_MULTI_SZ values come back as lists
    if isinstance(value, list):
        return "; ".join(str(v) for v in value)
    return str(value)


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------
EntryFilter: TypeAlias = Callable[[os.DirEntry], bool]


def exclude_under(directory: Path) -> EntryFilter:
    """Predicate rejecting `directory` itself and everything below it."""
    excluded = os.path.normcase(os.path.abspath(directory))
    prefix = excluded.rstrip(os.sep) + os.sep

    def predicate(entry: os.DirEntry) -> bool:
        path = os.path.normcase(os.path.abspath(entry.path))
        return path != excluded and not path.startswith(prefix)

    return predicate


def walk(roots: Iterable[Path], predicate: EntryFilter | None = None) -> Iterator[os.DirEntry]:
    """Yield every entry under `roots`, breadth first.

    Hidden and dot entries are included. Symlinks and directory junctions
    are reported but never followed. Entries rejected by `predicate` are
    neither yielded nor descended into. A root or subdirectory that cannot be listed is logged
    and skipped; the rest of the queue still gets processed.
    """
    for root in roots:
        root = Path(root)
        if not root.is_dir():
            logger.warning("Skipping root %s: not an existing directory", root)
            continue

        pending = collections.deque([root])
        while pending:
            current = pending.popleft()
            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as e:
                logger.debug("Cannot list %s: %s", current, e)
                continue

            for entry in entries:
                if predicate is not None and not predicate(entry):
                    continue
                try:
                    descend = entry.is_dir(follow_symlinks=False) and not entry.is_junction()
                except OSError as e:
                    logger.debug("Cannot stat %s: %s", entry.path, e)
                    continue
                if descend:
                    pending.append(Path(entry.path))
                yield entry


def _is_shortcut(entry: os.DirEntry) -> bool:
    return os.path.splitext(entry.name)[1].lower() in SHORTCUT_EXTENSIONS


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
class RegistryReader:
    """Read-only view of a registry.

    Paths are written `HIVE\\sub\\key`. A key that does not exist reads as
    None, which callers treat as "no records here".
    """

    def subkeys(self, path: str) -> list[str] | None:
        raise NotImplementedError()

    def values(self, path: str) -> dict[str, object] | None:
        raise NotImplementedError()


class WinRegistry(RegistryReader):

    HIVES = {
        "HKLM": "HKEY_LOCAL_MACHINE",
        "HKCU": "HKEY_CURRENT_USER",
    }

    def _open(self, path: str):
        if winreg is None:
            return None
        hive_name, _, sub = path.partition("\\")
        hive = getattr(winreg, self.HIVES.get(hive_name, hive_name), None)
        if hive is None:
            logger.warning("Unknown registry hive in %s", path)
            return None
        # Read the 64-bit view explicitly; WOW6432Node paths address the 32-bit one.
        try:
            return winreg.OpenKey(hive, sub, 0, winreg.KEY_READ | winreg.KEY_WOW64_64KEY)
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.debug("Cannot open %s: %s", path, e)
            return None

    def subkeys(self, path: str) -> list[str] | None:
        key = self._open(path)
        if key is None:
            return None
        names = []
        with key:
            i = 0
            while True:
                try:
                    names.append(winreg.EnumKey(key, i))
                except OSError:
                    break
                i += 1
        return names

    def values(self, path: str) -> dict[str, object] | None:
        key = self._open(path)
        if key is None:
            return None
        out = {}
        with key:
            i = 0
            while True:
                try:
                    name, value, _ = winreg.EnumValue(key, i)
                except OSError:
                    break
                out[name] = value
                i += 1
        return out


# ---------------------------------------------------------------------------
# Collectors
# ---------------------------------------------------------------------------
class Collector:
    category = ""

    def __repr__(self):
        return f"<Collector - {self.category}>"

    def begin_run(self) -> None:
        """Called once per run before any category is collected."""

    def collect(self, config: Config) -> list[Record]:
        raise NotImplementedError()


class ServiceCollector(Collector):
    category = "services"

    def collect(self, config: Config) -> list[Record]:
        if not psutil.WINDOWS:
            logger.warning("Service enumeration is only supported on Windows")
            return []

        records = []
        for svc in psutil.win_service_iter():
            try:
                info = svc.as_dict()
            except psutil.Error as e:
                logger.debug("Skipping service %s: %s", svc.name(), e)
                continue
            records.append(
                ServiceRecord(
                    name=_text(info.get("name")),
                    display_name=_text(info.get("display_name")),
                    start_mode=_text(info.get("start_type")),
                    state=_text(info.get("status")),
                    path_name=_text(info.get("binpath")),
                )
            )
        return records


class TaskCollector(Collector):
    category = "tasks"

    COMMAND = (
        "Get-ScheduledTask -ErrorAction SilentlyContinue | "
        "Select-Object TaskPath, TaskName, Author, "
        "@{n='State';e={$_.State.ToString()}}, "
        "@{n='RunLevel';e={$_.Principal.RunLevel.ToString()}}, "
        "@{n='Actions';e={@($_.Actions | ForEach-Object { "
        "(($_.Execute, $_.Arguments) -join ' ').Trim() })}}"
    )

    def collect(self, config: Config) -> list[Record]:
        items = ps_json(self.COMMAND)
        if items is None:
            logger.warning("Scheduled tasks not available")
            return []

        records = []
        for item in items:
            name = item.get("TaskName")
            if not name:
                logger.debug("Skipping task without a name: %r", item)
                continue
            actions = item.get("Actions") or []
            if isinstance(actions, str):
                actions = [actions]
            records.append(
                TaskRecord(
                    task_path=_text(item.get("TaskPath")),
                    task_name=_text(name),
                    state=_text(item.get("State")),
                    actions=tuple(_text(a) for a in actions if a),
                    author=_text(item.get("Author")),
                    run_level=_text(item.get("RunLevel")),
                )
            )
        return records


class RegistryCollector(Collector):
    hive_paths: tuple[str, ...] = ()

    def __init__(self, registry: RegistryReader | None = None):
        self.registry = registry or WinRegistry()


class RunKeyCollector(RegistryCollector):
    category = "run_keys"
    hive_paths = RUN_KEY_PATHS

    def collect(self, config: Config) -> list[Record]:
        records = []
        for hive_path in self.hive_paths:
            values = self.registry.values(hive_path)
            if values is None:
                logger.debug("No key at %s", hive_path)
                continue
            for name, value in sorted(values.items()):
                records.append(RunKeyRecord(hive_path=hive_path, name=name, value=_text(value)))
        return records


class UninstallCollector(RegistryCollector):
    category = "uninstall_keys"
    hive_paths = UNINSTALL_KEY_PATHS

    def collect(self, config: Config) -> list[Record]:
        records = []
        for hive_path in self.hive_paths:
            subkeys = self.registry.subkeys(hive_path)
            if subkeys is None:
                logger.debug("No key at %s", hive_path)
                continue
            for sub in subkeys:
                values = self.registry.values(f"{hive_path}\\{sub}")
                if values is None:
                    logger.debug("Cannot read %s\\%s", hive_path, sub)
                    continue
                records.append(
                    UninstallRecord(
                        hive_path=hive_path,
                        subkey_name=sub,
                        display_name=_text(values.get("DisplayName")),
                        display_version=_text(values.get("DisplayVersion")),
                    )
                )
        return records


class FilesystemScan:
    """One traversal of the roots, shared by the filesystem collectors.

    The entries are listed on first use and kept until `reset`, so folders,
    shortcuts and files come from the same walk within a run.
    """

    def __init__(self):
        self._source = None
        self._entries: list[os.DirEntry] = []

    def reset(self) -> None:
        self._source = None
        self._entries = []

    def entries(self, config: Config) -> list[os.DirEntry]:
        source = (config.roots, config.output_root)
        if self._source != source:
            self._entries = list(walk(config.roots, exclude_under(config.output_root)))
            self._source = source
        return self._entries


class FilesystemCollector(Collector):
    """Shared traversal for folders, shortcuts and files.

    Without an entry filter the collector reads from `scan`, which may be
    shared with its siblings. With one it walks on its own, combining the
    filter with the exclusion of the tool's own output directory.
    """

    def __init__(self, entry_filter: EntryFilter | None = None, scan: FilesystemScan | None = None):
        self.entry_filter = entry_filter
        self.scan = scan or FilesystemScan()

    def begin_run(self) -> None:
        self.scan.reset()

    def predicate(self, config: Config) -> EntryFilter:
        exclude_output = exclude_under(config.output_root)
        extra = self.entry_filter
        if extra is None:
            return exclude_output
        return lambda entry: exclude_output(entry) and extra(entry)

    def entries(self, config: Config) -> Iterable[os.DirEntry]:
        if self.entry_filter is None:
            return self.scan.entries(config)
        return walk(config.roots, self.predicate(config))

    def collect(self, config: Config) -> list[Record]:
        records = []
        for entry in self.entries(config):
            try:
                record = self.make_record(entry)
            except OSError as e:
                logger.debug("Skipping %s: %s", entry.path, e)
                continue
            if record is not None:
                records.append(record)
        return records

    def make_record(self, entry: os.DirEntry) -> Record | None:
        raise NotImplementedError()


class FolderCollector(FilesystemCollector):
    category = "folders"

    def make_record(self, entry: os.DirEntry) -> Record | None:
        if not entry.is_dir(follow_symlinks=False):
            return None
        return FolderRecord(full_name=entry.path)


class ShortcutCollector(FilesystemCollector):
    category = "shortcuts"

    def make_record(self, entry: os.DirEntry) -> Record | None:
        if entry.is_dir(follow_symlinks=False) or not _is_shortcut(entry):
            return None
        st = entry.stat(follow_symlinks=False)
        return ShortcutRecord(full_name=entry.path, creation_time=creation_time(st))


class FileCollector(FilesystemCollector):
    category = "files"

    def make_record(self, entry: os.DirEntry) -> Record | None:
        if entry.is_dir(follow_symlinks=False) or _is_shortcut(entry):
            return None
        st = entry.stat(follow_symlinks=False)
        return FileRecord(
            full_name=entry.path,
            creation_time=creation_time(st),
            length=st.st_size,
        )


def default_collectors(registry: RegistryReader | None = None) -> dict[str, Collector]:
    registry = registry or WinRegistry()
    scan = FilesystemScan()
    return {
        c.category: c
        for c in (
            ServiceCollector(),
            TaskCollector(),
            RunKeyCollector(registry),
            UninstallCollector(registry),
            FolderCollector(scan=scan),
            ShortcutCollector(scan=scan),
            FileCollector(scan=scan),
        )
    }


def collect(
    category: str,
    config: Config,
    collectors: Mapping[str, Collector] | None = None,
) -> list[Record]:
    """Collect one category with the given (or stock) collectors."""
    collectors = collectors if collectors is not None else default_collectors()
    try:
        collector = collectors[category]
    except KeyError:
        raise ValueError(f"no collector for category {category!r}") from None
    if not config.is_enabled(category):
        return []
    return collector.collect(config)
