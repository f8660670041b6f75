"""
Record types collected and compared per category.

Every record is an immutable value. The key of a record identifies the same
logical entity across two snapshots; it is fixed per record type and must
never change between runs, otherwise Pre and Post snapshots cannot be
matched up.
"""

import dataclasses
import enum
from dataclasses import dataclass
from typing import Any, ClassVar, TypeAlias

RecordKey: TypeAlias = tuple[Any, ...]


class Stage(enum.Enum):
    PRE = "Pre"
    POST = "Post"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Record:
    """Base for all record variants."""

    category: ClassVar[str] = ""
    key_fields: ClassVar[tuple[str, ...]] = ()

    @property
    def key(self) -> RecordKey:
        return tuple(getattr(self, name) for name in self.key_fields)

    @classmethod
    def field_names(cls) -> list[str]:
        return [f.name for f in dataclasses.fields(cls)]

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready mapping; tuple fields become lists."""
        out: dict[str, Any] = {}
        for name in self.field_names():
            value = getattr(self, name)
            out[name] = list(value) if isinstance(value, tuple) else value
        return out

    def to_row(self) -> dict[str, str]:
        """Flat mapping for the tabular artifact; nested values are joined."""
        row: dict[str, str] = {}
        for name in self.field_names():
            value = getattr(self, name)
            if isinstance(value, tuple):
                row[name] = "; ".join(str(v) for v in value)
            elif value is None:
                row[name] = ""
            else:
                row[name] = str(value)
        return row

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Record":
        """Rebuild a record from `to_dict` output.

        Raises ValueError when fields are missing, unknown or of the wrong
        shape.
        """
        if not isinstance(data, dict):
            raise ValueError(f"{cls.__name__}: expected an object, got {type(data).__name__}")
        expected = set(cls.field_names())
        missing = expected - data.keys()
        unknown = data.keys() - expected
        if missing:
            raise ValueError(f"{cls.__name__}: missing fields {sorted(missing)}")
        if unknown:
            raise ValueError(f"{cls.__name__}: unknown fields {sorted(unknown)}")

        kwargs: dict[str, Any] = {}
        for f in dataclasses.fields(cls):
            value = data[f.name]
            if f.type == tuple[str, ...]:
                if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                    raise ValueError(f"{cls.__name__}.{f.name}: expected a list of strings")
                value = tuple(value)
            elif f.type is int:
                if not isinstance(value, int) or isinstance(value, bool):
                    raise ValueError(f"{cls.__name__}.{f.name}: expected an integer")
            elif f.type is str and not isinstance(value, str):
                raise ValueError(f"{cls.__name__}.{f.name}: expected a string, got {type(value).__name__}")
            kwargs[f.name] = value
        return cls(**kwargs)


@dataclass(frozen=True)
class ServiceRecord(Record):
    category: ClassVar[str] = "services"
    key_fields: ClassVar[tuple[str, ...]] = ("name",)

    name: str
    display_name: str
    start_mode: str
    state: str
    path_name: str


@dataclass(frozen=True)
class TaskRecord(Record):
    category: ClassVar[str] = "tasks"
    key_fields: ClassVar[tuple[str, ...]] = ("task_path", "task_name")

    task_path: str
    task_name: str
    state: str
    actions: tuple[str, ...]
    author: str
    run_level: str


@dataclass(frozen=True)
class RunKeyRecord(Record):
    category: ClassVar[str] = "run_keys"
    key_fields: ClassVar[tuple[str, ...]] = ("hive_path", "name")

    hive_path: str
    name: str
    value: str


@dataclass(frozen=True)
class UninstallRecord(Record):
    category: ClassVar[str] = "uninstall_keys"
    key_fields: ClassVar[tuple[str, ...]] = ("hive_path", "subkey_name")

    hive_path: str
    subkey_name: str
    display_name: str
    display_version: str


@dataclass(frozen=True)
class FolderRecord(Record):
    category: ClassVar[str] = "folders"
    key_fields: ClassVar[tuple[str, ...]] = ("full_name",)

    full_name: str


@dataclass(frozen=True)
class FileRecord(Record):
    category: ClassVar[str] = "files"
    key_fields: ClassVar[tuple[str, ...]] = ("full_name",)

    full_name: str
    creation_time: str
    length: int


@dataclass(frozen=True)
class ShortcutRecord(Record):
    category: ClassVar[str] = "shortcuts"
    key_fields: ClassVar[tuple[str, ...]] = ("full_name",)

    full_name: str
    creation_time: str


# Fixed order for collection, comparison and the report.
CATEGORIES: tuple[str, ...] = (
    "services",
    "tasks",
    "run_keys",
    "uninstall_keys",
    "folders",
    "shortcuts",
    "files",
)

FILESYSTEM_CATEGORIES: frozenset[str] = frozenset({"folders", "shortcuts", "files"})

RECORD_TYPES: dict[str, type[Record]] = {
    cls.category: cls
    for cls in (
        ServiceRecord,
        TaskRecord,
        RunKeyRecord,
        UninstallRecord,
        FolderRecord,
        ShortcutRecord,
        FileRecord,
    )
}
