"""Keyed set difference between two record sequences."""

from dataclasses import dataclass, field
from typing import Callable, Iterable, TypeAlias

from footprint.records import Record, RecordKey

KeyFunc: TypeAlias = Callable[[Record], RecordKey]


def record_key(record: Record) -> RecordKey:
    return record.key


def sort_key(key: RecordKey) -> tuple:
    """Case-insensitive ordering with the exact value as tiebreak."""
    folded = tuple(k.casefold() if isinstance(k, str) else k for k in key)
    return folded, key


@dataclass
class Diff:
    added: list[Record] = field(default_factory=list)
    removed: list[Record] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.added and not self.removed

    def sorted(self, key: KeyFunc = record_key) -> "Diff":
        return Diff(
            added=sorted(self.added, key=lambda r: sort_key(key(r))),
            removed=sorted(self.removed, key=lambda r: sort_key(key(r))),
        )


def _by_key(records: Iterable[Record], key: KeyFunc) -> dict[RecordKey, Record]:
    # Duplicate keys should not happen; if they do, the last one wins.
    return {key(r): r for r in records}


def diff(pre: Iterable[Record], post: Iterable[Record], key: KeyFunc | None = None) -> Diff:
    """Records added in `post` and removed from `pre`, matched by key.

    Records present on both sides are dropped, whatever their other
    fields say.
    """
    key = key or record_key
    pre_map = _by_key(pre, key)
    post_map = _by_key(post, key)
    return Diff(
        added=[r for k, r in post_map.items() if k not in pre_map],
        removed=[r for k, r in pre_map.items() if k not in post_map],
    )
