"""
Change report: one text document with per-category added/removed tables.

Example::

    Change report - compared at 2026-10-19 11:30:00

    ## Added services: 1

    | name | display_name | start_mode | state | path_name |
    |------|--------------|------------|-------|-----------|
    | svcB | Service B | auto | running | C:\\b.exe |

    ## Removed services: 0

    | name | display_name | start_mode | state | path_name |
    |------|--------------|------------|-------|-----------|
"""

import datetime
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

from footprint.differ import Diff
from footprint.records import CATEGORIES, RECORD_TYPES, Record


@dataclass
class Section:
    """Report section for one category.

    Either `diff` is set, or `note` explains why there is nothing to
    compare (category disabled, no baseline, no data).
    """

    category: str
    diff: Diff | None = None
    note: str | None = None


def _cell(value) -> str:
    if isinstance(value, tuple):
        value = "; ".join(str(v) for v in value)
    elif value is None:
        value = ""
    return str(value).replace("|", "/").replace("\r", " ").replace("\n", " ")


def render_table(record_type: type[Record], records: Sequence[Record]) -> list[str]:
    names = record_type.field_names()
    lines = [
        "| " + " | ".join(names) + " |",
        "|" + "|".join("-" * (len(n) + 2) for n in names) + "|",
    ]
    for r in records:
        lines.append("| " + " | ".join(_cell(getattr(r, n)) for n in names) + " |")
    return lines


def build_report(sections: Iterable[Section], compared_at: datetime.datetime) -> str:
    by_category = {s.category: s for s in sections}

    lines: list[str] = []
    w = lines.append

    w(f"Change report - compared at {compared_at.strftime('%Y-%m-%d %H:%M:%S')}")
    w("")

    for category in CATEGORIES:
        section = by_category.get(category)
        if section is None:
            continue
        if section.diff is None:
            w(f"## {category}: {section.note or 'no data'}")
            w("")
            continue

        record_type = RECORD_TYPES[category]
        d = section.diff.sorted()
        for title, records in (("Added", d.added), ("Removed", d.removed)):
            w(f"## {title} {category}: {len(records)}")
            w("")
            lines.extend(render_table(record_type, records))
            w("")

    return "\n".join(lines)


def write_report(text: str, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path
