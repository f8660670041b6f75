"""
Snapshot store: per-category artifacts under one directory per stage.

Layout::

    <output_root>/
        Pre/services_Pre_20261019_101500.json
        Pre/services_Pre_20261019_101500.csv
        Post/...
        ChangeReport_20261019_113000.txt

The JSON file is the lossless copy read back for comparison. The CSV file
is a flat rendering for spreadsheets and is never read by the tool.
"""

import csv
import datetime
import json
import logging
import shutil
from pathlib import Path
from typing import Sequence

from footprint.errors import SnapshotCorruptError
from footprint.records import RECORD_TYPES, Record, Stage

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def make_timestamp(now: datetime.datetime | None = None) -> str:
    return (now or datetime.datetime.now()).strftime(TIMESTAMP_FORMAT)


class SnapshotStore:

    def __init__(self, output_root: str | Path):
        self.output_root = Path(output_root)

    def __repr__(self):
        return f"<SnapshotStore - {self.output_root}>"

    def stage_dir(self, stage: Stage) -> Path:
        return self.output_root / stage.value

    def artifact_stem(self, category: str, stage: Stage, timestamp: str) -> str:
        return f"{category}_{stage.value}_{timestamp}"

    def report_path(self, timestamp: str) -> Path:
        return self.output_root / f"ChangeReport_{timestamp}.txt"

    # -- write --
    def write(
        self,
        category: str,
        stage: Stage,
        timestamp: str,
        records: Sequence[Record],
    ) -> tuple[Path, Path]:
        """Write the JSON and CSV artifacts for one category.

        Existing files with the same name are truncated.
        """
        record_type = RECORD_TYPES[category]
        directory = self.stage_dir(stage)
        directory.mkdir(parents=True, exist_ok=True)
        stem = self.artifact_stem(category, stage, timestamp)

        json_path = directory / f"{stem}.json"
        payload = {
            "_meta": {
                "category": category,
                "stage": stage.value,
                "timestamp": timestamp,
                "count": len(records),
            },
            "items": [r.to_dict() for r in records],
        }
        json_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

        csv_path = directory / f"{stem}.csv"
        with csv_path.open("w", newline="", encoding="utf-8") as f:
            w = csv.DictWriter(f, fieldnames=record_type.field_names())
            w.writeheader()
            for r in records:
                w.writerow(r.to_row())

        logger.info("Wrote %d %s records to %s", len(records), category, json_path)
        return json_path, csv_path

    # -- read --
    def artifacts(self, category: str, stage: Stage) -> list[Path]:
        directory = self.stage_dir(stage)
        if not directory.is_dir():
            return []
        return sorted(directory.glob(f"{category}_{stage.value}_*.json"))

    def latest(self, category: str, stage: Stage) -> Path | None:
        """Most recently modified structured artifact, or None.

        Equal modification times fall back to the name, whose timestamp
        sorts chronologically.
        """
        candidates = []
        for p in self.artifacts(category, stage):
            try:
                mtime = p.stat().st_mtime
            except OSError as e:
                logger.debug("Ignoring %s: %s", p, e)
                continue
            candidates.append((mtime, p.name, p))
        if not candidates:
            return None
        return max(candidates, key=lambda c: (c[0], c[1]))[2]

    def read_latest(self, category: str, stage: Stage) -> list[Record] | None:
        """Records from the newest artifact for category/stage.

        Returns None when there is no artifact at all. Raises
        SnapshotCorruptError when the newest one cannot be parsed.
        """
        path = self.latest(category, stage)
        if path is None:
            return None
        return self.read(path, category)

    def read(self, path: Path, category: str) -> list[Record]:
        record_type = RECORD_TYPES[category]
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except UnicodeDecodeError as e:
            raise SnapshotCorruptError(path, f"not UTF-8 ({e})") from e
        except json.JSONDecodeError as e:
            raise SnapshotCorruptError(path, f"invalid JSON ({e})") from e
        except OSError as e:
            raise SnapshotCorruptError(path, f"cannot read ({e.strerror or e})") from e

        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            raise SnapshotCorruptError(path, "missing 'items' list")
        meta = data.get("_meta")
        if isinstance(meta, dict) and meta.get("category") not in (None, category):
            raise SnapshotCorruptError(path, f"holds {meta.get('category')!r} records, not {category!r}")

        records = []
        for i, item in enumerate(data["items"]):
            try:
                records.append(record_type.from_dict(item))
            except (TypeError, ValueError) as e:
                raise SnapshotCorruptError(path, f"item {i}: {e}") from e
        return records

    # -- stage management --
    def has_artifacts(self, stage: Stage) -> bool:
        directory = self.stage_dir(stage)
        return directory.is_dir() and any(directory.glob(f"*_{stage.value}_*.json"))

    def clear(self, stage: Stage) -> None:
        directory = self.stage_dir(stage)
        if directory.exists():
            logger.info("Deleting %s", directory)
            shutil.rmtree(directory)

    def clear_all(self) -> None:
        if self.output_root.exists():
            logger.info("Deleting %s", self.output_root)
            shutil.rmtree(self.output_root)
