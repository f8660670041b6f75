"""
Snapshot orchestrator: runs collectors into the store and, on a Post run,
compares against the Pre baseline and writes the change report.

A run moves IDLE -> PREPARING -> COLLECTING -> (Post) COMPARING ->
REPORTING -> IDLE. The only points where a run can be abandoned are the
prompts asked before any collection starts.
"""

import datetime
import enum
import logging
import os
import subprocess
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping

from footprint.collectors import Collector, default_collectors
from footprint.config import Config
from footprint.differ import diff
from footprint.errors import OrchestratorBusyError, PreconditionError, SnapshotCorruptError
from footprint.records import CATEGORIES, Stage
from footprint.report import Section, build_report, write_report
from footprint.store import SnapshotStore, make_timestamp

logger = logging.getLogger(__name__)


class RunState(enum.Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    COLLECTING = "collecting"
    COMPARING = "comparing"
    REPORTING = "reporting"


class RunStatus(enum.Enum):
    SUCCESS = "success"
    CANCELLED = "cancelled"
    PRECONDITION_FAILED = "precondition_failed"
    ERROR = "error"


class ExistingPost(enum.Enum):
    RECREATE = "recreate"
    REUSE = "reuse"
    CANCEL = "cancel"


@dataclass
class RunResult:
    stage: Stage
    status: RunStatus
    elapsed: float = 0.0
    message: str = ""
    report_path: Path | None = None
    counts: dict[str, int] = field(default_factory=dict)
    sections: list[Section] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.SUCCESS


class Prompter:
    """User confirmation gates."""

    def confirm_delete(self, path: Path) -> bool:
        raise NotImplementedError()

    def choose_existing_post(self, path: Path) -> ExistingPost:
        raise NotImplementedError()

    def confirm_open(self, path: Path) -> bool:
        raise NotImplementedError()


class AutoPrompter(Prompter):
    """Answers every prompt with a fixed value."""

    def __init__(
        self,
        delete: bool = False,
        existing_post: ExistingPost = ExistingPost.CANCEL,
        open_report: bool = False,
    ):
        self.delete = delete
        self.existing_post = existing_post
        self.open_report = open_report

    def confirm_delete(self, path: Path) -> bool:
        return self.delete

    def choose_existing_post(self, path: Path) -> ExistingPost:
        return self.existing_post

    def confirm_open(self, path: Path) -> bool:
        return self.open_report


def open_path(path: Path) -> None:
    """Open a file with the platform's default application."""
    if hasattr(os, "startfile"):
        os.startfile(path)
    elif sys.platform == "darwin":
        subprocess.run(["open", str(path)], check=False)
    else:
        subprocess.run(["xdg-open", str(path)], check=False)


class _Cancelled(Exception):
    pass


class Orchestrator:

    def __init__(
        self,
        config: Config,
        collectors: Mapping[str, Collector] | None = None,
        prompter: Prompter | None = None,
        *,
        status: Callable[[str], None] = print,
        clock: Callable[[], datetime.datetime] = datetime.datetime.now,
        opener: Callable[[Path], None] = open_path,
    ):
        self.config = config
        self.collectors = collectors if collectors is not None else default_collectors()
        self.prompter = prompter or AutoPrompter()
        self.store = SnapshotStore(config.output_root)
        self.status = status
        self.clock = clock
        self.opener = opener
        self.state = RunState.IDLE

    def __repr__(self):
        return f"<Orchestrator - {self.state.value}>"

    # -- public entry points --
    def run(self, stage: Stage) -> RunResult:
        body = self._pre if stage is Stage.PRE else self._post
        if self.state is not RunState.IDLE:
            raise OrchestratorBusyError(f"a run is already {self.state.value}")
        self.state = RunState.PREPARING

        result = RunResult(stage=stage, status=RunStatus.SUCCESS)
        started = time.perf_counter()
        try:
            body(result)
            result.message = f"{stage} run finished"
        except _Cancelled as e:
            result.status = RunStatus.CANCELLED
            result.message = str(e)
        except PreconditionError as e:
            result.status = RunStatus.PRECONDITION_FAILED
            result.message = str(e)
        except Exception as e:
            logger.exception("%s run failed", stage)
            result.status = RunStatus.ERROR
            result.message = f"{stage} run failed: {e}"
        finally:
            self.state = RunState.IDLE
            result.elapsed = time.perf_counter() - started

        tag = {
            RunStatus.SUCCESS: "OK",
            RunStatus.CANCELLED: "CANCELLED",
            RunStatus.PRECONDITION_FAILED: "ABORTED",
            RunStatus.ERROR: "ERROR",
        }[result.status]
        self.status(f"[{tag}] {result.message} ({result.elapsed:.1f}s)")
        return result

    def run_pre(self) -> RunResult:
        return self.run(Stage.PRE)

    def run_post(self) -> RunResult:
        return self.run(Stage.POST)

    # -- stages --
    def _pre(self, result: RunResult) -> None:
        self._check_roots()
        root = self.config.output_root
        if root.exists():
            if not self.prompter.confirm_delete(root):
                raise _Cancelled(f"{root} already exists; left untouched")
            self.store.clear_all()

        timestamp = make_timestamp(self.clock())
        result.counts = self._collect(Stage.PRE, timestamp)

    def _post(self, result: RunResult) -> None:
        if not self.store.has_artifacts(Stage.PRE):
            raise PreconditionError(
                f"no Pre snapshot found under {self.store.stage_dir(Stage.PRE)}; run Pre first"
            )

        collect = True
        if self.store.has_artifacts(Stage.POST):
            choice = self.prompter.choose_existing_post(self.store.stage_dir(Stage.POST))
            if choice is ExistingPost.CANCEL:
                raise _Cancelled("existing Post snapshot left untouched")
            collect = choice is ExistingPost.RECREATE

        now = self.clock()
        timestamp = make_timestamp(now)
        if collect:
            self._check_roots()
            self.store.clear(Stage.POST)
            result.counts = self._collect(Stage.POST, timestamp)
        else:
            self.status("  [SKIP] Reusing existing Post snapshot")

        result.sections = self._compare()
        result.report_path = self._report(result.sections)

    # -- steps --
    def _check_roots(self) -> None:
        if self.config.needs_roots() and not self.config.roots:
            raise PreconditionError("no paths selected to scan")

    def _collect(self, stage: Stage, timestamp: str) -> dict[str, int]:
        self.state = RunState.COLLECTING
        counts: dict[str, int] = {}
        for collector in self.collectors.values():
            collector.begin_run()
        for category in CATEGORIES:
            if not self.config.is_enabled(category):
                self.status(f"  [SKIP] {category}: disabled")
                continue
            collector = self.collectors.get(category)
            if collector is None:
                logger.warning("No collector registered for %s", category)
                self.status(f"  [WARN] {category}: no collector")
                continue

            self.status(f"  Collecting {category}...")
            try:
                records = collector.collect(self.config)
            except Exception as e:
                logger.exception("Collecting %s failed", category)
                self.status(f"  [ERROR] {category}: {e}")
                continue

            try:
                self.store.write(category, stage, timestamp, records)
            except OSError as e:
                logger.error("Writing %s snapshot failed: %s", category, e)
                self.status(f"  [ERROR] {category}: cannot write snapshot ({e})")
                continue

            counts[category] = len(records)
            self.status(f"  [OK] {category}: {len(records):,} records")
        return counts

    def _read(self, category: str, stage: Stage):
        try:
            return self.store.read_latest(category, stage), None
        except SnapshotCorruptError as e:
            logger.warning("Unreadable %s artifact: %s", stage, e)
            self.status(f"  [WARN] {category}: unreadable {stage} artifact {e.path.name}")
            return None, f"unreadable {stage} artifact {e.path.name}"

    def _compare(self) -> list[Section]:
        self.state = RunState.COMPARING
        sections = []
        for category in CATEGORIES:
            if not self.config.is_enabled(category):
                sections.append(Section(category, note="skipped (disabled)"))
                continue

            pre, problem = self._read(category, Stage.PRE)
            if pre is None:
                sections.append(Section(category, note=f"no baseline ({problem})" if problem else "no baseline"))
                continue
            post, problem = self._read(category, Stage.POST)
            if post is None:
                sections.append(Section(category, note=f"no data ({problem})" if problem else "no data"))
                continue

            d = diff(pre, post)
            self.status(f"  [OK] {category}: +{len(d.added)} / -{len(d.removed)}")
            sections.append(Section(category, diff=d))
        return sections

    def _report(self, sections: list[Section]) -> Path:
        self.state = RunState.REPORTING
        now = self.clock()
        path = write_report(build_report(sections, now), self.store.report_path(make_timestamp(now)))
        self.status(f"  [OK] Report: {path}")

        if self.prompter.confirm_open(path):
            try:
                self.opener(path)
            except OSError as e:
                logger.warning("Cannot open %s: %s", path, e)
                self.status(f"  [WARN] cannot open report ({e})")
        return path
