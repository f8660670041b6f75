"""
Command line entry point.

    footprint pre  --output D:/footprint
    (install / update something)
    footprint post --output D:/footprint --open
"""

import argparse
import logging
import sys
from pathlib import Path

from footprint import __version__
from footprint.config import DEFAULT_OUTPUT_DIR, default_config, load_config
from footprint.errors import ConfigError
from footprint.orchestrator import (
    ExistingPost,
    Orchestrator,
    Prompter,
    RunStatus,
)
from footprint.records import CATEGORIES, Stage

EXIT_CODES = {
    RunStatus.SUCCESS: 0,
    RunStatus.ERROR: 1,
    RunStatus.PRECONDITION_FAILED: 3,
    RunStatus.CANCELLED: 4,
}
EXIT_USAGE = 2


class ConsolePrompter(Prompter):
    """Asks on stdin. Flags given on the command line skip the question."""

    def __init__(self, args: argparse.Namespace):
        self.args = args

    @staticmethod
    def _ask(question: str, answers: list[str], default: str) -> str:
        hint = "/".join(a.upper() if a == default else a for a in answers)
        while True:
            try:
                reply = input(f"{question} [{hint}] ").strip().lower()
            except EOFError:
                return default
            if not reply:
                return default
            matches = [a for a in answers if a.startswith(reply)]
            if len(matches) == 1:
                return matches[0]
            print(f"Please answer one of: {', '.join(answers)}")

    def confirm_delete(self, path: Path) -> bool:
        if self.args.yes:
            return True
        return self._ask(f"{path} already exists. Delete it and start over?", ["yes", "no"], "no") == "yes"

    def choose_existing_post(self, path: Path) -> ExistingPost:
        if self.args.existing:
            return ExistingPost(self.args.existing)
        answers = [c.value for c in ExistingPost]
        return ExistingPost(self._ask(f"A Post snapshot already exists in {path}.", answers, "cancel"))

    def confirm_open(self, path: Path) -> bool:
        return self.args.open


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        prog="footprint",
        description="Snapshot installed-software footprint before and after a change, then diff.",
    )
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    ap.add_argument("mode", choices=["pre", "post"], help="Take the baseline (pre) or compare against it (post)")
    ap.add_argument("-o", "--output", help=f"Output root directory (default: {DEFAULT_OUTPUT_DIR})")
    ap.add_argument("-c", "--config", help="JSON config file with roots and category switches")
    ap.add_argument("--root", action="append", default=[], metavar="PATH",
                    help="Directory to scan (repeatable, replaces configured roots)")
    ap.add_argument("--disable", action="append", default=[], choices=CATEGORIES, metavar="CATEGORY",
                    help=f"Skip a category (repeatable): {', '.join(CATEGORIES)}")
    ap.add_argument("-y", "--yes", action="store_true", help="Delete an existing output root without asking")
    ap.add_argument("--existing", choices=[c.value for c in ExistingPost],
                    help="What to do with an existing Post snapshot")
    ap.add_argument("--open", action="store_true", help="Open the report when done")
    ap.add_argument("-v", "--verbose", action="count", default=0, help="More log output (-v, -vv)")
    return ap.parse_args(argv)


def setup_logging(verbosity: int) -> None:
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbosity, logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        if args.config:
            config = load_config(args.config, output_root=args.output)
        else:
            config = default_config(args.output or DEFAULT_OUTPUT_DIR)
        config = config.with_overrides(roots=args.root, disabled=args.disable)
    except ConfigError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return EXIT_USAGE

    stage = Stage.PRE if args.mode == "pre" else Stage.POST
    print(f"footprint {stage} -> {config.output_root}")
    orchestrator = Orchestrator(config, prompter=ConsolePrompter(args))
    result = orchestrator.run(stage)

    if result.report_path:
        print(f"Report: {result.report_path}")
    return EXIT_CODES[result.status]

