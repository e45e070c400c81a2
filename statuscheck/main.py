"""Entry point for the statuscheck command."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .checks import load_checkers
from .config import settings
from .errors import ConfigurationError
from .results import Status, format_duration
from .runner import RunReport, run_checks

console = Console()
logger = logging.getLogger(__name__)

STATUS_STYLES = {
    Status.HEALTHY: "bold green",
    Status.DEGRADED: "bold yellow",
    Status.DOWN: "bold red",
}


def render_report(report: RunReport) -> None:
    """Print results as a table, followed by any checkers that could not run."""
    table = Table(title="Status checks")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Median", justify="right")
    table.add_column("Attempts", justify="right")
    table.add_column("Notice", overflow="fold")

    for r in report.results:
        table.add_row(
            escape(r.title),
            f"[{STATUS_STYLES[r.status]}]{r.status.value}[/]",
            format_duration(r.stats.median),
            str(len(r.times)),
            escape(r.notice),
        )
    console.print(table)

    for name, message in report.errors:
        console.print(f"[bold red]error[/] {escape(name)}: {escape(message)}")


def run_check_command(path: str, as_json: bool, workers: int | None) -> int:
    try:
        checkers = load_checkers(path)
    except ConfigurationError as e:
        logger.error("%s", e)
        return 2

    report = run_checks(checkers, max_workers=workers)
    if as_json:
        payload = {
            "results": [r.to_dict() for r in report.results],
            "errors": [{"name": n, "error": m} for n, m in report.errors],
        }
        print(json.dumps(payload, indent=2))
    else:
        render_report(report)
    return 0 if report.all_healthy else 1


def run_validate_command(path: str) -> int:
    try:
        checkers = load_checkers(path)
    except ConfigurationError as e:
        console.print(f"[bold red]invalid[/] {escape(str(e))}")
        return 2
    console.print(f"[green]ok[/] {len(checkers)} checkers in {path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Probe HTTP(S) endpoints and report their health")
    sub = parser.add_subparsers(dest="command")

    check_parser = sub.add_parser("check", help="Run every configured check once")
    check_parser.add_argument("-c", "--config", default=settings.checks_file, help="Checks file (YAML or JSON)")
    check_parser.add_argument("--json", action="store_true", help="Print results as JSON")
    check_parser.add_argument("--workers", type=int, default=None, help="Endpoints checked in parallel")

    validate_parser = sub.add_parser("validate", help="Validate the checks file")
    validate_parser.add_argument("-c", "--config", default=settings.checks_file, help="Checks file (YAML or JSON)")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command == "check":
        return run_check_command(args.config, args.json, args.workers)
    if args.command == "validate":
        return run_validate_command(args.config)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
