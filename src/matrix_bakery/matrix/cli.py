"""Command-line entry point for planning and running bake matrices."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Iterable

from matrix_bakery.config.paths import Paths
from matrix_bakery.constants import DEFAULT_BUILD_COMMAND
from matrix_bakery.matrix import load_spec
from matrix_bakery.utils.errors import BakeryError, ConfigurationError


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="matrix-bakery", description="Plan and run build matrices")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    plan = sub.add_parser("plan", help="Print or write the planned job set")
    plan.add_argument("config", help="Path to bake config file or directory")
    plan.add_argument("--stage", help="Only plan the named stage")
    plan.add_argument("--limit", type=int, help="Maximum rows to emit to stdout")
    plan.add_argument("--out", help="Optional output path (csv or jsonl)")
    plan.add_argument("--format", choices={"csv", "jsonl"}, help="Output format override")

    run = sub.add_parser("run", help="Build every job and route its artifacts")
    run.add_argument("config", help="Path to bake config file or directory")
    run.add_argument("--work-root", help="Root for staging, artifacts, pages and reports")
    run.add_argument("--report", help="Report CSV path (default: <work-root>/reports/run.csv)")
    run.add_argument("--build-command", default=DEFAULT_BUILD_COMMAND, help="Bake command template")
    return parser


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    spec = load_spec(args.config)
    if args.command == "plan":
        return _plan(spec, args)
    return _run(spec, args)


def _plan(spec, args) -> int:
    from matrix_bakery.orchestration.pipeline import plan_pipeline

    plans = plan_pipeline(spec)
    if args.stage:
        plans = [plan for plan in plans if plan.stage.name == args.stage]
        if not plans:
            raise ConfigurationError(ctx={"reason": "unknown stage", "stage": args.stage})

    rows = [
        {"stage": job.stage, "number": job.number, "identity": job.identity, **job.cell.as_dict()}
        for plan in plans
        for job in plan.jobs
    ]

    if args.out:
        out_path = Path(args.out)
        fmt = args.format or out_path.suffix.lstrip(".") or "csv"
        _write_rows(rows, out_path, fmt)
    else:
        limit = args.limit or len(rows)
        for row in rows[:limit]:
            print(row)
        if limit < len(rows):
            print(f"... truncated {len(rows) - limit} rows")
    return 0


def _run(spec, args) -> int:
    from matrix_bakery.dispatch.backends import ShellBakeBackend
    from matrix_bakery.orchestration.pipeline import run_pipeline

    paths = Paths.from_str(args.work_root) if args.work_root else Paths.from_env()
    config_path = Path(args.config).resolve()
    workdir = config_path if config_path.is_dir() else config_path.parent
    backend = ShellBakeBackend(command=args.build_command, workdir=workdir, build_root=paths.builds_root)
    report = run_pipeline(spec, backend=backend, paths=paths)
    report_path = report.write_csv(args.report or paths.report_path("run"))
    print(json.dumps(report.summary(), sort_keys=True))
    print(f"report: {report_path}")
    for error in report.errors:
        print(f"{error.kind} error [{error.stage}] {error.identity}: {error.reason}")
    return 0 if report.succeeded else 1


def _write_rows(rows, out: Path, fmt: str) -> None:
    if fmt == "jsonl":
        with out.open("w", encoding="utf-8") as fh:
            for row in rows:
                fh.write(json.dumps(row) + "\n")
        return

    if fmt == "csv":
        import csv

        fieldnames: list[str] = []
        for row in rows:
            fieldnames.extend(key for key in row if key not in fieldnames)
        with out.open("w", newline="", encoding="utf-8") as fh:
            writer = csv.DictWriter(fh, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(rows)
        return

    raise ConfigurationError(ctx={"reason": "unsupported output format", "format": fmt})


def entrypoint() -> None:  # pragma: no cover - console entry
    try:
        raise SystemExit(main())
    except BakeryError as exc:  # pragma: no cover - console behavior
        raise SystemExit(f"error: {exc}")
