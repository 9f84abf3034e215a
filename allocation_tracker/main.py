from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from . import aggregator
from .io_utils import JsonDatasetStore, load_config, parse_date, write_csv
from .models import TrackerConfig, TrackerError
from .periods import iso_week_of
from .propagation import assigned_projects
from .remote import RemoteStoreClient, RemoteStoreError, publish_dataset
from .store import AllocationStore, seed_dataset


def _add_range_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--start", required=True, help="Range start date (YYYY-MM-DD)")
    parser.add_argument("--end", required=True, help="Range end date (YYYY-MM-DD)")
    parser.add_argument(
        "--period-type",
        choices=("week", "month"),
        default="week",
        help="Period granularity used for aggregation (default: week)",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Consultant allocation tracker (JSON dataset, CSV export)."
    )
    parser.add_argument("--config", help="Path to configuration JSON file")
    parser.add_argument("--data", help="Path to the dataset JSON file (overrides config data_path)")
    sub = parser.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed", help="Write the seed dataset")
    seed.add_argument("--force", action="store_true", help="Overwrite an existing dataset")

    summary = sub.add_parser("summary", help="Print average allocations for a date range")
    _add_range_args(summary)

    export = sub.add_parser("export", help="Export the summary for a date range as CSV")
    _add_range_args(export)
    export.add_argument("--out", help="Output CSV path (default: allocation_<start>_to_<end>.csv)")

    over = sub.add_parser("overbooked", help="List consultant periods above the overbooking threshold")
    _add_range_args(over)

    sub.add_parser("consultants", help="List consultants and their assigned projects")

    for verb in ("add", "remove"):
        for kind in ("consultant", "project"):
            cmd = sub.add_parser(f"{verb}-{kind}", help=f"{verb.capitalize()} a {kind}")
            cmd.add_argument("name")

    set_cmd = sub.add_parser("set", help="Set one allocation cell")
    set_cmd.add_argument("period_type", choices=("week", "month"))
    set_cmd.add_argument("period")
    set_cmd.add_argument("consultant")
    set_cmd.add_argument("project")
    set_cmd.add_argument("percent", type=int)

    update = sub.add_parser("update-project", help="Change a project's range and assignments")
    update.add_argument("name")
    update.add_argument("--start", help="New start date (converted to its ISO week)")
    update.add_argument("--end", help="New end date (converted to its ISO week)")
    update.add_argument(
        "--assign",
        action="append",
        metavar="CONSULTANT=PCT",
        help="Assigned consultant and percent; repeat for each. Omit to keep current assignments.",
    )

    sub.add_parser("publish", help="Upsert all non-zero allocations to the remote store")
    return parser


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s %(message)s")


def _resolve_config(args: argparse.Namespace) -> TrackerConfig:
    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            raise ValueError(f"config file not found at {config_path}")
        cfg = load_config(config_path)
    else:
        cfg = TrackerConfig.default()
    if args.data:
        cfg = replace(cfg, data_path=args.data)
    return cfg


def _parse_assignments(values: Optional[Sequence[str]]) -> Optional[Dict[str, int]]:
    if values is None:
        return None
    parsed: Dict[str, int] = {}
    for raw in values:
        name, sep, pct = raw.rpartition("=")
        if not sep or not name.strip():
            raise ValueError(f"invalid assignment '{raw}' (expected CONSULTANT=PCT)")
        try:
            parsed[name.strip()] = int(pct)
        except ValueError as exc:
            raise ValueError(f"invalid percent in assignment '{raw}'") from exc
    return parsed


def _print_summary(store: AllocationStore, periods: List[str], threshold: float) -> None:
    if not periods:
        print("No periods in range.")
        return
    print(f"{len(periods)} periods: {periods[0]} → {periods[-1]}")
    table = aggregator.summary_table(store.dataset, periods, threshold)
    for row in table.to_dict(orient="records"):
        flag = " OVERBOOKED" if row["Overbooked"] else ""
        print(f"- {row[aggregator.CONSULTANT_COLUMN]}: {row[aggregator.TOTAL_COLUMN]:.2f}%{flag}")
        for project in store.dataset.projects:
            if row[project]:
                print(f"    {project}: {row[project]:.2f}%")


def _run(args: argparse.Namespace, cfg: TrackerConfig) -> None:
    persistence = JsonDatasetStore(cfg.data_path)

    if args.command == "seed":
        if persistence.path.exists() and not args.force:
            raise ValueError(f"{persistence.path} already exists (use --force to overwrite)")
        persistence.save(seed_dataset(cfg))
        print(f"Wrote {persistence.path}")
        return

    store = AllocationStore.open(persistence, cfg)
    dataset = store.dataset

    if args.command in ("summary", "export", "overbooked"):
        start = parse_date(args.start, "--start")
        end = parse_date(args.end, "--end")
        periods = aggregator.periods_overlapping(dataset, args.period_type, start, end)
        if args.command == "summary":
            _print_summary(store, periods, cfg.overbooking_threshold_pct)
        elif args.command == "export":
            out = write_csv(
                aggregator.export_table(dataset, periods),
                args.out or aggregator.export_filename(start, end),
            )
            print(f"Wrote {out}")
        else:
            report = aggregator.overbooking_report(
                dataset, args.period_type, periods, cfg.overbooking_threshold_pct
            )
            if report.empty:
                print("No overbooked periods.")
            for row in report.itertuples(index=False):
                print(f"- {row.consultant} {row.label}: {row.total_pct}%")
        return

    if args.command == "consultants":
        for consultant in dataset.consultants:
            projects = assigned_projects(dataset, consultant)
            print(f"- {consultant}: {', '.join(projects) if projects else '–'}")
        return

    if args.command == "publish":
        client = RemoteStoreClient.from_config(cfg)
        sent = publish_dataset(dataset, client)
        print(f"Published {sent} allocations")
        return

    if args.command == "add-consultant":
        store.add_consultant(args.name)
    elif args.command == "remove-consultant":
        if not store.remove_consultant(args.name):
            print(f"Consultant {args.name} not found; nothing removed")
    elif args.command == "add-project":
        store.add_project(args.name)
    elif args.command == "remove-project":
        if not store.remove_project(args.name):
            print(f"Project {args.name} not found; nothing removed")
    elif args.command == "set":
        store.set_allocation(args.period_type, args.period, args.consultant, args.project, args.percent)
    elif args.command == "update-project":
        start_week = iso_week_of(parse_date(args.start, "--start")) if args.start else None
        end_week = iso_week_of(parse_date(args.end, "--end")) if args.end else None
        targets = store.update_project(
            args.name, start_week, end_week, _parse_assignments(args.assign)
        )
        print(f"Updated {args.name}: {len(targets.weeks)} weeks, {len(targets.months)} months")
    store.save()
    print(f"Saved {persistence.path}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = _build_parser().parse_args(argv)
    try:
        cfg = _resolve_config(args)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(2)
    _configure_logging(cfg.logging_level)
    try:
        _run(args, cfg)
    except (TrackerError, RemoteStoreError, ValueError) as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
