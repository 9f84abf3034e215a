"""Seed dataset used when no valid stored dataset exists.

The roster, projects and assignment records are configuration data; the
expansion of each record into week and month periods is what matters.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from dateutil import parser as dateparser

from .models import PERIOD_TYPES, Dataset, InvalidRange, ProjectInfo
from .periods import iso_week_of, months_between, week_bounds, weeks_between

logger = logging.getLogger(__name__)

SEED_START = date(2025, 10, 1)
SEED_END = date(2026, 12, 31)

SEED_CONSULTANTS = (
    "Ginny",
    "Kit",
    "Jeff",
    "Lauren",
    "Regina",
    "Alzer",
    "Kristin",
    "Chase",
    "Amanda",
    "Ingrid",
    "Reese",
    "Johanne",
    "Michael",
    "Shaun",
)

SEED_PROJECTS = (
    "Stand Together",
    "EisnerAmper",
    "OPOS, Inc.",
    "Omega Healthcare Management Services",
    "iMethods",
    "Divurgent, LLC",
    "EQUIPX",
    "OmniSource",
    "SPX Outreach",
    "SPX Sales",
    "SPX Management / Operations",
    "Vacation",
)


@dataclass(frozen=True)
class SeedAssignment:
    """A consultant working on a project between two inclusive dates."""

    consultant: str
    project: str
    start: date
    end: date
    percent: int


@dataclass(frozen=True)
class SeedData:
    consultants: Sequence[str]
    projects: Sequence[str]
    start: date
    end: date
    assignments: Sequence[SeedAssignment]


def _a(consultant: str, project: str, start: str, end: str, percent: int) -> SeedAssignment:
    return SeedAssignment(consultant, project, date.fromisoformat(start), date.fromisoformat(end), percent)


SEED_ASSIGNMENTS = (
    _a("Ginny", "Stand Together", "2025-10-20", "2025-11-20", 20),
    _a("Kit", "Stand Together", "2025-10-20", "2025-11-20", 75),
    _a("Jeff", "Stand Together", "2025-10-20", "2025-11-20", 5),
    _a("Lauren", "EisnerAmper", "2025-10-01", "2026-06-08", 25),
    _a("Regina", "EisnerAmper", "2025-10-01", "2026-06-08", 25),
    _a("Alzer", "EisnerAmper", "2025-10-01", "2026-06-08", 5),
    _a("Kristin", "OPOS, Inc.", "2025-10-01", "2026-06-08", 70),
    _a("Chase", "OPOS, Inc.", "2025-10-01", "2026-06-08", 70),
    _a("Alzer", "OPOS, Inc.", "2025-10-01", "2026-06-08", 10),
    _a("Jeff", "Omega Healthcare Management Services", "2025-10-20", "2026-02-15", 60),
    _a("Ginny", "Omega Healthcare Management Services", "2025-10-20", "2026-02-15", 30),
    _a("Amanda", "Omega Healthcare Management Services", "2025-10-20", "2026-02-15", 25),
    _a("Ingrid", "Omega Healthcare Management Services", "2025-10-20", "2026-02-15", 20),
    _a("Reese", "Omega Healthcare Management Services", "2025-10-20", "2026-02-15", 5),
    _a("Johanne", "Omega Healthcare Management Services", "2025-10-20", "2026-02-15", 5),
    _a("Jeff", "iMethods", "2025-10-01", "2025-12-31", 10),
    _a("Ingrid", "iMethods", "2025-10-01", "2025-12-31", 2),
    _a("Reese", "iMethods", "2025-10-01", "2025-12-31", 5),
    _a("Michael", "Divurgent, LLC", "2025-10-01", "2026-01-31", 10),
    _a("Reese", "Divurgent, LLC", "2025-10-01", "2026-01-31", 5),
    _a("Jeff", "Divurgent, LLC", "2025-10-01", "2026-01-31", 10),
    _a("Reese", "EQUIPX", "2025-10-01", "2025-12-31", 5),
    _a("Ginny", "OmniSource", "2025-11-03", "2026-01-10", 30),
    _a("Lauren", "OmniSource", "2025-11-03", "2026-01-10", 5),
    _a("Ingrid", "OmniSource", "2025-11-03", "2026-01-10", 15),
    _a("Reese", "OmniSource", "2025-11-03", "2026-01-10", 10),
    _a("Shaun", "OmniSource", "2025-11-03", "2026-01-10", 10),
    _a("Lauren", "SPX Outreach", "2025-10-01", "2026-12-31", 15),
    _a("Regina", "SPX Outreach", "2025-10-01", "2026-12-31", 15),
    _a("Alzer", "SPX Outreach", "2025-10-01", "2026-12-31", 15),
    _a("Reese", "SPX Sales", "2025-10-01", "2026-12-31", 10),
    _a("Ingrid", "SPX Sales", "2025-10-01", "2026-12-31", 5),
)

DEFAULT_SEED = SeedData(
    consultants=SEED_CONSULTANTS,
    projects=SEED_PROJECTS,
    start=SEED_START,
    end=SEED_END,
    assignments=SEED_ASSIGNMENTS,
)


def empty_dataset(
    consultants: Iterable[str], projects: Iterable[str], start: date, end: date
) -> Dataset:
    """Dataset with every week and month in the span zero-filled."""
    dataset = Dataset(consultants=list(consultants), projects=list(projects))
    spans = {"week": weeks_between(start, end), "month": months_between(start, end)}
    for period_type in PERIOD_TYPES:
        period_map = dataset.allocations(period_type)
        for period_id in spans[period_type]:
            period_map[period_id] = {
                consultant: {project: 0 for project in dataset.projects}
                for consultant in dataset.consultants
            }
    return dataset


def _widen(current: Optional[ProjectInfo], start_week: str, end_week: str) -> ProjectInfo:
    if current is None:
        return ProjectInfo(start=start_week, end=end_week)
    start = start_week if week_bounds(start_week).start < week_bounds(current.start).start else current.start
    end = end_week if week_bounds(end_week).start > week_bounds(current.end).start else current.end
    return ProjectInfo(start=start, end=end)


def apply_assignment(dataset: Dataset, item: SeedAssignment) -> None:
    """Write one record into its weeks and months and widen the project range."""
    if item.start > item.end:
        raise InvalidRange(item.start, item.end)
    spans = {"week": weeks_between(item.start, item.end), "month": months_between(item.start, item.end)}
    for period_type in PERIOD_TYPES:
        for period_id in spans[period_type]:
            dataset.consultant_allocations(period_type, period_id, item.consultant, create=True)[
                item.project
            ] = int(item.percent)
    dataset.projects_info[item.project] = _widen(
        dataset.projects_info.get(item.project), iso_week_of(item.start), iso_week_of(item.end)
    )


def generate_dataset(seed: SeedData = DEFAULT_SEED) -> Dataset:
    dataset = empty_dataset(seed.consultants, seed.projects, seed.start, seed.end)
    for item in seed.assignments:
        apply_assignment(dataset, item)
    full_range = dataset.full_week_range()
    for project in dataset.projects:
        dataset.projects_info.setdefault(project, full_range)
    logger.debug(
        "generated seed dataset: %d consultants, %d projects, %d weeks, %d months",
        len(dataset.consultants),
        len(dataset.projects),
        len(dataset.week_ids()),
        len(dataset.month_ids()),
    )
    return dataset


def _parse_date(value: object, field_name: str) -> date:
    try:
        return dateparser.isoparse(str(value)).date()
    except (ValueError, TypeError) as exc:
        raise ValueError(f"invalid date in '{field_name}': {value}") from exc


def _parse_names(value: object, field_name: str) -> List[str]:
    if not isinstance(value, list) or not value:
        raise ValueError(f"{field_name} must be a non-empty array")
    names = [str(item).strip() for item in value]
    if any(not name for name in names):
        raise ValueError(f"{field_name} contains a blank name")
    if len(set(names)) != len(names):
        raise ValueError(f"{field_name} contains duplicate names")
    return names


def load_seed(path: str | Path) -> SeedData:
    """Read a seed definition from JSON.

    Expected shape: ``{"consultants": [...], "projects": [...], "start":
    "YYYY-MM-DD", "end": "YYYY-MM-DD", "assignments": [{"consultant",
    "project", "start", "end", "percent"}, ...]}``.
    """
    data = json.loads(Path(path).read_text())
    if not isinstance(data, dict):
        raise ValueError("seed file must be a JSON object")
    consultants = _parse_names(data.get("consultants"), "consultants")
    projects = _parse_names(data.get("projects"), "projects")
    start = _parse_date(data.get("start"), "start")
    end = _parse_date(data.get("end"), "end")
    if end < start:
        raise ValueError("seed end must not be earlier than seed start")
    raw_assignments = data.get("assignments", [])
    if not isinstance(raw_assignments, list):
        raise ValueError("assignments must be an array")
    assignments: List[SeedAssignment] = []
    for entry in raw_assignments:
        if not isinstance(entry, dict):
            raise ValueError("assignment entries must be objects")
        consultant = entry.get("consultant")
        project = entry.get("project")
        if consultant not in consultants:
            raise ValueError(f"assignment references unknown consultant '{consultant}'")
        if project not in projects:
            raise ValueError(f"assignment references unknown project '{project}'")
        percent = entry.get("percent")
        if not isinstance(percent, (int, float)) or isinstance(percent, bool):
            raise ValueError(f"percent must be a number for {consultant} on {project}")
        item_start = _parse_date(entry.get("start"), "assignment.start")
        item_end = _parse_date(entry.get("end"), "assignment.end")
        if item_end < item_start:
            raise ValueError(f"assignment for {consultant} on {project} ends before it starts")
        assignments.append(SeedAssignment(consultant, project, item_start, item_end, int(percent)))
    return SeedData(
        consultants=tuple(consultants),
        projects=tuple(projects),
        start=start,
        end=end,
        assignments=tuple(assignments),
    )
