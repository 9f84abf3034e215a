from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from .models import (
    PERIOD_TYPES,
    Consultant,
    Dataset,
    InvalidRange,
    NotFound,
    PeriodId,
    ProjectInfo,
    ProjectName,
)
from .periods import month_bounds, week_bounds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TargetPeriods:
    """Week and month periods covered by a project range."""

    weeks: Tuple[PeriodId, ...]
    months: Tuple[PeriodId, ...]

    def for_type(self, period_type: str) -> Tuple[PeriodId, ...]:
        return self.weeks if period_type == "week" else self.months


def _week_slice(all_weeks: List[PeriodId], start: PeriodId, end: PeriodId) -> Optional[List[PeriodId]]:
    try:
        start_idx = all_weeks.index(start)
        end_idx = all_weeks.index(end)
    except ValueError:
        return None
    return all_weeks[start_idx : end_idx + 1]


def target_weeks(dataset: Dataset, start: PeriodId, end: PeriodId) -> List[PeriodId]:
    all_weeks = dataset.week_ids()
    sliced = _week_slice(all_weeks, start, end)
    return all_weeks if sliced is None else sliced


def target_months(dataset: Dataset, start: PeriodId, end: PeriodId) -> List[PeriodId]:
    """Months overlapping the dates from ``start``'s Monday to ``end``'s Sunday.

    Falls back to every month when either week is not part of the dataset,
    mirroring the week fallback so both granularities cover the same span.
    """
    all_months = dataset.month_ids()
    if _week_slice(dataset.week_ids(), start, end) is None:
        return all_months
    range_start = week_bounds(start).start
    range_end = week_bounds(end).end
    months: List[PeriodId] = []
    for month_id in all_months:
        bounds = month_bounds(month_id)
        if bounds.end >= range_start and bounds.start <= range_end:
            months.append(month_id)
    return months


def target_periods(dataset: Dataset, project: ProjectName) -> TargetPeriods:
    info = dataset.projects_info.get(project)
    if info is None:
        return TargetPeriods(weeks=tuple(dataset.week_ids()), months=tuple(dataset.month_ids()))
    return TargetPeriods(
        weeks=tuple(target_weeks(dataset, info.start, info.end)),
        months=tuple(target_months(dataset, info.start, info.end)),
    )


def _require_project(dataset: Dataset, project: ProjectName) -> None:
    if project not in dataset.projects:
        raise NotFound("project", project)


def _require_consultant(dataset: Dataset, consultant: Consultant) -> None:
    if consultant not in dataset.consultants:
        raise NotFound("consultant", consultant)


def apply_range(
    dataset: Dataset,
    project: ProjectName,
    new_start: Optional[PeriodId] = None,
    new_end: Optional[PeriodId] = None,
) -> ProjectInfo:
    """Move a project's active range; either bound may be left unchanged."""
    _require_project(dataset, project)
    current = dataset.projects_info.get(project)
    start = new_start or (current.start if current else None)
    end = new_end or (current.end if current else None)
    if start is None or end is None:
        raise ValueError(f"project '{project}' needs both a start and an end week")
    start_monday = week_bounds(start).start
    end_monday = week_bounds(end).start
    if start_monday > end_monday:
        raise InvalidRange(start, end)
    info = ProjectInfo(start=start, end=end)
    dataset.projects_info[project] = info
    logger.debug("project %s range set to %s..%s", project, start, end)
    return info


def assign(dataset: Dataset, project: ProjectName, consultant: Consultant, percent: int) -> TargetPeriods:
    """Write ``percent`` for the pair into every period of the project's range."""
    targets = target_periods(dataset, project)
    value = int(percent)
    for period_type in PERIOD_TYPES:
        for period_id in targets.for_type(period_type):
            dataset.consultant_allocations(period_type, period_id, consultant, create=True)[project] = value
    logger.debug(
        "assigned %s to %s at %s%% over %d weeks / %d months",
        consultant,
        project,
        value,
        len(targets.weeks),
        len(targets.months),
    )
    return targets


def unassign(dataset: Dataset, project: ProjectName, consultant: Consultant) -> int:
    """Drop the pair from every period of both granularities.

    Unlike ``assign`` this is not limited to the active range: an unassigned
    consultant keeps no allocation history on the project. Returns the
    number of entries removed.
    """
    removed = 0
    for period_type in PERIOD_TYPES:
        for by_consultant in dataset.allocations(period_type).values():
            values = by_consultant.get(consultant)
            if values is not None and project in values:
                del values[project]
                removed += 1
    if removed:
        logger.debug("unassigned %s from %s (%d entries)", consultant, project, removed)
    return removed


def get_default_allocation(dataset: Dataset, project: ProjectName, consultant: Consultant) -> int:
    """First non-zero percentage for the pair, scanning weeks then months."""
    for period_type in PERIOD_TYPES:
        period_map = dataset.allocations(period_type)
        for period_id in sorted(period_map):
            value = period_map[period_id].get(consultant, {}).get(project, 0)
            if value:
                return value
    return 0


def assigned_consultants(dataset: Dataset, project: ProjectName) -> Dict[Consultant, int]:
    assigned: Dict[Consultant, int] = {}
    for consultant in dataset.consultants:
        value = get_default_allocation(dataset, project, consultant)
        if value:
            assigned[consultant] = value
    return assigned


def assigned_projects(dataset: Dataset, consultant: Consultant) -> List[ProjectName]:
    """Projects with any non-zero allocation for ``consultant``, in roster order."""
    found = set()
    for period_type in PERIOD_TYPES:
        for by_consultant in dataset.allocations(period_type).values():
            for project, value in by_consultant.get(consultant, {}).items():
                if value > 0:
                    found.add(project)
    return [project for project in dataset.projects if project in found]


def update_project(
    dataset: Dataset,
    project: ProjectName,
    start: Optional[PeriodId] = None,
    end: Optional[PeriodId] = None,
    assignments: Optional[Mapping[Consultant, int]] = None,
) -> TargetPeriods:
    """Apply a range change and then propagate assignments over the new range.

    ``assignments`` lists every consultant that should be assigned; anyone
    else on the roster is unassigned. When it is ``None`` the current
    assignment set is kept and re-propagated, so extending a range carries
    each assigned consultant's existing percentage into the new periods.
    """
    _require_project(dataset, project)
    if assignments is None:
        assignments = assigned_consultants(dataset, project)
    else:
        for consultant in assignments:
            _require_consultant(dataset, consultant)
    if project not in dataset.projects_info:
        dataset.projects_info[project] = dataset.full_week_range()
    if start is not None or end is not None:
        apply_range(dataset, project, start, end)
    targets = target_periods(dataset, project)
    for consultant in dataset.consultants:
        if consultant in assignments:
            assign(dataset, project, consultant, assignments[consultant])
        else:
            unassign(dataset, project, consultant)
    logger.info(
        "updated project %s: %d assigned consultants, %d weeks, %d months",
        project,
        len(assignments),
        len(targets.weeks),
        len(targets.months),
    )
    return targets
