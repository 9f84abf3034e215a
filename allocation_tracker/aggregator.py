from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from .models import Consultant, Dataset, InvalidRange, PeriodId, PeriodType, ProjectName
from .periods import (
    PeriodBounds,
    period_bounds,
    period_label,
    period_type_of,
    period_year,
    week_bounds,
    week_column_label,
)

OVERBOOKING_THRESHOLD_PCT = 100.0
TOTAL_COLUMN = "Total (%)"
CONSULTANT_COLUMN = "Consultant"


@dataclass(frozen=True)
class ConsultantSummary:
    consultant: Consultant
    averages: Dict[ProjectName, float] = field(default_factory=dict)
    total: float = 0.0
    period_count: int = 0

    @property
    def overbooked(self) -> bool:
        return overbooked(self.total)

    def to_dict(self) -> Dict[str, object]:
        return {
            "consultant": self.consultant,
            "averages": {project: round(value, 2) for project, value in self.averages.items()},
            "total": round(self.total, 2),
            "period_count": self.period_count,
            "overbooked": self.overbooked,
        }


def overbooked(total: float, threshold: float = OVERBOOKING_THRESHOLD_PCT) -> bool:
    return total > threshold


def periods_overlapping(
    dataset: Dataset, period_type: PeriodType, range_start: date, range_end: date
) -> List[PeriodId]:
    """Stored periods that overlap ``[range_start, range_end]``, oldest first.

    A period counts when its own start or end lies inside the range, or when
    it fully contains the range.
    """
    if range_start > range_end:
        raise InvalidRange(range_start, range_end)
    query = PeriodBounds(start=range_start, end=range_end)
    selected: List[PeriodId] = []
    for period_id in dataset.period_ids(period_type):
        bounds = period_bounds(period_type, period_id)
        starts_inside = query.contains(bounds.start)
        ends_inside = query.contains(bounds.end)
        contains_range = bounds.contains(range_start) and bounds.contains(range_end)
        if starts_inside or ends_inside or contains_range:
            selected.append(period_id)
    return selected


def summarize(dataset: Dataset, consultant: Consultant, periods: Sequence[PeriodId]) -> ConsultantSummary:
    """Average each project's allocation over ``periods``.

    Averages rather than sums keep a single week comparable with a
    ten-week range; the total is the sum of the per-project averages.
    """
    count = len(periods)
    sums: Dict[ProjectName, float] = {project: 0.0 for project in dataset.projects}
    for period_id in periods:
        values = dataset.consultant_allocations(period_type_of(period_id), period_id, consultant)
        for project in dataset.projects:
            sums[project] += values.get(project, 0)
    averages = {project: (value / count if count else 0.0) for project, value in sums.items()}
    return ConsultantSummary(
        consultant=consultant,
        averages=averages,
        total=sum(averages.values()),
        period_count=count,
    )


def summarize_all(dataset: Dataset, periods: Sequence[PeriodId]) -> List[ConsultantSummary]:
    return [summarize(dataset, consultant, periods) for consultant in dataset.consultants]


def summary_table(
    dataset: Dataset,
    periods: Sequence[PeriodId],
    threshold: float = OVERBOOKING_THRESHOLD_PCT,
) -> pd.DataFrame:
    rows = []
    for summary in summarize_all(dataset, periods):
        row: Dict[str, object] = {CONSULTANT_COLUMN: summary.consultant}
        row.update(summary.averages)
        row[TOTAL_COLUMN] = summary.total
        row["Overbooked"] = overbooked(summary.total, threshold)
        rows.append(row)
    columns = [CONSULTANT_COLUMN, *dataset.projects, TOTAL_COLUMN, "Overbooked"]
    return pd.DataFrame(rows, columns=columns)


def export_table(dataset: Dataset, periods: Sequence[PeriodId]) -> pd.DataFrame:
    """Summary rows with every number fixed to two decimals."""
    rows = []
    for summary in summarize_all(dataset, periods):
        row = [summary.consultant]
        row.extend(f"{summary.averages[project]:.2f}" for project in dataset.projects)
        row.append(f"{summary.total:.2f}")
        rows.append(row)
    return pd.DataFrame(rows, columns=[CONSULTANT_COLUMN, *dataset.projects, TOTAL_COLUMN])


def export_csv(dataset: Dataset, periods: Sequence[PeriodId]) -> str:
    return export_table(dataset, periods).to_csv(index=False, lineterminator="\n")


def export_filename(start: date, end: date) -> str:
    return f"allocation_{start.isoformat()}_to_{end.isoformat()}.csv"


def period_grid(dataset: Dataset, period_type: PeriodType, periods: Sequence[PeriodId]) -> pd.DataFrame:
    """One row per consultant and period with per-project values and the total."""
    rows = []
    for consultant in dataset.consultants:
        for period_id in periods:
            values = dataset.consultant_allocations(period_type, period_id, consultant)
            row: Dict[str, object] = {
                "consultant": consultant,
                "period": period_id,
                "label": period_label(period_type, period_id),
            }
            total = 0
            for project in dataset.projects:
                value = values.get(project, 0)
                row[project] = value
                total += value
            row["total_pct"] = total
            rows.append(row)
    columns = ["consultant", "period", "label", *dataset.projects, "total_pct"]
    return pd.DataFrame(rows, columns=columns)


def overbooking_report(
    dataset: Dataset,
    period_type: PeriodType,
    periods: Sequence[PeriodId],
    threshold: float = OVERBOOKING_THRESHOLD_PCT,
) -> pd.DataFrame:
    """Every consultant/period whose summed allocation exceeds the threshold."""
    grid = period_grid(dataset, period_type, periods)
    flagged = grid[grid["total_pct"] > threshold]
    return flagged[["consultant", "period", "label", "total_pct"]].reset_index(drop=True)


def consultant_period_table(
    dataset: Dataset,
    consultant: Consultant,
    period_type: PeriodType,
    year: Optional[str] = None,
    threshold: float = OVERBOOKING_THRESHOLD_PCT,
) -> pd.DataFrame:
    periods = [
        period_id
        for period_id in dataset.period_ids(period_type)
        if year is None or period_year(period_id) == str(year)
    ]
    rows = []
    for period_id in periods:
        values = dataset.consultant_allocations(period_type, period_id, consultant)
        row: Dict[str, object] = {
            "period": period_id,
            "label": period_label(period_type, period_id),
            "column": week_column_label(period_id) if period_type == "week" else period_id,
        }
        for project in dataset.projects:
            row[project] = values.get(project, 0)
        total = sum(values.get(project, 0) for project in dataset.projects)
        row[TOTAL_COLUMN] = total
        row["Overbooked"] = overbooked(total, threshold)
        rows.append(row)
    columns = ["period", "label", "column", *dataset.projects, TOTAL_COLUMN, "Overbooked"]
    return pd.DataFrame(rows, columns=columns)


def default_range(dataset: Dataset) -> Tuple[date, date]:
    weeks = dataset.week_ids()
    if not weeks:
        raise ValueError("dataset has no week periods")
    return week_bounds(weeks[0]).start, week_bounds(weeks[-1]).end


def available_years(dataset: Dataset) -> List[str]:
    years = {period_year(period_id) for period_id in dataset.week_ids()}
    years.update(period_year(period_id) for period_id in dataset.month_ids())
    return sorted(years)
