from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

Consultant = str
ProjectName = str
PeriodId = str
PeriodType = str

PERIOD_TYPES = ("week", "month")

# period id -> consultant -> project -> percent
PeriodAllocations = Dict[PeriodId, Dict[Consultant, Dict[ProjectName, int]]]


class TrackerError(RuntimeError):
    """Base class for allocation tracker failures."""


class DuplicateEntity(TrackerError):
    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} '{name}' already exists")
        self.kind = kind
        self.name = name


class NotFound(TrackerError):
    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} '{name}' not found")
        self.kind = kind
        self.name = name


class MalformedPersistedState(TrackerError):
    """Stored dataset failed structural validation."""


class PersistenceError(TrackerError):
    """Saving the dataset failed; in-memory state is unchanged."""


class InvalidRange(ValueError):
    def __init__(self, start: object, end: object) -> None:
        super().__init__(f"start {start} is after end {end}")
        self.start = start
        self.end = end


def validate_period_type(period_type: str) -> PeriodType:
    if period_type not in PERIOD_TYPES:
        raise ValueError(f"unsupported period type '{period_type}' (expected week or month)")
    return period_type


@dataclass(frozen=True)
class ProjectInfo:
    """Active range of a project, as inclusive ISO week ids."""

    start: PeriodId
    end: PeriodId

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start, "end": self.end}


@dataclass
class Dataset:
    """Aggregate root: roster, project ranges and the sparse allocation map."""

    consultants: List[Consultant] = field(default_factory=list)
    projects: List[ProjectName] = field(default_factory=list)
    projects_info: Dict[ProjectName, ProjectInfo] = field(default_factory=dict)
    periods: Dict[PeriodType, PeriodAllocations] = field(
        default_factory=lambda: {period_type: {} for period_type in PERIOD_TYPES}
    )

    def allocations(self, period_type: PeriodType) -> PeriodAllocations:
        return self.periods.setdefault(validate_period_type(period_type), {})

    def period_ids(self, period_type: PeriodType) -> List[PeriodId]:
        return sorted(self.allocations(period_type))

    def week_ids(self) -> List[PeriodId]:
        return self.period_ids("week")

    def month_ids(self) -> List[PeriodId]:
        return self.period_ids("month")

    def full_week_range(self) -> ProjectInfo:
        weeks = self.week_ids()
        if not weeks:
            raise ValueError("dataset has no week periods")
        return ProjectInfo(start=weeks[0], end=weeks[-1])

    def consultant_allocations(
        self,
        period_type: PeriodType,
        period_id: PeriodId,
        consultant: Consultant,
        *,
        create: bool = False,
    ) -> Dict[ProjectName, int]:
        period_map = self.allocations(period_type)
        if create:
            return period_map.setdefault(period_id, {}).setdefault(consultant, {})
        return period_map.get(period_id, {}).get(consultant, {})

    def get(
        self,
        period_type: PeriodType,
        period_id: PeriodId,
        consultant: Consultant,
        project: ProjectName,
    ) -> int:
        return self.consultant_allocations(period_type, period_id, consultant).get(project, 0)

    def to_dict(self) -> Dict[str, object]:
        return {
            "consultants": list(self.consultants),
            "projects": list(self.projects),
            "projects_info": {name: info.to_dict() for name, info in self.projects_info.items()},
            "periods": {
                period_type: {
                    period_id: {
                        consultant: dict(values) for consultant, values in by_consultant.items()
                    }
                    for period_id, by_consultant in self.allocations(period_type).items()
                }
                for period_type in PERIOD_TYPES
            },
        }

    @classmethod
    def from_dict(cls, data: object) -> "Dataset":
        """Build a dataset from its JSON document.

        Raises MalformedPersistedState when a required collection is missing
        or has the wrong shape. Documents written by the browser dashboard
        use ``projectsInfo``; both spellings are accepted.
        """
        if not isinstance(data, dict):
            raise MalformedPersistedState("dataset must be a JSON object")
        consultants = data.get("consultants")
        projects = data.get("projects")
        periods = data.get("periods")
        if not isinstance(consultants, list) or not all(isinstance(c, str) for c in consultants):
            raise MalformedPersistedState("consultants must be an array of names")
        if not isinstance(projects, list) or not all(isinstance(p, str) for p in projects):
            raise MalformedPersistedState("projects must be an array of names")
        if not isinstance(periods, dict):
            raise MalformedPersistedState("periods must be an object")
        parsed_periods: Dict[PeriodType, PeriodAllocations] = {}
        for period_type in PERIOD_TYPES:
            raw = periods.get(period_type)
            if not isinstance(raw, dict):
                raise MalformedPersistedState(f"periods.{period_type} must be an object")
            parsed_periods[period_type] = _parse_period_map(raw, period_type)
            if not parsed_periods[period_type]:
                raise MalformedPersistedState(f"periods.{period_type} has no periods")
        raw_info = data.get("projects_info", data.get("projectsInfo")) or {}
        if not isinstance(raw_info, dict):
            raise MalformedPersistedState("projects_info must be an object")
        projects_info: Dict[ProjectName, ProjectInfo] = {}
        for name, info in raw_info.items():
            if not isinstance(info, dict) or not info.get("start") or not info.get("end"):
                raise MalformedPersistedState(f"projects_info entry for '{name}' needs start and end")
            for bound in ("start", "end"):
                _check_period_id("week", str(info[bound]), f"projects_info.{name}.{bound}")
            projects_info[str(name)] = ProjectInfo(start=str(info["start"]), end=str(info["end"]))
        return cls(
            consultants=list(consultants),
            projects=list(projects),
            projects_info=projects_info,
            periods=parsed_periods,
        )


def _check_period_id(period_type: str, period_id: str, where: str) -> None:
    # periods imports this module, so the import stays local
    from .periods import period_bounds

    try:
        period_bounds(period_type, period_id)
    except ValueError as exc:
        raise MalformedPersistedState(f"{where}: {exc}") from exc


def _parse_period_map(raw: Dict[str, object], period_type: str) -> PeriodAllocations:
    parsed: PeriodAllocations = {}
    for period_id, by_consultant in raw.items():
        _check_period_id(period_type, str(period_id), f"periods.{period_type}")
        if not isinstance(by_consultant, dict):
            raise MalformedPersistedState(f"periods.{period_type}.{period_id} must be an object")
        parsed_period: Dict[Consultant, Dict[ProjectName, int]] = {}
        for consultant, values in by_consultant.items():
            if not isinstance(values, dict):
                raise MalformedPersistedState(
                    f"periods.{period_type}.{period_id}.{consultant} must be an object"
                )
            try:
                parsed_period[consultant] = {
                    str(project): int(percent) for project, percent in values.items()
                }
            except (TypeError, ValueError) as exc:
                raise MalformedPersistedState(
                    f"non-numeric allocation in periods.{period_type}.{period_id}.{consultant}"
                ) from exc
        parsed[str(period_id)] = parsed_period
    return parsed


@dataclass(frozen=True)
class TrackerConfig:
    data_path: str = "data/allocations.json"
    global_start: date = date(2025, 10, 1)
    global_end: date = date(2026, 12, 31)
    seed_path: Optional[str] = None
    overbooking_threshold_pct: float = 100.0
    logging_level: str = "INFO"
    remote_url: Optional[str] = None
    remote_api_key: Optional[str] = None

    @classmethod
    def default(cls) -> "TrackerConfig":
        return cls()

    def has_remote(self) -> bool:
        return bool(self.remote_url)
