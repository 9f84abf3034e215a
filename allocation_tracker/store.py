from __future__ import annotations

import copy
import logging
from contextlib import contextmanager
from dataclasses import replace
from typing import Iterator, Mapping, Optional

from . import propagation
from .models import (
    PERIOD_TYPES,
    Consultant,
    Dataset,
    DuplicateEntity,
    MalformedPersistedState,
    NotFound,
    PeriodId,
    PeriodType,
    ProjectName,
    TrackerConfig,
    validate_period_type,
)
from .periods import period_bounds
from .propagation import TargetPeriods
from .seed import DEFAULT_SEED, generate_dataset, load_seed

logger = logging.getLogger(__name__)


def _clean_name(name: str, kind: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValueError(f"{kind} name is required")
    return cleaned


def seed_dataset(config: TrackerConfig) -> Dataset:
    if config.seed_path:
        seed = load_seed(config.seed_path)
    else:
        seed = replace(DEFAULT_SEED, start=config.global_start, end=config.global_end)
    return generate_dataset(seed)


class AllocationStore:
    """Single owner of a Dataset.

    Every mutation is computed on a staged deep copy and swapped in only
    once it has completed, so a failure part-way through leaves the
    previous state untouched.
    """

    def __init__(self, dataset: Dataset, persistence: Optional[object] = None) -> None:
        self._dataset = dataset
        self._persistence = persistence

    @classmethod
    def open(cls, persistence: object, config: Optional[TrackerConfig] = None) -> "AllocationStore":
        """Load the stored dataset, regenerating the seed if absent or malformed."""
        config = config or TrackerConfig.default()
        try:
            dataset = persistence.load()
        except MalformedPersistedState as exc:
            logger.warning("stored dataset is malformed (%s); regenerating seed data", exc)
            dataset = None
        regenerated = dataset is None
        if regenerated:
            logger.warning("no usable dataset found; generating seed dataset")
            dataset = seed_dataset(config)
        store = cls(dataset, persistence)
        if store.ensure_project_info() or regenerated:
            store.save()
        return store

    @property
    def dataset(self) -> Dataset:
        return self._dataset

    def snapshot(self) -> Dataset:
        return copy.deepcopy(self._dataset)

    def save(self) -> None:
        if self._persistence is None:
            raise RuntimeError("store has no persistence configured")
        self._persistence.save(self._dataset)

    @contextmanager
    def _transaction(self) -> Iterator[Dataset]:
        staged = copy.deepcopy(self._dataset)
        yield staged
        self._dataset = staged

    def _require_consultant(self, name: Consultant) -> None:
        if name not in self._dataset.consultants:
            raise NotFound("consultant", name)

    def _require_project(self, name: ProjectName) -> None:
        if name not in self._dataset.projects:
            raise NotFound("project", name)

    def _require_period(self, period_type: PeriodType, period_id: PeriodId) -> None:
        # malformed ids raise ValueError here
        period_bounds(period_type, period_id)
        if period_id not in self._dataset.allocations(period_type):
            raise NotFound(f"{period_type} period", period_id)

    def add_consultant(self, name: Consultant) -> Consultant:
        name = _clean_name(name, "consultant")
        if name in self._dataset.consultants:
            raise DuplicateEntity("consultant", name)
        with self._transaction() as staged:
            staged.consultants.append(name)
            for period_type in PERIOD_TYPES:
                for by_consultant in staged.allocations(period_type).values():
                    by_consultant.setdefault(name, {project: 0 for project in staged.projects})
        logger.debug("added consultant %s", name)
        return name

    def remove_consultant(self, name: Consultant) -> bool:
        if name not in self._dataset.consultants:
            return False
        with self._transaction() as staged:
            staged.consultants.remove(name)
            for period_type in PERIOD_TYPES:
                for by_consultant in staged.allocations(period_type).values():
                    by_consultant.pop(name, None)
        logger.debug("removed consultant %s", name)
        return True

    def add_project(self, name: ProjectName) -> ProjectName:
        name = _clean_name(name, "project")
        if name in self._dataset.projects:
            raise DuplicateEntity("project", name)
        with self._transaction() as staged:
            staged.projects.append(name)
            staged.projects_info[name] = staged.full_week_range()
            for period_type in PERIOD_TYPES:
                for by_consultant in staged.allocations(period_type).values():
                    for consultant in staged.consultants:
                        by_consultant.setdefault(consultant, {})[name] = 0
        logger.debug("added project %s", name)
        return name

    def remove_project(self, name: ProjectName) -> bool:
        if name not in self._dataset.projects:
            return False
        with self._transaction() as staged:
            staged.projects.remove(name)
            staged.projects_info.pop(name, None)
            for period_type in PERIOD_TYPES:
                for by_consultant in staged.allocations(period_type).values():
                    for values in by_consultant.values():
                        values.pop(name, None)
        logger.debug("removed project %s", name)
        return True

    def set_allocation(
        self,
        period_type: PeriodType,
        period_id: PeriodId,
        consultant: Consultant,
        project: ProjectName,
        percent: int,
    ) -> None:
        validate_period_type(period_type)
        self._require_period(period_type, period_id)
        self._require_consultant(consultant)
        self._require_project(project)
        value = int(percent)
        with self._transaction() as staged:
            staged.consultant_allocations(period_type, period_id, consultant, create=True)[project] = value

    def get_allocation(
        self,
        period_type: PeriodType,
        period_id: PeriodId,
        consultant: Consultant,
        project: ProjectName,
    ) -> int:
        if period_type not in PERIOD_TYPES:
            return 0
        return self._dataset.get(period_type, period_id, consultant, project)

    def save_consultant_allocations(
        self,
        consultant: Consultant,
        period_type: PeriodType,
        edits: Mapping[PeriodId, Mapping[ProjectName, int]],
    ) -> int:
        """Write an editor grid of ``{period: {project: percent}}`` in one go."""
        validate_period_type(period_type)
        self._require_consultant(consultant)
        for period_id, values in edits.items():
            self._require_period(period_type, period_id)
            for project in values:
                self._require_project(project)
        written = 0
        with self._transaction() as staged:
            for period_id, values in edits.items():
                target = staged.consultant_allocations(period_type, period_id, consultant, create=True)
                for project, percent in values.items():
                    target[project] = int(percent)
                    written += 1
        logger.debug("saved %d %s allocations for %s", written, period_type, consultant)
        return written

    def update_project(
        self,
        project: ProjectName,
        start: Optional[PeriodId] = None,
        end: Optional[PeriodId] = None,
        assignments: Optional[Mapping[Consultant, int]] = None,
    ) -> TargetPeriods:
        self._require_project(project)
        with self._transaction() as staged:
            targets = propagation.update_project(staged, project, start, end, assignments)
        return targets

    def ensure_project_info(self) -> bool:
        """Backfill missing project ranges and drop ranges of unknown projects.

        Returns True when anything changed.
        """
        dataset = self._dataset
        missing = [project for project in dataset.projects if project not in dataset.projects_info]
        stale = [project for project in dataset.projects_info if project not in dataset.projects]
        if not missing and not stale:
            return False
        with self._transaction() as staged:
            for project in stale:
                del staged.projects_info[project]
            if missing:
                full_range = staged.full_week_range()
                for project in missing:
                    staged.projects_info[project] = full_range
        logger.info("backfilled %d project ranges, dropped %d stale", len(missing), len(stale))
        return True
