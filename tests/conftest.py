from datetime import date

import pytest

from allocation_tracker.models import TrackerConfig
from allocation_tracker.seed import empty_dataset, generate_dataset
from allocation_tracker.store import AllocationStore


@pytest.fixture
def small_dataset():
    # Weeks 2025-W40 .. 2026-W01, months 2025-09 .. 2025-12
    dataset = empty_dataset(["Ginny", "Kit"], ["Alpha", "Beta"], date(2025, 9, 29), date(2025, 12, 31))
    full_range = dataset.full_week_range()
    for project in dataset.projects:
        dataset.projects_info[project] = full_range
    return dataset


@pytest.fixture
def small_store(small_dataset):
    return AllocationStore(small_dataset)


@pytest.fixture
def seed_dataset():
    return generate_dataset()


@pytest.fixture
def tracker_config(tmp_path):
    return TrackerConfig(data_path=str(tmp_path / "allocations.json"))
