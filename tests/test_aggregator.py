from datetime import date

import pytest

from allocation_tracker import aggregator
from allocation_tracker.models import InvalidRange
from allocation_tracker.propagation import update_project


def test_periods_overlapping_includes_partial_weeks(seed_dataset):
    periods = aggregator.periods_overlapping(seed_dataset, "week", date(2025, 10, 20), date(2025, 11, 20))
    assert periods == ["2025-W43", "2025-W44", "2025-W45", "2025-W46", "2025-W47"]

    months = aggregator.periods_overlapping(seed_dataset, "month", date(2025, 10, 20), date(2025, 11, 20))
    assert months == ["2025-10", "2025-11"]


def test_periods_overlapping_range_inside_one_period(seed_dataset):
    # Wednesday to Thursday of the same week
    assert aggregator.periods_overlapping(seed_dataset, "week", date(2025, 10, 22), date(2025, 10, 23)) == [
        "2025-W43"
    ]
    assert aggregator.periods_overlapping(seed_dataset, "month", date(2025, 10, 22), date(2025, 10, 23)) == [
        "2025-10"
    ]


def test_periods_overlapping_rejects_reversed_range(seed_dataset):
    with pytest.raises(InvalidRange):
        aggregator.periods_overlapping(seed_dataset, "week", date(2025, 11, 20), date(2025, 10, 20))


def test_periods_overlapping_outside_dataset_is_empty(seed_dataset):
    assert aggregator.periods_overlapping(seed_dataset, "week", date(2030, 1, 1), date(2030, 2, 1)) == []


def test_summarize_averages_rather_than_sums(small_dataset):
    update_project(small_dataset, "Alpha", "2025-W40", "2025-W43", {"Ginny": 20})
    periods = aggregator.periods_overlapping(small_dataset, "week", date(2025, 9, 29), date(2025, 10, 26))
    assert len(periods) == 4

    summary = aggregator.summarize(small_dataset, "Ginny", periods)
    assert summary.averages == {"Alpha": 20.0, "Beta": 0.0}
    assert summary.total == 20.0
    assert summary.period_count == 4
    assert not summary.overbooked


def test_summarize_partial_assignment_is_weighted(small_dataset):
    update_project(small_dataset, "Alpha", "2025-W40", "2025-W41", {"Kit": 40})
    periods = ["2025-W40", "2025-W41", "2025-W42", "2025-W43"]
    summary = aggregator.summarize(small_dataset, "Kit", periods)
    assert summary.averages["Alpha"] == pytest.approx(20.0)


def test_summarize_empty_periods_is_zero(small_dataset):
    summary = aggregator.summarize(small_dataset, "Ginny", [])
    assert summary.total == 0.0
    assert summary.period_count == 0
    assert set(summary.averages.values()) == {0.0}


def test_seed_summary_for_ginny_and_kit(seed_dataset):
    periods = aggregator.periods_overlapping(seed_dataset, "week", date(2025, 10, 20), date(2025, 11, 20))
    ginny = aggregator.summarize(seed_dataset, "Ginny", periods)
    assert ginny.averages["Stand Together"] == pytest.approx(20.0)
    assert ginny.averages["Omega Healthcare Management Services"] == pytest.approx(30.0)
    assert ginny.averages["OmniSource"] == pytest.approx(18.0)
    assert ginny.total == pytest.approx(68.0)

    kit = aggregator.summarize(seed_dataset, "Kit", periods)
    assert kit.total == pytest.approx(75.0)


def test_seed_summary_by_month(seed_dataset):
    months = aggregator.periods_overlapping(seed_dataset, "month", date(2025, 10, 20), date(2025, 11, 20))
    ginny = aggregator.summarize(seed_dataset, "Ginny", months)
    assert ginny.averages["OmniSource"] == pytest.approx(15.0)
    assert ginny.total == pytest.approx(65.0)


def test_export_keeps_overbooking_visible(small_dataset):
    small_dataset.consultant_allocations("week", "2025-W45", "Kit")["Alpha"] = 70
    small_dataset.consultant_allocations("week", "2025-W45", "Kit")["Beta"] = 50

    table = aggregator.export_table(small_dataset, ["2025-W45"])
    kit = table[table[aggregator.CONSULTANT_COLUMN] == "Kit"].iloc[0]
    assert kit["Alpha"] == "70.00"
    assert kit["Beta"] == "50.00"
    assert kit[aggregator.TOTAL_COLUMN] == "120.00"
    assert aggregator.summarize(small_dataset, "Kit", ["2025-W45"]).overbooked


def test_export_csv_quotes_names_with_commas(seed_dataset):
    periods = aggregator.periods_overlapping(seed_dataset, "week", date(2025, 10, 20), date(2025, 11, 20))
    lines = aggregator.export_csv(seed_dataset, periods).splitlines()

    assert lines[0] == (
        'Consultant,Stand Together,EisnerAmper,"OPOS, Inc.",Omega Healthcare Management Services,'
        'iMethods,"Divurgent, LLC",EQUIPX,OmniSource,SPX Outreach,SPX Sales,'
        "SPX Management / Operations,Vacation,Total (%)"
    )
    assert lines[1] == "Ginny,20.00,0.00,0.00,30.00,0.00,0.00,0.00,18.00,0.00,0.00,0.00,0.00,68.00"
    assert len(lines) == 1 + len(seed_dataset.consultants)


def test_export_filename():
    assert aggregator.export_filename(date(2025, 10, 20), date(2025, 11, 20)) == (
        "allocation_2025-10-20_to_2025-11-20.csv"
    )


def test_summary_table_flags_overbooked(small_dataset):
    small_dataset.consultant_allocations("week", "2025-W45", "Ginny")["Alpha"] = 101
    table = aggregator.summary_table(small_dataset, ["2025-W45"])
    assert list(table.columns) == ["Consultant", "Alpha", "Beta", "Total (%)", "Overbooked"]
    assert table.set_index("Consultant")["Overbooked"].to_dict() == {"Ginny": True, "Kit": False}

    relaxed = aggregator.summary_table(small_dataset, ["2025-W45"], threshold=150)
    assert not relaxed["Overbooked"].any()


def test_overbooking_threshold_is_strict():
    assert not aggregator.overbooked(100.0)
    assert aggregator.overbooked(100.01)


def test_period_grid_and_overbooking_report(small_dataset):
    small_dataset.consultant_allocations("week", "2025-W44", "Kit")["Alpha"] = 80
    small_dataset.consultant_allocations("week", "2025-W44", "Kit")["Beta"] = 40
    periods = ["2025-W44", "2025-W45"]

    grid = aggregator.period_grid(small_dataset, "week", periods)
    assert list(grid.columns) == ["consultant", "period", "label", "Alpha", "Beta", "total_pct"]
    assert len(grid) == 4
    kit_row = grid[(grid["consultant"] == "Kit") & (grid["period"] == "2025-W44")].iloc[0]
    assert kit_row["total_pct"] == 120
    assert kit_row["label"] == "2025 Week 44"

    report = aggregator.overbooking_report(small_dataset, "week", periods)
    assert report.to_dict(orient="records") == [
        {"consultant": "Kit", "period": "2025-W44", "label": "2025 Week 44", "total_pct": 120}
    ]


def test_consultant_period_table_filters_by_year(small_dataset):
    small_dataset.consultant_allocations("week", "2026-W01", "Ginny")["Beta"] = 10
    table = aggregator.consultant_period_table(small_dataset, "Ginny", "week", year="2026")
    assert table["period"].tolist() == ["2026-W01"]
    assert table.iloc[0]["Beta"] == 10
    assert table.iloc[0][aggregator.TOTAL_COLUMN] == 10

    months = aggregator.consultant_period_table(small_dataset, "Ginny", "month")
    assert months["label"].tolist() == ["2025-09", "2025-10", "2025-11", "2025-12"]


def test_default_range_and_years(small_dataset):
    assert aggregator.default_range(small_dataset) == (date(2025, 9, 29), date(2026, 1, 4))
    assert aggregator.available_years(small_dataset) == ["2025", "2026"]


def test_consultant_period_table_column_headers(small_dataset):
    weeks = aggregator.consultant_period_table(small_dataset, "Kit", "week", year="2025")
    assert weeks.loc[weeks["period"] == "2025-W44", "column"].item() == "Oct 31"
    assert weeks.loc[weeks["period"] == "2025-W44", "label"].item() == "2025 Week 44"

    months = aggregator.consultant_period_table(small_dataset, "Kit", "month")
    assert months["column"].tolist() == months["period"].tolist()
