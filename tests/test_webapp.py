import json
from datetime import date

import pytest

from allocation_tracker.models import PersistenceError, TrackerConfig
from allocation_tracker.seed import empty_dataset
from webapp.app import create_app


@pytest.fixture
def app(tracker_config):
    return create_app(config=tracker_config)


@pytest.fixture
def client(app):
    return app.test_client()


def test_startup_writes_seed_dataset(app, tracker_config):
    with open(tracker_config.data_path) as handle:
        stored = json.load(handle)
    assert len(stored["consultants"]) == 14
    assert "projects_info" in stored


def test_env_var_selects_config(tmp_path, monkeypatch):
    config_path = tmp_path / "tracker.json"
    config_path.write_text(json.dumps({"data_path": "store/allocations.json"}))
    monkeypatch.setenv("ALLOCATION_CONFIG", str(config_path))
    app = create_app()
    assert app.config["TRACKER_CONFIG"].data_path == str(tmp_path / "store" / "allocations.json")
    assert (tmp_path / "store" / "allocations.json").exists()


def test_summary_for_range(client):
    resp = client.get("/api/summary?start=2025-10-20&end=2025-11-20")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["periods"] == ["2025-W43", "2025-W44", "2025-W45", "2025-W46", "2025-W47"]
    ginny = next(row for row in body["consultants"] if row["consultant"] == "Ginny")
    assert ginny["total"] == 68.0
    assert ginny["averages"]["OmniSource"] == 18.0
    assert ginny["overbooked"] is False


def test_summary_by_month(client):
    body = client.get("/api/summary?start=2025-10-20&end=2025-11-20&period_type=month").get_json()
    assert body["periods"] == ["2025-10", "2025-11"]


def test_summary_rejects_bad_arguments(client):
    assert client.get("/api/summary?start=2025-11-20&end=2025-10-20").status_code == 400
    assert client.get("/api/summary?period_type=quarter").status_code == 400
    resp = client.get("/api/summary?start=yesterday")
    assert resp.status_code == 400
    assert "start" in resp.get_json()["error"]


def test_export_csv_download(client):
    resp = client.get("/api/export?start=2025-10-20&end=2025-11-20")
    assert resp.status_code == 200
    assert resp.mimetype == "text/csv"
    assert "allocation_2025-10-20_to_2025-11-20.csv" in resp.headers["Content-Disposition"]
    lines = resp.get_data(as_text=True).splitlines()
    assert lines[0].startswith('Consultant,Stand Together,EisnerAmper,"OPOS, Inc."')
    assert lines[1].endswith(",68.00")


def test_consultant_lifecycle(client, tracker_config):
    assert client.post("/api/consultants", json={"name": "Nadia"}).status_code == 201
    assert client.post("/api/consultants", json={"name": "Nadia"}).status_code == 409
    assert client.post("/api/consultants", json={"name": "  "}).status_code == 400

    names = [row["name"] for row in client.get("/api/consultants").get_json()]
    assert names[-1] == "Nadia"
    with open(tracker_config.data_path) as handle:
        assert "Nadia" in json.load(handle)["consultants"]

    assert client.delete("/api/consultants/Nadia").get_json() == {"removed": True}
    assert client.delete("/api/consultants/Nadia").get_json() == {"removed": False}


def test_consultant_projects_listing(client):
    rows = {row["name"]: row["projects"] for row in client.get("/api/consultants").get_json()}
    assert rows["Ginny"] == ["Stand Together", "Omega Healthcare Management Services", "OmniSource"]
    assert rows["Johanne"] == ["Omega Healthcare Management Services"]


def test_consultant_allocation_editor(client):
    resp = client.put(
        "/api/consultants/Shaun/allocations",
        json={"period_type": "week", "allocations": {"2025-W41": {"Vacation": 100, "iMethods": 10}}},
    )
    assert resp.get_json() == {"written": 2}

    body = client.get("/api/consultants/Shaun/allocations?period_type=week&year=2025").get_json()
    assert body["years"] == ["2025", "2026"]
    row = next(r for r in body["rows"] if r["period"] == "2025-W41")
    assert row["Vacation"] == 100
    assert row["Total (%)"] == 110
    assert row["Overbooked"] is True
    assert all(r["period"].startswith("2025") for r in body["rows"])


def test_allocation_editor_errors(client):
    assert client.get("/api/consultants/Nobody/allocations").status_code == 404
    assert client.put("/api/consultants/Nobody/allocations", json={"allocations": {}}).status_code == 404
    assert client.put("/api/consultants/Shaun/allocations", json={"allocations": []}).status_code == 400
    bad_value = {"allocations": {"2025-W41": {"Vacation": "all"}}}
    assert client.put("/api/consultants/Shaun/allocations", json=bad_value).status_code == 400


def test_project_update_propagates(client):
    resp = client.put(
        "/api/projects/Vacation",
        json={"start_date": "2025-10-01", "end_date": "2025-10-26", "assignments": {"Michael": 40}},
    )
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["start"] == "2025-W40"
    assert body["end"] == "2025-W43"
    assert body["weeks"] == ["2025-W40", "2025-W41", "2025-W42", "2025-W43"]
    assert body["months"] == ["2025-10"]

    projects = {row["name"]: row for row in client.get("/api/projects").get_json()}
    assert projects["Vacation"]["consultants"] == {"Michael": 40}

    extended = client.put("/api/projects/Vacation", json={"end_date": "2025-11-09"}).get_json()
    assert extended["end"] == "2025-W45"
    assert extended["months"] == ["2025-10", "2025-11"]
    summary = client.get("/api/summary?start=2025-11-03&end=2025-11-09").get_json()
    michael = next(row for row in summary["consultants"] if row["consultant"] == "Michael")
    assert michael["averages"]["Vacation"] == 40.0


def test_project_update_errors(client):
    assert client.put("/api/projects/Nope", json={}).status_code == 404
    reversed_range = {"start_date": "2025-11-01", "end_date": "2025-10-01"}
    assert client.put("/api/projects/Vacation", json=reversed_range).status_code == 400
    unknown = {"assignments": {"Nobody": 10}}
    assert client.put("/api/projects/Vacation", json=unknown).status_code == 404
    assert client.put("/api/projects/Vacation", data="nope").status_code == 400


def test_project_create_and_delete(client):
    resp = client.post("/api/projects", json={"name": "Apollo"})
    assert resp.status_code == 201
    assert resp.get_json() == {"name": "Apollo", "start": "2025-W40", "end": "2026-W53"}
    assert client.post("/api/projects", json={"name": "Apollo"}).status_code == 409
    assert client.delete("/api/projects/Apollo").get_json() == {"removed": True}


def test_grid_and_overbooked_routes(client):
    client.put(
        "/api/consultants/Kit/allocations",
        json={"period_type": "week", "allocations": {"2025-W44": {"Vacation": 50}}},
    )
    grid = client.get("/api/grid?start=2025-10-27&end=2025-11-02").get_json()
    assert len(grid["rows"]) == 14
    report = client.get("/api/overbooked?start=2025-10-27&end=2025-11-02").get_json()
    assert report["rows"] == [
        {"consultant": "Kit", "period": "2025-W44", "label": "2025 Week 44", "total_pct": 125}
    ]


class FailingPersistence:
    def load(self):
        dataset = empty_dataset(["Ginny"], ["Alpha"], date(2025, 10, 1), date(2025, 10, 31))
        dataset.projects_info["Alpha"] = dataset.full_week_range()
        return dataset

    def save(self, dataset):
        raise PersistenceError("disk full")


def test_save_failure_is_reported(tmp_path):
    app = create_app(config=TrackerConfig(data_path=str(tmp_path / "unused.json")), persistence=FailingPersistence())
    resp = app.test_client().post("/api/consultants", json={"name": "Kit"})
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "disk full"}


def test_allocation_editor_rejects_unknown_keys(client):
    typo = {"period_type": "week", "allocations": {"2025-W5": {"Vacation": 10}}}
    assert client.put("/api/consultants/Shaun/allocations", json=typo).status_code == 400
    outside = {"period_type": "week", "allocations": {"2030-W10": {"Vacation": 10}}}
    assert client.put("/api/consultants/Shaun/allocations", json=outside).status_code == 404
    ghost_project = {"period_type": "week", "allocations": {"2025-W41": {"Moonshot": 10}}}
    assert client.put("/api/consultants/Shaun/allocations", json=ghost_project).status_code == 404

    assert client.get("/api/summary?start=2025-10-20&end=2025-11-20").status_code == 200
    stored = client.get("/api/dataset").get_json()
    assert "2025-W5" not in stored["periods"]["week"]
    assert "Moonshot" not in stored["periods"]["week"]["2025-W41"]["Shaun"]


def test_editor_rows_carry_friday_headers(client):
    body = client.get("/api/consultants/Ginny/allocations?period_type=week&year=2025").get_json()
    row = next(r for r in body["rows"] if r["period"] == "2025-W41")
    assert row["column"] == "Oct 10"
