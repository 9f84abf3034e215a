from __future__ import annotations

import os
from datetime import date
from pathlib import Path
from typing import Dict, Optional, Tuple

from flask import Flask, Response, jsonify, request

from allocation_tracker import aggregator
from allocation_tracker.io_utils import JsonDatasetStore, load_config, parse_date
from allocation_tracker.models import (
    DuplicateEntity,
    InvalidRange,
    NotFound,
    PersistenceError,
    TrackerConfig,
    validate_period_type,
)
from allocation_tracker.periods import iso_week_of
from allocation_tracker.propagation import assigned_consultants, assigned_projects
from allocation_tracker.store import AllocationStore


def _resolve_config() -> TrackerConfig:
    env_value = os.getenv("ALLOCATION_CONFIG")
    if env_value:
        return load_config(Path(env_value).expanduser())
    return TrackerConfig.default()


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def _range_args(store: AllocationStore) -> Tuple[str, date, date]:
    period_type = validate_period_type(request.args.get("period_type", "week"))
    default_start, default_end = aggregator.default_range(store.dataset)
    start_raw = request.args.get("start")
    end_raw = request.args.get("end")
    start = parse_date(start_raw, "start") if start_raw else default_start
    end = parse_date(end_raw, "end") if end_raw else default_end
    if start > end:
        raise InvalidRange(start, end)
    return period_type, start, end


def _week_or_none(value: object, field_name: str) -> Optional[str]:
    if value in (None, ""):
        return None
    return iso_week_of(parse_date(value, field_name))


def _parse_percent_map(raw: object, field_name: str) -> Dict[str, int]:
    if not isinstance(raw, dict):
        raise ValueError(f"{field_name} must be an object")
    parsed: Dict[str, int] = {}
    for key, value in raw.items():
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise ValueError(f"{field_name}.{key} must be a number")
        parsed[str(key)] = int(value)
    return parsed


def create_app(
    config: Optional[TrackerConfig] = None,
    persistence: Optional[object] = None,
) -> Flask:
    app = Flask(__name__)
    cfg = config or _resolve_config()
    persistence = persistence or JsonDatasetStore(cfg.data_path)
    store = AllocationStore.open(persistence, cfg)
    threshold = cfg.overbooking_threshold_pct
    app.config["TRACKER_CONFIG"] = cfg
    app.config["ALLOCATION_STORE"] = store

    @app.errorhandler(DuplicateEntity)
    def _duplicate(exc: DuplicateEntity):
        return _error(str(exc), 409)

    @app.errorhandler(NotFound)
    def _not_found(exc: NotFound):
        return _error(str(exc), 404)

    @app.errorhandler(PersistenceError)
    def _save_failed(exc: PersistenceError):
        return _error(str(exc), 500)

    @app.errorhandler(ValueError)
    def _bad_request(exc: ValueError):
        return _error(str(exc), 400)

    @app.get("/api/dataset")
    def get_dataset():
        return jsonify(store.dataset.to_dict())

    @app.get("/api/summary")
    def get_summary():
        period_type, start, end = _range_args(store)
        periods = aggregator.periods_overlapping(store.dataset, period_type, start, end)
        summaries = aggregator.summarize_all(store.dataset, periods)
        return jsonify(
            {
                "start": start.isoformat(),
                "end": end.isoformat(),
                "period_type": period_type,
                "periods": periods,
                "consultants": [
                    dict(s.to_dict(), overbooked=aggregator.overbooked(s.total, threshold))
                    for s in summaries
                ],
            }
        )

    @app.get("/api/export")
    def export_summary():
        period_type, start, end = _range_args(store)
        periods = aggregator.periods_overlapping(store.dataset, period_type, start, end)
        filename = aggregator.export_filename(start, end)
        return Response(
            aggregator.export_csv(store.dataset, periods),
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    @app.get("/api/grid")
    def get_grid():
        period_type, start, end = _range_args(store)
        periods = aggregator.periods_overlapping(store.dataset, period_type, start, end)
        grid = aggregator.period_grid(store.dataset, period_type, periods)
        return jsonify({"period_type": period_type, "rows": grid.to_dict(orient="records")})

    @app.get("/api/overbooked")
    def get_overbooked():
        period_type, start, end = _range_args(store)
        periods = aggregator.periods_overlapping(store.dataset, period_type, start, end)
        report = aggregator.overbooking_report(store.dataset, period_type, periods, threshold)
        return jsonify({"period_type": period_type, "rows": report.to_dict(orient="records")})

    @app.get("/api/consultants")
    def list_consultants():
        dataset = store.dataset
        return jsonify(
            [
                {"name": name, "projects": assigned_projects(dataset, name)}
                for name in dataset.consultants
            ]
        )

    @app.post("/api/consultants")
    def create_consultant():
        data = request.get_json(silent=True) or {}
        name = store.add_consultant(str(data.get("name", "")))
        store.save()
        return jsonify({"name": name}), 201

    @app.delete("/api/consultants/<name>")
    def delete_consultant(name: str):
        removed = store.remove_consultant(name)
        if removed:
            store.save()
        return jsonify({"removed": removed})

    @app.get("/api/consultants/<name>/allocations")
    def get_consultant_allocations(name: str):
        if name not in store.dataset.consultants:
            raise NotFound("consultant", name)
        period_type = validate_period_type(request.args.get("period_type", "week"))
        year = request.args.get("year")
        table = aggregator.consultant_period_table(store.dataset, name, period_type, year, threshold)
        return jsonify(
            {
                "consultant": name,
                "period_type": period_type,
                "years": aggregator.available_years(store.dataset),
                "rows": table.to_dict(orient="records"),
            }
        )

    @app.put("/api/consultants/<name>/allocations")
    def save_consultant_allocations(name: str):
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return _error("request body must be an object", 400)
        period_type = validate_period_type(data.get("period_type", "week"))
        raw_edits = data.get("allocations")
        if not isinstance(raw_edits, dict):
            return _error("allocations must be an object", 400)
        edits = {
            str(period): _parse_percent_map(values, f"allocations.{period}")
            for period, values in raw_edits.items()
        }
        written = store.save_consultant_allocations(name, period_type, edits)
        store.save()
        return jsonify({"written": written})

    @app.get("/api/projects")
    def list_projects():
        dataset = store.dataset
        rows = []
        for project in dataset.projects:
            info = dataset.projects_info.get(project)
            rows.append(
                {
                    "name": project,
                    "start": info.start if info else None,
                    "end": info.end if info else None,
                    "consultants": assigned_consultants(dataset, project),
                }
            )
        return jsonify(rows)

    @app.post("/api/projects")
    def create_project():
        data = request.get_json(silent=True) or {}
        name = store.add_project(str(data.get("name", "")))
        store.save()
        info = store.dataset.projects_info[name]
        return jsonify({"name": name, **info.to_dict()}), 201

    @app.delete("/api/projects/<name>")
    def delete_project(name: str):
        removed = store.remove_project(name)
        if removed:
            store.save()
        return jsonify({"removed": removed})

    @app.put("/api/projects/<name>")
    def update_project(name: str):
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return _error("request body must be an object", 400)
        start_week = _week_or_none(data.get("start_date"), "start_date")
        end_week = _week_or_none(data.get("end_date"), "end_date")
        assignments = None
        if data.get("assignments") is not None:
            assignments = _parse_percent_map(data["assignments"], "assignments")
        targets = store.update_project(name, start_week, end_week, assignments)
        store.save()
        info = store.dataset.projects_info[name]
        return jsonify(
            {
                "name": name,
                **info.to_dict(),
                "weeks": list(targets.weeks),
                "months": list(targets.months),
            }
        )

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
