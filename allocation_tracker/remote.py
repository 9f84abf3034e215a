"""REST client for the optional hosted allocation store.

The remote side exposes PostgREST-style tables ``consultants``,
``projects`` and ``allocations``.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

import requests

from .models import PERIOD_TYPES, Dataset, TrackerConfig, validate_period_type
from .periods import period_bounds

logger = logging.getLogger(__name__)


class RemoteStoreError(RuntimeError):
    """Raised when the remote store rejects a request or cannot be reached."""


class RemoteStoreClient:
    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        *,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers: Dict[str, str] = {"Content-Type": "application/json"}
        if api_key:
            self.headers["apikey"] = api_key
            self.headers["Authorization"] = f"Bearer {api_key}"

    @classmethod
    def from_config(cls, config: TrackerConfig, **kwargs: Any) -> "RemoteStoreClient":
        if not config.has_remote():
            raise ValueError("remote_url is not configured")
        return cls(config.remote_url, config.remote_api_key, **kwargs)

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: Any = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        headers = dict(self.headers)
        if prefer:
            headers["Prefer"] = prefer
        url = f"{self.base_url}/{table}"
        try:
            resp = self.session.request(
                method, url, params=params, json=json, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise RemoteStoreError(f"cannot reach remote store at {url}") from exc
        if resp.status_code >= 400:
            raise RemoteStoreError(f"{method} {table} failed ({resp.status_code}): {resp.text}")
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    @staticmethod
    def _single(data: Any, what: str) -> Dict[str, Any]:
        if isinstance(data, list):
            if len(data) != 1:
                raise RemoteStoreError(f"expected one {what} row, got {len(data)}")
            return data[0]
        if not isinstance(data, dict):
            raise RemoteStoreError(f"unexpected {what} payload")
        return data

    def list_consultants(self) -> List[Dict[str, Any]]:
        return self._request("GET", "consultants", params={"select": "*", "order": "name"}) or []

    def create_consultant(self, name: str) -> Dict[str, Any]:
        data = self._request(
            "POST", "consultants", json={"name": name}, prefer="return=representation"
        )
        return self._single(data, "consultant")

    def delete_consultant(self, consultant_id: Any) -> None:
        self._request("DELETE", "consultants", params={"id": f"eq.{consultant_id}"})

    def list_projects(self) -> List[Dict[str, Any]]:
        return self._request("GET", "projects", params={"select": "*", "order": "name"}) or []

    def upsert_allocation(
        self,
        consultant_id: Any,
        project_id: Any,
        period_start: date,
        period_type: str,
        percent: int,
    ) -> Dict[str, Any]:
        payload = {
            "consultant_id": consultant_id,
            "project_id": project_id,
            "period_start": period_start.isoformat(),
            "period_type": validate_period_type(period_type),
            "percent": int(percent),
        }
        data = self._request(
            "POST",
            "allocations",
            json=payload,
            prefer="resolution=merge-duplicates,return=representation",
        )
        return self._single(data, "allocation")

    def query_allocations(
        self, consultant_id: Any, period_type: str, start: date, end: date
    ) -> List[Dict[str, Any]]:
        params = [
            ("select", "*,consultants(*),projects(*)"),
            ("consultant_id", f"eq.{consultant_id}"),
            ("period_type", f"eq.{validate_period_type(period_type)}"),
            ("period_start", f"gte.{start.isoformat()}"),
            ("period_start", f"lte.{end.isoformat()}"),
        ]
        return self._request("GET", "allocations", params=params) or []


def publish_dataset(dataset: Dataset, client: RemoteStoreClient) -> int:
    """Upsert every non-zero allocation; missing consultants are created.

    Projects must already exist remotely. Returns the number of rows sent.
    """
    consultant_ids = {row["name"]: row["id"] for row in client.list_consultants()}
    for consultant in dataset.consultants:
        if consultant not in consultant_ids:
            consultant_ids[consultant] = client.create_consultant(consultant)["id"]
    project_ids = {row["name"]: row["id"] for row in client.list_projects()}
    missing = [project for project in dataset.projects if project not in project_ids]
    if missing:
        raise RemoteStoreError(f"projects missing on remote store: {', '.join(missing)}")
    sent = 0
    for period_type in PERIOD_TYPES:
        for period_id in dataset.period_ids(period_type):
            period_start = period_bounds(period_type, period_id).start
            for consultant, values in dataset.allocations(period_type)[period_id].items():
                if consultant not in consultant_ids:
                    continue
                for project, percent in values.items():
                    if not percent or project not in project_ids:
                        continue
                    client.upsert_allocation(
                        consultant_ids[consultant],
                        project_ids[project],
                        period_start,
                        period_type,
                        percent,
                    )
                    sent += 1
    logger.info("published %d allocations to %s", sent, client.base_url)
    return sent
