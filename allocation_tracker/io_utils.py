from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import Optional

import pandas as pd
from dateutil import parser as dateparser

from .models import Dataset, MalformedPersistedState, PersistenceError, TrackerConfig

logger = logging.getLogger(__name__)

_DEFAULTS = TrackerConfig.default()


def parse_date(value: object, field_name: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return dateparser.isoparse(str(value)).date()
    except (ValueError, TypeError) as exc:
        raise ValueError(f"{field_name} must be a valid ISO date string") from exc


def _optional_str(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string if provided")
    return value.strip() or None


def _resolve_relative(raw: Optional[str], base: Path) -> Optional[str]:
    if raw is None:
        return None
    candidate = Path(raw).expanduser()
    if not candidate.is_absolute():
        candidate = base / candidate
    return str(candidate)


def load_config(path: str | Path) -> TrackerConfig:
    """Parse the tracker configuration file.

    Relative ``data_path`` and ``seed_path`` values are resolved against the
    directory holding the configuration file.
    """
    config_path = Path(path)
    data = json.loads(config_path.read_text())
    if not isinstance(data, dict):
        raise ValueError("config file must be a JSON object")
    base = config_path.resolve().parent

    data_path = data.get("data_path", _DEFAULTS.data_path)
    if not isinstance(data_path, str) or not data_path.strip():
        raise ValueError("data_path must be a non-empty string")

    global_start = parse_date(data.get("global_start", _DEFAULTS.global_start.isoformat()), "global_start")
    global_end = parse_date(data.get("global_end", _DEFAULTS.global_end.isoformat()), "global_end")
    if global_end < global_start:
        raise ValueError("global_end must not be earlier than global_start")

    threshold = data.get("overbooking_threshold_pct", _DEFAULTS.overbooking_threshold_pct)
    if not isinstance(threshold, (int, float)) or isinstance(threshold, bool):
        raise ValueError("overbooking_threshold_pct must be a number")
    if threshold <= 0:
        raise ValueError("overbooking_threshold_pct must be positive")

    logging_level = data.get("logging_level", _DEFAULTS.logging_level)
    if not isinstance(logging_level, str):
        raise ValueError("logging_level must be a string")

    return TrackerConfig(
        data_path=_resolve_relative(data_path.strip(), base),
        global_start=global_start,
        global_end=global_end,
        seed_path=_resolve_relative(_optional_str(data, "seed_path"), base),
        overbooking_threshold_pct=float(threshold),
        logging_level=logging_level,
        remote_url=_optional_str(data, "remote_url"),
        remote_api_key=_optional_str(data, "remote_api_key"),
    )


class JsonDatasetStore:
    """Persistence contract backed by a single JSON document on disk.

    ``load()`` returns ``None`` when nothing has been saved yet and raises
    ``MalformedPersistedState`` when the document cannot be used.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> Optional[Dataset]:
        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text())
        except json.JSONDecodeError as exc:
            raise MalformedPersistedState(f"{self.path} is not valid JSON") from exc
        except OSError as exc:
            raise MalformedPersistedState(f"cannot read {self.path}: {exc}") from exc
        return Dataset.from_dict(raw)

    def save(self, dataset: Dataset) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(dataset.to_dict(), indent=2))
        except OSError as exc:
            raise PersistenceError(f"failed to save dataset to {self.path}: {exc}") from exc
        logger.info("saved dataset to %s", self.path)


def write_csv(df: pd.DataFrame, path: str | Path) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(target, index=False, lineterminator="\n")
    return target
