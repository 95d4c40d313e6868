from __future__ import annotations

import math
import numbers
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional

import pandas as pd

from smartmonitor.errors import MonitorError, ReadingValidationError
from smartmonitor.models.domain import METRICS, Reading, new_id, utcnow

# Column aliases accepted in CSV exports (serial monitor labels and camelCase).
COLUMN_KEY_MAP: Mapping[str, str] = {
    "Temperature": "temperature",
    "Humidity": "humidity",
    "Gas Emission": "gas_emission",
    "gasEmission": "gas_emission",
    "gas": "gas_emission",
    "Vibration": "vibration",
    "Current": "current",
    "Device": "device_id",
    "deviceId": "device_id",
    "Timestamp": "timestamp",
    "time": "timestamp",
}


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def validate_reading(reading: Reading) -> Reading:
    """
    Reject readings with missing, non-numeric or non-finite metrics.
    Returns the reading, with a timezone-aware timestamp converted to naive
    UTC since that is how timestamps are compared and stored.
    """
    if not isinstance(reading, Reading):
        raise ReadingValidationError(f"Expected a Reading, got {type(reading).__name__}")
    problems = []
    for metric in METRICS:
        value = getattr(reading, metric)
        if value is None:
            problems.append(f"{metric} is missing")
        elif isinstance(value, bool) or not isinstance(value, numbers.Real):
            problems.append(f"{metric} is not a number ({value!r})")
        elif not math.isfinite(value):
            problems.append(f"{metric} is not finite ({value!r})")
    if not reading.device_id or not str(reading.device_id).strip():
        problems.append("device_id is empty")
    if not isinstance(reading.timestamp, datetime):
        problems.append("timestamp is not a datetime")
    if problems:
        raise ReadingValidationError("Invalid reading: " + "; ".join(problems))
    if reading.timestamp.tzinfo is not None:
        reading = replace(reading, timestamp=_naive_utc(reading.timestamp))
    return reading


def reading_from_payload(payload: Mapping[str, Any], *, default_device: str = "ESP32-001") -> Reading:
    """
    Build a Reading from a loosely typed mapping (API body, CSV row).
    """
    data = {COLUMN_KEY_MAP.get(key, key): value for key, value in payload.items()}

    missing = [metric for metric in METRICS if _is_blank(data.get(metric))]
    if missing:
        raise ReadingValidationError(f"Invalid reading: missing {', '.join(missing)}")

    values = {}
    for metric in METRICS:
        try:
            values[metric] = float(data[metric])
        except (TypeError, ValueError):
            raise ReadingValidationError(f"Invalid reading: {metric} is not a number ({data[metric]!r})") from None

    timestamp = _parse_timestamp(data.get("timestamp"))
    device_id = data.get("device_id")
    device_id = default_device if _is_blank(device_id) else str(device_id)

    reading = Reading(
        **values,
        device_id=device_id,
        timestamp=timestamp,
        id=str(data["id"]) if not _is_blank(data.get("id")) else new_id("sensor"),
    )
    return validate_reading(reading)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _parse_timestamp(value: Any) -> datetime:
    if _is_blank(value):
        return utcnow()
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if isinstance(value, datetime):
        return _naive_utc(value)
    try:
        parsed = pd.to_datetime(value)
    except (TypeError, ValueError) as exc:
        raise ReadingValidationError(f"Invalid reading: bad timestamp {value!r}") from exc
    return _naive_utc(parsed.to_pydatetime())


async def ingest_csv(file_path: str | Path, monitor, *, device_id: Optional[str] = None) -> dict:
    """
    Replays readings from a CSV file through the monitor, row by row.
    Invalid rows are counted and skipped; the rest are ingested in order.
    """
    df = pd.read_csv(file_path)
    df = df.rename(columns={col: COLUMN_KEY_MAP.get(col, col) for col in df.columns})
    if "timestamp" in df.columns:
        df = df.sort_values("timestamp", kind="stable")

    summary = {"rows": int(len(df)), "ingested": 0, "rejected": 0, "alerts_created": 0, "errors": []}
    for index, row in df.iterrows():
        payload = row.to_dict()
        try:
            reading = reading_from_payload(payload, default_device=device_id or "ESP32-001")
            result = await monitor.ingest(reading)
        except ReadingValidationError as exc:
            summary["rejected"] += 1
            summary["errors"].append(f"row {index}: {exc}")
            continue
        except MonitorError as exc:
            summary["errors"].append(f"row {index}: {exc}")
            result = getattr(exc, "result", None)
            if result is None:
                continue
        summary["ingested"] += 1
        summary["alerts_created"] += len(result.created)
    return summary
