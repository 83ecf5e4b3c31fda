from __future__ import annotations

import json
import platform
import sys
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

import pandas as pd

from glucosim.core.treatments import GlucoseReading

READING_COLUMNS = ["id", "timestamp", "value", "iob", "cob", "is_future", "patient_id"]


def readings_to_dataframe(readings: Iterable[GlucoseReading]) -> pd.DataFrame:
    records = [reading.to_dict() for reading in readings]
    return pd.DataFrame.from_records(records, columns=READING_COLUMNS)


def readings_from_dataframe(frame: pd.DataFrame) -> List[GlucoseReading]:
    readings: List[GlucoseReading] = []
    for row in frame.itertuples(index=False):
        timestamp = pd.Timestamp(row.timestamp).to_pydatetime()
        readings.append(
            GlucoseReading(
                id=str(row.id),
                timestamp=timestamp,
                value=float(row.value),
                iob=float(row.iob),
                cob=float(row.cob),
                is_future=bool(row.is_future),
                patient_id=str(row.patient_id),
            )
        )
    return readings


def write_readings_csv(readings: Iterable[GlucoseReading], path: Union[str, Path]) -> Path:
    output_path = Path(path).expanduser()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    readings_to_dataframe(readings).to_csv(output_path, index=False)
    return output_path


def read_readings_csv(path: Union[str, Path]) -> List[GlucoseReading]:
    frame = pd.read_csv(path, parse_dates=["timestamp"])
    return readings_from_dataframe(frame)


def _serialize_payload(payload: Any) -> Any:
    if is_dataclass(payload) and not isinstance(payload, type):
        return asdict(payload)
    if isinstance(payload, Path):
        return str(payload)
    if isinstance(payload, datetime):
        return payload.isoformat()
    if isinstance(payload, Enum):
        return payload.value
    return payload


def write_json(path: Path, payload: Dict[str, Any]) -> None:
    safe_payload = {key: _serialize_payload(value) for key, value in payload.items()}
    path.write_text(json.dumps(safe_payload, indent=2, sort_keys=True, default=str))


def get_package_version(package_name: str = "glucosim") -> str:
    try:
        return pkg_version(package_name)
    except PackageNotFoundError:
        return "unknown"


def build_run_metadata(config: Dict[str, Any], output_path: Path) -> Dict[str, Any]:
    return {
        "created_at_utc": datetime.now(timezone.utc).isoformat(),
        "output": str(output_path),
        "package_version": get_package_version(),
        "python_version": sys.version.split()[0],
        "platform": platform.platform(),
        "config": config,
    }
