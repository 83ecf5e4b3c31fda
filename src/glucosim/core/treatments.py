from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from glucosim.core.clock import as_utc


class TreatmentType(str, Enum):
    CARB = "carb"
    INSULIN = "insulin"


@dataclass(frozen=True)
class TreatmentMetadata:
    description: Optional[str] = None
    rapid: Optional[bool] = None  # carbs: fast vs slow absorption
    bolus: Optional[bool] = None  # insulin: bolus vs basal adjustment


def _epoch_ms(ts: datetime) -> int:
    return int(round(ts.timestamp() * 1000))


@dataclass(frozen=True)
class Treatment:
    """
    A carbohydrate intake (grams) or insulin dose (units) at a point in time.
    Treatments are append-only and never mutated.
    """
    timestamp: datetime
    type: TreatmentType
    value: float
    id: str = ""
    metadata: TreatmentMetadata = field(default_factory=TreatmentMetadata)

    def __post_init__(self) -> None:
        if not isinstance(self.type, TreatmentType):
            object.__setattr__(self, "type", TreatmentType(self.type))
        if not (self.value > 0):
            raise ValueError(f"INVALID_TREATMENT_ERROR: {self.type.value} value must be > 0 (got {self.value}).")
        if not self.id:
            object.__setattr__(self, "id", f"treatment_{_epoch_ms(self.timestamp)}")

    @classmethod
    def carb(cls, timestamp: datetime, grams: float, **kwargs: Any) -> "Treatment":
        return cls(timestamp=timestamp, type=TreatmentType.CARB, value=grams, **kwargs)

    @classmethod
    def insulin(cls, timestamp: datetime, units: float, **kwargs: Any) -> "Treatment":
        return cls(timestamp=timestamp, type=TreatmentType.INSULIN, value=units, **kwargs)

    @property
    def is_insulin(self) -> bool:
        return self.type is TreatmentType.INSULIN

    @property
    def is_carb(self) -> bool:
        return self.type is TreatmentType.CARB

    def minutes_since(self, now: datetime) -> float:
        return (as_utc(now) - as_utc(self.timestamp)).total_seconds() / 60.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "type": self.type.value,
            "value": self.value,
            "description": self.metadata.description,
            "rapid": self.metadata.rapid,
            "bolus": self.metadata.bolus,
        }


@dataclass(frozen=True)
class GlucoseReading:
    """One projected sample on the interval grid."""
    timestamp: datetime
    value: float  # mg/dL
    iob: float  # units
    cob: float  # grams
    is_future: bool
    patient_id: str
    id: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            object.__setattr__(self, "id", f"glucose_{_epoch_ms(self.timestamp)}")

    def as_past(self) -> "GlucoseReading":
        if not self.is_future:
            return self
        return replace(self, is_future=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "value": self.value,
            "iob": self.iob,
            "cob": self.cob,
            "is_future": self.is_future,
            "patient_id": self.patient_id,
        }
