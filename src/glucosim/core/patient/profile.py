from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace
from typing import Dict, Any, List, Optional, Sequence, Tuple

from glucosim.core.errors import InvalidProfile

HOURS_PER_DAY = 24


@dataclass(frozen=True)
class TargetRange:
    low: float = 80.0  # mg/dL
    high: float = 140.0  # mg/dL


def _default_basal() -> Tuple[float, ...]:
    return tuple([0.8] * HOURS_PER_DAY)


@dataclass(frozen=True)
class PatientProfile:
    """
    Metabolic parameters of one simulated patient.

    The profile is immutable for the duration of a projection run. Use
    ``apply_update`` or ``with_current_glucose`` to derive a new one.
    """
    id: str = "default"
    name: str = "Default Patient"
    weight: float = 70.0  # kg
    total_daily_dose: float = 40.0  # U/day, informational
    insulin_sensitivity: float = 50.0  # mg/dL drop per unit
    carb_ratio: float = 12.0  # grams covered by one unit
    basal_rates: Tuple[float, ...] = field(default_factory=_default_basal)  # U/hr by hour of day
    target_glucose: TargetRange = field(default_factory=TargetRange)
    insulin_duration: float = 6.0  # hours
    carb_absorption_rate: float = 2.0  # hours
    liver_glucose_production: float = 1.5  # mg/dL per minute
    current_glucose: float = 120.0  # mg/dL
    noise_level: float = 5.0  # mg/dL

    def __post_init__(self) -> None:
        if not isinstance(self.basal_rates, tuple):
            object.__setattr__(self, "basal_rates", tuple(float(rate) for rate in self.basal_rates))
        if isinstance(self.target_glucose, dict):
            object.__setattr__(self, "target_glucose", TargetRange(**self.target_glucose))

    @property
    def insulin_duration_minutes(self) -> float:
        return self.insulin_duration * 60.0

    @property
    def carb_absorption_minutes(self) -> float:
        return self.carb_absorption_rate * 60.0

    def basal_rate_at(self, hour: int) -> float:
        return self.basal_rates[hour % HOURS_PER_DAY]

    def violations(self) -> List[str]:
        problems: List[str] = []
        for name in ("weight", "insulin_sensitivity", "carb_ratio", "insulin_duration", "carb_absorption_rate"):
            value = getattr(self, name)
            if not _is_finite(value) or value <= 0:
                problems.append(f"{name} must be > 0 (got {value})")
        for name in ("liver_glucose_production", "noise_level", "total_daily_dose"):
            value = getattr(self, name)
            if not _is_finite(value) or value < 0:
                problems.append(f"{name} must be >= 0 (got {value})")
        if len(self.basal_rates) != HOURS_PER_DAY:
            problems.append(f"basal_rates must have {HOURS_PER_DAY} entries (got {len(self.basal_rates)})")
        for hour, rate in enumerate(self.basal_rates):
            if not _is_finite(rate) or rate < 0:
                problems.append(f"basal_rates[{hour}] must be >= 0 (got {rate})")
        target = self.target_glucose
        if not (_is_finite(target.low) and _is_finite(target.high)) or target.low >= target.high:
            problems.append(f"target_glucose.low must be < target_glucose.high (got {target.low} >= {target.high})")
        return problems

    def validate(self) -> "PatientProfile":
        """Raise InvalidProfile when any invariant is violated, else return self."""
        problems = self.violations()
        if problems:
            raise InvalidProfile(problems, patient_id=self.id)
        return self

    def with_current_glucose(self, value: float) -> "PatientProfile":
        return replace(self, current_glucose=float(value))

    def apply_update(self, update: "PatientProfileUpdate") -> "PatientProfile":
        """Merge the non-None fields of ``update`` and validate the result."""
        changes = update.changes()
        if "basal_rates" in changes:
            changes["basal_rates"] = tuple(float(rate) for rate in changes["basal_rates"])
        merged = replace(self, **changes)
        return merged.validate()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "weight": self.weight,
            "total_daily_dose": self.total_daily_dose,
            "insulin_sensitivity": self.insulin_sensitivity,
            "carb_ratio": self.carb_ratio,
            "basal_rates": list(self.basal_rates),
            "target_glucose": {"low": self.target_glucose.low, "high": self.target_glucose.high},
            "insulin_duration": self.insulin_duration,
            "carb_absorption_rate": self.carb_absorption_rate,
            "liver_glucose_production": self.liver_glucose_production,
            "current_glucose": self.current_glucose,
            "noise_level": self.noise_level,
        }


@dataclass(frozen=True)
class PatientProfileUpdate:
    """
    Partial edit of a PatientProfile. ``None`` leaves the field unchanged.
    """
    name: Optional[str] = None
    weight: Optional[float] = None
    total_daily_dose: Optional[float] = None
    insulin_sensitivity: Optional[float] = None
    carb_ratio: Optional[float] = None
    basal_rates: Optional[Sequence[float]] = None
    target_glucose: Optional[TargetRange] = None
    insulin_duration: Optional[float] = None
    carb_absorption_rate: Optional[float] = None
    liver_glucose_production: Optional[float] = None
    current_glucose: Optional[float] = None
    noise_level: Optional[float] = None

    def changes(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    def is_empty(self) -> bool:
        return not self.changes()


def _is_finite(value: float) -> bool:
    try:
        return math.isfinite(value)
    except TypeError:
        return False
