from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from glucosim.core.config import SimulationConfig
from glucosim.core.patient.profile import HOURS_PER_DAY, PatientProfile, TargetRange
from glucosim.core.treatments import Treatment, TreatmentMetadata, TreatmentType


class TargetRangeModel(BaseModel):
    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    low: float = Field(default=80.0, gt=0.0)
    high: float = Field(default=140.0, gt=0.0)

    @model_validator(mode="after")
    def _check_order(self) -> "TargetRangeModel":
        if self.low >= self.high:
            raise ValueError("target_glucose.low must be less than target_glucose.high")
        return self


class PatientProfileModel(BaseModel):
    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    id: str = Field(default="default", min_length=1)
    name: str = "Default Patient"
    weight: float = Field(default=70.0, gt=0.0)
    total_daily_dose: float = Field(default=40.0, ge=0.0)
    insulin_sensitivity: float = Field(default=50.0, gt=0.0)
    carb_ratio: float = Field(default=12.0, gt=0.0)
    basal_rates: List[float] = Field(default_factory=lambda: [0.8] * HOURS_PER_DAY)
    target_glucose: TargetRangeModel = Field(default_factory=TargetRangeModel)
    insulin_duration: float = Field(default=6.0, gt=0.0)
    carb_absorption_rate: float = Field(default=2.0, gt=0.0)
    liver_glucose_production: float = Field(default=1.5, ge=0.0)
    current_glucose: float = Field(default=120.0, ge=40.0, le=400.0)
    noise_level: float = Field(default=5.0, ge=0.0)

    @field_validator("basal_rates", mode="before")
    @classmethod
    def _expand_flat_basal(cls, value: Any) -> Any:
        # A single number means a flat basal profile
        if isinstance(value, (int, float)):
            return [float(value)] * HOURS_PER_DAY
        return value

    @field_validator("basal_rates")
    @classmethod
    def _check_basal(cls, value: List[float]) -> List[float]:
        if len(value) != HOURS_PER_DAY:
            raise ValueError(f"basal_rates must have exactly {HOURS_PER_DAY} hourly entries (got {len(value)})")
        for hour, rate in enumerate(value):
            if rate < 0:
                raise ValueError(f"basal_rates[{hour}] must be >= 0")
        return value

    def to_profile(self) -> PatientProfile:
        return PatientProfile(
            id=self.id,
            name=self.name,
            weight=self.weight,
            total_daily_dose=self.total_daily_dose,
            insulin_sensitivity=self.insulin_sensitivity,
            carb_ratio=self.carb_ratio,
            basal_rates=tuple(self.basal_rates),
            target_glucose=TargetRange(low=self.target_glucose.low, high=self.target_glucose.high),
            insulin_duration=self.insulin_duration,
            carb_absorption_rate=self.carb_absorption_rate,
            liver_glucose_production=self.liver_glucose_production,
            current_glucose=self.current_glucose,
            noise_level=self.noise_level,
        )


class TreatmentModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: Optional[str] = None
    timestamp: datetime
    type: Literal["carb", "insulin"]
    value: float = Field(gt=0.0)
    description: Optional[str] = None
    rapid: Optional[bool] = None
    bolus: Optional[bool] = None

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Naive timestamps in treatment files are read as UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _check_type_specific_fields(self) -> "TreatmentModel":
        if self.type == "carb" and self.bolus is not None:
            raise ValueError("bolus applies to insulin treatments only")
        if self.type == "insulin" and self.rapid is not None:
            raise ValueError("rapid applies to carb treatments only")
        return self

    def to_treatment(self) -> Treatment:
        return Treatment(
            timestamp=self.timestamp,
            type=TreatmentType(self.type),
            value=self.value,
            id=self.id or "",
            metadata=TreatmentMetadata(description=self.description, rapid=self.rapid, bolus=self.bolus),
        )


class TreatmentFileModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    patient_id: Optional[str] = None
    treatments: List[TreatmentModel] = Field(default_factory=list)


class SimulationConfigModel(BaseModel):
    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    min_glucose: float = Field(default=40.0, gt=0.0)
    max_glucose: float = Field(default=400.0, gt=0.0)
    interval_minutes: int = Field(default=5, ge=1, le=60)
    forward_hours: float = Field(default=12.0, gt=0.0, le=48.0)
    reprojection_horizon_hours: float = Field(default=12.0, gt=0.0, le=48.0)
    treatment_lookback_hours: float = Field(default=24.0, gt=0.0)
    chart_history_hours: float = Field(default=24.0, ge=0.0)
    chart_forward_hours: float = Field(default=2.0, ge=0.0)
    history_seed_minutes: int = Field(default=30, ge=0)
    history_seed_glucose: float = Field(default=108.0, ge=40.0, le=400.0)
    history_seed_variation: float = Field(default=2.0, ge=0.0)
    background_recompute_minutes: float = Field(default=5.0, ge=0.0)
    reading_retention_days: float = Field(default=7.0, gt=0.0)
    treatment_retention_days: float = Field(default=30.0, gt=0.0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "SimulationConfigModel":
        if self.min_glucose >= self.max_glucose:
            raise ValueError("min_glucose must be less than max_glucose")
        return self

    def to_config(self) -> SimulationConfig:
        return SimulationConfig(**self.model_dump())
