"""
Per-step glucose effects.

Every function here is pure: the result depends only on the arguments, so a
projection repeated with the same inputs and the same ``now`` anchor is
reproducible.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from glucosim.core.curves import (
    DEFAULT_CARB_CURVE,
    DEFAULT_INSULIN_CURVE,
    AbsorptionCurve,
    ActivityCurve,
    activity_at,
    cumulative_at,
)
from glucosim.core.patient.profile import PatientProfile
from glucosim.core.treatments import Treatment, TreatmentType


@dataclass(frozen=True)
class StepEffects:
    insulin_effect: float
    carb_effect: float
    basal_effect: float
    liver_production: float
    noise: float

    @property
    def net_delta(self) -> float:
        # Fixed order: -insulin +carb -basal +liver +noise
        delta = -self.insulin_effect
        delta += self.carb_effect
        delta -= self.basal_effect
        delta += self.liver_production
        delta += self.noise
        return delta


def _elapsed(treatment: Treatment, now: datetime) -> float:
    return treatment.minutes_since(now)


def insulin_on_board(
    now: datetime,
    treatments: Iterable[Treatment],
    patient: PatientProfile,
    curve: ActivityCurve = DEFAULT_INSULIN_CURVE,
) -> float:
    total = 0.0
    horizon = patient.insulin_duration_minutes
    for treatment in treatments:
        if treatment.type is not TreatmentType.INSULIN:
            continue
        elapsed = _elapsed(treatment, now)
        if elapsed < 0 or elapsed >= horizon:
            continue
        total += treatment.value * (1.0 - cumulative_at(curve, elapsed))
    return max(0.0, total)


def carbs_on_board(
    now: datetime,
    treatments: Iterable[Treatment],
    patient: PatientProfile,
    curve: AbsorptionCurve = DEFAULT_CARB_CURVE,
) -> float:
    total = 0.0
    horizon = patient.carb_absorption_minutes
    for treatment in treatments:
        if treatment.type is not TreatmentType.CARB:
            continue
        elapsed = _elapsed(treatment, now)
        if elapsed < 0 or elapsed >= horizon:
            continue
        total += treatment.value * (1.0 - activity_at(curve, elapsed))
    return max(0.0, total)


def insulin_effect(
    now: datetime,
    treatments: Iterable[Treatment],
    patient: PatientProfile,
    interval_minutes: float = 5,
    curve: ActivityCurve = DEFAULT_INSULIN_CURVE,
) -> float:
    """Glucose lowered (mg/dL) by activity released during the step ending at ``now``."""
    total = 0.0
    horizon = patient.insulin_duration_minutes
    for treatment in treatments:
        if treatment.type is not TreatmentType.INSULIN:
            continue
        elapsed = _elapsed(treatment, now)
        if elapsed < 0 or elapsed > horizon:
            continue
        current = activity_at(curve, elapsed)
        previous = activity_at(curve, max(0.0, elapsed - interval_minutes))
        delta = current - previous
        if delta > 0:
            total += delta * treatment.value * patient.insulin_sensitivity
    return total


def carb_effect(
    now: datetime,
    treatments: Iterable[Treatment],
    patient: PatientProfile,
    interval_minutes: float = 5,
    curve: AbsorptionCurve = DEFAULT_CARB_CURVE,
) -> float:
    """Glucose raised (mg/dL) by carbs absorbed during the step ending at ``now``."""
    total = 0.0
    horizon = patient.carb_absorption_minutes
    for treatment in treatments:
        if treatment.type is not TreatmentType.CARB:
            continue
        elapsed = _elapsed(treatment, now)
        if elapsed < 0 or elapsed > horizon:
            continue
        current = activity_at(curve, elapsed)
        previous = activity_at(curve, max(0.0, elapsed - interval_minutes))
        delta = current - previous
        if delta > 0:
            grams_absorbed = delta * treatment.value
            total += grams_absorbed / patient.carb_ratio * patient.insulin_sensitivity
    return total


def basal_effect(now: datetime, patient: PatientProfile, interval_minutes: float = 5) -> float:
    units = patient.basal_rate_at(now.hour) * interval_minutes / 60.0
    return units * patient.insulin_sensitivity


def liver_production(patient: PatientProfile, interval_minutes: float = 5) -> float:
    return patient.liver_glucose_production * interval_minutes


def noise(elapsed_minutes: float, amplitude: float) -> float:
    """
    Layered low-frequency trigonometric noise.

    The product of three sinusoids never exceeds 1 in magnitude, so the
    result stays within ``[-amplitude, +amplitude]``.
    """
    t = elapsed_minutes
    seed = math.sin(t / 100.0) * math.cos(t / 200.0) * math.sin(t / 50.0)
    return seed * amplitude


def compute_step(
    now: datetime,
    elapsed_minutes: float,
    treatments: Iterable[Treatment],
    patient: PatientProfile,
    interval_minutes: float = 5,
    insulin_curve: ActivityCurve = DEFAULT_INSULIN_CURVE,
    carb_curve: AbsorptionCurve = DEFAULT_CARB_CURVE,
) -> StepEffects:
    treatments = tuple(treatments)
    return StepEffects(
        insulin_effect=insulin_effect(now, treatments, patient, interval_minutes, insulin_curve),
        carb_effect=carb_effect(now, treatments, patient, interval_minutes, carb_curve),
        basal_effect=basal_effect(now, patient, interval_minutes),
        liver_production=liver_production(patient, interval_minutes),
        noise=noise(elapsed_minutes, patient.noise_level),
    )
