import logging
import math
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from glucosim.core.clock import as_utc
from glucosim.core.config import SimulationConfig
from glucosim.core.curves import DEFAULT_CARB_CURVE, DEFAULT_INSULIN_CURVE, AbsorptionCurve, ActivityCurve
from glucosim.core.errors import ReprojectionBaselineMissing
from glucosim.core.projection import align_to_grid, project
from glucosim.core.patient.profile import PatientProfile
from glucosim.core.treatments import GlucoseReading, Treatment

logger = logging.getLogger("glucosim")


def latest_past_reading(readings: Iterable[GlucoseReading]) -> Optional[GlucoseReading]:
    past = [r for r in readings if not r.is_future]
    if not past:
        return None
    return max(past, key=lambda r: as_utc(r.timestamp))


def advance_readings(readings: Sequence[GlucoseReading], now: datetime) -> List[GlucoseReading]:
    """
    Mark readings whose timestamp has been reached as past.

    Values are never edited; only ``is_future`` flips from True to False.
    """
    return [r.as_past() if r.is_future and as_utc(r.timestamp) <= as_utc(now) else r for r in readings]


def reproject(
    patient: PatientProfile,
    treatments: Iterable[Treatment],
    existing_readings: Iterable[GlucoseReading],
    cut_time: datetime,
    *,
    now: datetime,
    horizon_hours: Optional[float] = None,
    interval_minutes: Optional[float] = None,
    config: Optional[SimulationConfig] = None,
    insulin_curve: ActivityCurve = DEFAULT_INSULIN_CURVE,
    carb_curve: AbsorptionCurve = DEFAULT_CARB_CURVE,
) -> List[GlucoseReading]:
    """
    Splice realized history with a fresh projection starting at ``cut_time``.

    Readings strictly before the (grid-aligned) cut that are already in the
    past are kept; everything else is discarded and recomputed from the
    newest kept value.

    Raises:
        ReprojectionBaselineMissing: nothing is kept and the profile's
            ``current_glucose`` is not a finite number.
    """
    config = config or SimulationConfig()
    if horizon_hours is None:
        horizon_hours = config.reprojection_horizon_hours
    if interval_minutes is None:
        interval_minutes = config.interval_minutes

    cut = align_to_grid(cut_time)
    cut_utc = as_utc(cut)
    kept = sorted(
        (r for r in existing_readings if as_utc(r.timestamp) < cut_utc and not r.is_future),
        key=lambda r: as_utc(r.timestamp),
    )

    if kept:
        anchored = patient.with_current_glucose(kept[-1].value)
    else:
        baseline = patient.current_glucose
        if baseline is None or not math.isfinite(baseline):
            raise ReprojectionBaselineMissing(
                f"No past readings before {cut.isoformat()} and profile baseline is {baseline!r}",
                patient_id=patient.id,
                baseline=baseline,
            )
        anchored = patient

    logger.debug(
        "Re-projecting patient %s at %s: kept %d readings, baseline %.1f mg/dL",
        patient.id, cut.isoformat(), len(kept), anchored.current_glucose,
    )

    projected = project(
        anchored,
        treatments,
        cut,
        horizon_hours,
        interval_minutes,
        now=now,
        config=config,
        insulin_curve=insulin_curve,
        carb_curve=carb_curve,
    )
    return kept + projected
