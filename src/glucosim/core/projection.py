import logging
import math
from datetime import datetime, timedelta
from typing import Generator, Iterable, List, Optional, Union

from glucosim.core.clock import Clock, SystemClock, as_utc
from glucosim.core.config import SimulationConfig
from glucosim.core.curves import DEFAULT_CARB_CURVE, DEFAULT_INSULIN_CURVE, AbsorptionCurve, ActivityCurve
from glucosim.core.effects import carbs_on_board, compute_step, insulin_on_board
from glucosim.core.errors import InvalidProfile
from glucosim.core.ledger import TreatmentLedger
from glucosim.core.patient.profile import PatientProfile
from glucosim.core.treatments import GlucoseReading, Treatment

logger = logging.getLogger("glucosim")

GRID_MINUTES = 5


def align_to_grid(timestamp: datetime, grid_minutes: int = GRID_MINUTES) -> datetime:
    """Floor ``timestamp`` to the previous grid boundary with seconds zeroed."""
    remainder = timestamp.minute % grid_minutes
    return timestamp.replace(minute=timestamp.minute - remainder, second=0, microsecond=0)


def sample_count(duration_hours: float, interval_minutes: float) -> int:
    return int(math.ceil(duration_hours * 60.0 / interval_minutes)) + 1


def _resolve_now(now: Optional[datetime], clock: Optional[Clock], reference: datetime) -> datetime:
    if now is not None:
        return now
    if clock is None:
        clock = SystemClock(reference.tzinfo)  # type: ignore[arg-type]
    return clock.now()


class ProjectionDriver:
    """
    Walks a closed time grid and emits one GlucoseReading per step.

    Step 0 is the anchor reading and carries the patient's baseline glucose
    unchanged. Every later step applies the net effect of the interval that
    just ended and clamps the result to the physiological bounds.
    """

    def __init__(
        self,
        patient: PatientProfile,
        treatments: Union[TreatmentLedger, Iterable[Treatment]] = (),
        interval_minutes: float = 5,
        config: Optional[SimulationConfig] = None,
        insulin_curve: ActivityCurve = DEFAULT_INSULIN_CURVE,
        carb_curve: AbsorptionCurve = DEFAULT_CARB_CURVE,
    ) -> None:
        if interval_minutes <= 0:
            raise ValueError(f"interval_minutes must be > 0 (got {interval_minutes})")
        self.patient = patient.validate()
        if not math.isfinite(patient.current_glucose):
            raise InvalidProfile(
                [f"current_glucose must be a finite number (got {patient.current_glucose})"],
                patient_id=patient.id,
            )
        self.ledger = treatments if isinstance(treatments, TreatmentLedger) else TreatmentLedger(treatments)
        self.interval_minutes = interval_minutes
        self.config = config or SimulationConfig()
        self.insulin_curve = insulin_curve
        self.carb_curve = carb_curve

    def clamp(self, glucose: float) -> float:
        return max(self.config.min_glucose, min(self.config.max_glucose, glucose))

    def iter_readings(
        self,
        start_time: datetime,
        duration_hours: float,
        now: datetime,
    ) -> Generator[GlucoseReading, None, None]:
        if duration_hours < 0:
            raise ValueError(f"duration_hours must be >= 0 (got {duration_hours})")

        start = align_to_grid(start_time)
        zone = start.tzinfo
        # Step on the UTC timeline so DST changes neither repeat nor skip samples
        start_utc = as_utc(start)
        now_utc = as_utc(now)
        total_samples = sample_count(duration_hours, self.interval_minutes)
        step = timedelta(minutes=self.interval_minutes)
        end = start_utc + step * (total_samples - 1)
        active = self.ledger.overlapping(start_utc, end, self.patient)
        glucose = float(self.patient.current_glucose)

        logger.debug(
            "Projecting patient %s from %s: %d samples, %d/%d treatments in window",
            self.patient.id, start.isoformat(), total_samples, len(active), len(self.ledger),
        )

        for i in range(total_samples):
            current_utc = start_utc + step * i
            current_time = current_utc.astimezone(zone) if zone is not None else current_utc
            if i > 0:
                effects = compute_step(
                    current_time,
                    i * self.interval_minutes,
                    active,
                    self.patient,
                    self.interval_minutes,
                    self.insulin_curve,
                    self.carb_curve,
                )
                glucose = self.clamp(glucose + effects.net_delta)

            iob = insulin_on_board(current_time, active, self.patient, self.insulin_curve)
            cob = carbs_on_board(current_time, active, self.patient, self.carb_curve)
            yield GlucoseReading(
                timestamp=current_time,
                value=round(glucose, 1),
                iob=round(iob, 2),
                cob=round(cob, 1),
                is_future=current_utc > now_utc,
                patient_id=self.patient.id,
            )

    def run(self, start_time: datetime, duration_hours: float, now: datetime) -> List[GlucoseReading]:
        return list(self.iter_readings(start_time, duration_hours, now))


def project(
    patient: PatientProfile,
    treatments: Union[TreatmentLedger, Iterable[Treatment]],
    start_time: datetime,
    duration_hours: float,
    interval_minutes: float = 5,
    *,
    now: Optional[datetime] = None,
    clock: Optional[Clock] = None,
    config: Optional[SimulationConfig] = None,
    insulin_curve: ActivityCurve = DEFAULT_INSULIN_CURVE,
    carb_curve: AbsorptionCurve = DEFAULT_CARB_CURVE,
) -> List[GlucoseReading]:
    """
    Project glucose, IOB and COB over ``[start_time, start_time + duration_hours]``.

    Args:
        patient: Validated eagerly; raises InvalidProfile before any stepping.
        treatments: Treatment history. Copied into a ledger snapshot.
        start_time: Aligned down to the 5-minute grid.
        duration_hours: Horizon length. ``ceil(duration*60/interval) + 1`` samples.
        interval_minutes: Grid step.
        now: Wall-clock anchor deciding ``is_future``. Falls back to ``clock``.

    Returns:
        List[GlucoseReading]: Readings in ascending timestamp order.
    """
    driver = ProjectionDriver(
        patient,
        treatments,
        interval_minutes=interval_minutes,
        config=config,
        insulin_curve=insulin_curve,
        carb_curve=carb_curve,
    )
    anchor = _resolve_now(now, clock, start_time)
    return driver.run(start_time, duration_hours, anchor)


def project_forward(
    patient: PatientProfile,
    treatments: Iterable[Treatment],
    hours_forward: Optional[float] = None,
    *,
    now: Optional[datetime] = None,
    clock: Optional[Clock] = None,
    config: Optional[SimulationConfig] = None,
) -> List[GlucoseReading]:
    """Project from the current grid slot, using treatments from the lookback window."""
    config = config or SimulationConfig()
    if hours_forward is None:
        hours_forward = config.forward_hours
    current = now if now is not None else (clock or SystemClock()).now()
    cutoff = as_utc(current) - timedelta(hours=config.treatment_lookback_hours)
    relevant = TreatmentLedger(treatments).since(cutoff)
    return project(
        patient,
        relevant,
        align_to_grid(current),
        hours_forward,
        config.interval_minutes,
        now=current,
        config=config,
    )
