from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator, List, Optional

import numpy as np

from glucosim.core.clock import Clock, SystemClock, as_utc
from glucosim.core.config import SimulationConfig
from glucosim.core.curves import DEFAULT_CARB_CURVE, DEFAULT_INSULIN_CURVE, AbsorptionCurve, ActivityCurve
from glucosim.core.errors import GlucoSimError, ProjectionInProgress
from glucosim.core.patient.profile import PatientProfile, PatientProfileUpdate
from glucosim.core.projection import align_to_grid
from glucosim.core.reprojection import latest_past_reading, reproject
from glucosim.core.treatments import GlucoseReading, Treatment
from glucosim.storage.base import ReadingStore

logger = logging.getLogger("glucosim.session")


@dataclass
class SimulationState:
    last_computed_at: Optional[datetime] = None
    next_computation_time: Optional[datetime] = None
    computed_until: Optional[datetime] = None
    is_computing: bool = False


class SimulationSession:
    """
    Orchestrates one patient's projections against a storage collaborator.

    All writes happen after a projection has been fully computed, and at most
    one re-projection runs at a time. Time only moves when the caller ticks
    ``advance()``; the session owns no timer.
    """

    def __init__(
        self,
        store: ReadingStore,
        clock: Optional[Clock] = None,
        config: Optional[SimulationConfig] = None,
        insulin_curve: ActivityCurve = DEFAULT_INSULIN_CURVE,
        carb_curve: AbsorptionCurve = DEFAULT_CARB_CURVE,
    ) -> None:
        self.store = store
        self.clock = clock or SystemClock()
        self.config = config or SimulationConfig()
        self.insulin_curve = insulin_curve
        self.carb_curve = carb_curve
        self.patient: Optional[PatientProfile] = None
        self.state = SimulationState()
        self._busy = threading.Lock()

    # ------------------------------------------------------------------
    # Patients
    # ------------------------------------------------------------------

    def create_patient(
        self,
        update: Optional[PatientProfileUpdate] = None,
        patient_id: Optional[str] = None,
        seed: Optional[int] = None,
    ) -> PatientProfile:
        """
        Create a patient from the defaults plus ``update`` and seed a short,
        stable past history so the first re-projection has an anchor.
        """
        now = self.clock.now()
        if patient_id is None:
            patient_id = f"patient_{int(now.timestamp() * 1000)}"
        profile = PatientProfile(id=patient_id)
        if update is not None and not update.is_empty():
            profile = profile.apply_update(update)
        else:
            profile.validate()
        profile = profile.with_current_glucose(self.config.history_seed_glucose)

        history = self._seed_history(profile, now, seed)
        self.store.save_patient(profile)
        self.store.save_readings(history)
        self.patient = profile
        logger.info("Created patient %s with %d seeded readings", profile.id, len(history))
        return profile

    def _seed_history(self, profile: PatientProfile, now: datetime, seed: Optional[int]) -> List[GlucoseReading]:
        rng = np.random.default_rng(seed)
        interval = self.config.interval_minutes
        count = self.config.history_seed_minutes // interval + 1
        aligned = align_to_grid(now)
        variation = self.config.history_seed_variation
        readings: List[GlucoseReading] = []
        for i in range(count):
            timestamp = aligned - timedelta(minutes=(count - 1 - i) * interval)
            value = self.config.history_seed_glucose + float(rng.uniform(-variation, variation))
            readings.append(
                GlucoseReading(
                    id=f"historical_{int(timestamp.timestamp() * 1000)}",
                    timestamp=timestamp,
                    value=round(value, 1),
                    iob=0.0,
                    cob=0.0,
                    is_future=False,
                    patient_id=profile.id,
                )
            )
        return readings

    def load_patient(self, patient_id: str) -> PatientProfile:
        profile = self.store.get_patient(patient_id)
        if profile is None:
            raise KeyError(f"Patient {patient_id!r} not found")
        self.patient = profile
        return profile

    def update_profile(self, update: PatientProfileUpdate) -> PatientProfile:
        """Validate and persist a partial profile edit. Raises InvalidProfile untouched."""
        patient = self._require_patient()
        updated = patient.apply_update(update)
        self.store.save_patient(updated)
        self.patient = updated
        return updated

    def _require_patient(self) -> PatientProfile:
        if self.patient is None:
            raise RuntimeError("No current patient; call create_patient() or load_patient() first")
        return self.patient

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        patient = self._require_patient()
        if not self._busy.acquire(blocking=False):
            raise ProjectionInProgress(patient.id)
        try:
            yield
        finally:
            self._busy.release()

    def _cut_after(self, existing: List[GlucoseReading], now: datetime) -> datetime:
        """First grid slot the projection may write: never one already realized."""
        cut = align_to_grid(now)
        newest = latest_past_reading(existing)
        if newest is not None and as_utc(newest.timestamp) >= as_utc(cut):
            following = as_utc(newest.timestamp) + timedelta(minutes=self.config.interval_minutes)
            if now.tzinfo is not None:
                following = following.astimezone(now.tzinfo)
            cut = align_to_grid(following)
        return cut

    def record_treatment(self, treatment: Treatment) -> List[GlucoseReading]:
        patient = self._require_patient()
        self.store.save_treatment(patient.id, treatment)
        logger.info("Recorded %s treatment %s (%.1f) for %s", treatment.type.value, treatment.id, treatment.value, patient.id)
        return self.recompute()

    def recompute(self) -> List[GlucoseReading]:
        """
        Re-project from the first grid slot without a realized reading and
        persist the new readings. Past readings are never rewritten.

        The projection is computed into a local buffer first; storage is only
        touched once it succeeded.
        """
        with self._exclusive():
            patient = self._require_patient()
            self.state.is_computing = True
            try:
                now = self.clock.now()
                lookback = now - timedelta(hours=self.config.treatment_lookback_hours)
                treatments = self.store.get_treatments(patient.id, since=lookback)
                existing = self.store.get_readings(patient.id, lookback, now)
                cut = self._cut_after(existing, now)

                readings = reproject(
                    patient,
                    treatments,
                    existing,
                    cut,
                    now=now,
                    config=self.config,
                    insulin_curve=self.insulin_curve,
                    carb_curve=self.carb_curve,
                )
                fresh = [r for r in readings if as_utc(r.timestamp) >= as_utc(cut)]
            except GlucoSimError as err:
                logger.warning("Re-projection failed for %s: %s", patient.id, err)
                raise
            else:
                # unrealized readings before the cut were discarded as well
                self.store.clear_future_readings(patient.id, lookback)
                self.store.save_readings(fresh)
            finally:
                self.state.is_computing = False

            self.state.last_computed_at = now
            self.state.next_computation_time = now + timedelta(minutes=self.config.interval_minutes)
            self.state.computed_until = fresh[-1].timestamp if fresh else cut
            logger.info(
                "Re-projected %s from %s: %d new readings until %s",
                patient.id, cut.isoformat(), len(fresh), self.state.computed_until.isoformat(),
            )
            return readings

    def _realize_due(self, patient: PatientProfile) -> List[GlucoseReading]:
        with self._exclusive():
            now = self.clock.now()
            lookback = now - timedelta(hours=self.config.treatment_lookback_hours)
            due = [r for r in self.store.get_readings(patient.id, lookback, now) if r.is_future]
            realized = [r.as_past() for r in due]
            if realized:
                self.store.save_readings(realized)
                newest = realized[-1]
                self.patient = patient.with_current_glucose(newest.value)
                self.store.save_patient(self.patient)
                logger.info("New CGM reading for %s: %.1f mg/dL at %s", patient.id, newest.value, newest.timestamp.isoformat())
            self._cleanup(patient.id, now)
        return realized

    def _cleanup(self, patient_id: str, now: datetime) -> None:
        self.store.cleanup_old_data(
            patient_id,
            now - timedelta(days=self.config.reading_retention_days),
            treatments_before=now - timedelta(days=self.config.treatment_retention_days),
        )

    def advance(self) -> List[GlucoseReading]:
        """
        CGM tick: realize every projected reading whose time has come.

        The newest realized value becomes the patient's baseline and data past
        the retention windows is dropped. When no future readings remain a
        fresh projection is computed.
        """
        patient = self._require_patient()
        if self._busy.locked():
            logger.debug("Skipping advance for %s: projection in progress", patient.id)
            return []
        realized = self._realize_due(patient)

        if self.store.next_future_reading(patient.id) is None:
            logger.info("No future readings left for %s; triggering projection", patient.id)
            self.recompute()
        return realized

    def resume(self, background_minutes: float) -> Optional[List[GlucoseReading]]:
        """Catch up after the host was suspended for ``background_minutes``."""
        if background_minutes < self.config.background_recompute_minutes:
            return None
        self._realize_due(self._require_patient())
        return self.recompute()

    def cleanup_old_data(self) -> None:
        """Apply the reading and treatment retention windows now."""
        patient = self._require_patient()
        self._cleanup(patient.id, self.clock.now())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def chart_readings(self, hours_back: Optional[float] = None, hours_forward: Optional[float] = None) -> List[GlucoseReading]:
        patient = self._require_patient()
        if hours_back is None:
            hours_back = self.config.chart_history_hours
        if hours_forward is None:
            hours_forward = self.config.chart_forward_hours
        now = self.clock.now()
        return self.store.get_readings(
            patient.id,
            now - timedelta(hours=hours_back),
            now + timedelta(hours=hours_forward),
        )
