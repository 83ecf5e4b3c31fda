from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from glucosim.core.clock import as_utc
from glucosim.core.patient.profile import PatientProfile
from glucosim.core.treatments import GlucoseReading, Treatment

TREATMENT_RETENTION = timedelta(days=30)


class InMemoryStore:
    """
    Dict-backed ReadingStore.

    Readings are keyed by ``(patient_id, UTC timestamp)``, so saving a reading
    for an instant that already has one replaces it, whatever zone the
    timestamp was expressed in.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._patients: Dict[str, PatientProfile] = {}
        self._treatments: Dict[str, List[Treatment]] = {}
        self._readings: Dict[Tuple[str, datetime], GlucoseReading] = {}

    def get_patient(self, patient_id: str) -> Optional[PatientProfile]:
        with self._lock:
            return self._patients.get(patient_id)

    def save_patient(self, profile: PatientProfile) -> None:
        with self._lock:
            self._patients[profile.id] = profile

    def get_treatments(self, patient_id: str, since: Optional[datetime] = None) -> List[Treatment]:
        """Newest first, matching how treatment lists are displayed."""
        with self._lock:
            treatments = list(self._treatments.get(patient_id, []))
        if since is not None:
            cutoff = as_utc(since)
            treatments = [t for t in treatments if as_utc(t.timestamp) >= cutoff]
        return sorted(treatments, key=lambda t: as_utc(t.timestamp), reverse=True)

    def save_treatment(self, patient_id: str, treatment: Treatment) -> None:
        with self._lock:
            self._treatments.setdefault(patient_id, []).append(treatment)

    def get_readings(self, patient_id: str, from_time: datetime, to_time: datetime) -> List[GlucoseReading]:
        lower, upper = as_utc(from_time), as_utc(to_time)
        with self._lock:
            selected = [
                (ts, reading)
                for (pid, ts), reading in self._readings.items()
                if pid == patient_id and lower <= ts <= upper
            ]
        return [reading for _, reading in sorted(selected, key=lambda item: item[0])]

    def all_readings(self, patient_id: str) -> List[GlucoseReading]:
        with self._lock:
            selected = [(ts, r) for (pid, ts), r in self._readings.items() if pid == patient_id]
        return [reading for _, reading in sorted(selected, key=lambda item: item[0])]

    def save_readings(self, readings: Sequence[GlucoseReading]) -> None:
        with self._lock:
            for reading in readings:
                self._readings[(reading.patient_id, as_utc(reading.timestamp))] = reading

    def clear_future_readings(self, patient_id: str, from_time: datetime) -> None:
        lower = as_utc(from_time)
        with self._lock:
            doomed = [
                key
                for key, reading in self._readings.items()
                if key[0] == patient_id and reading.is_future and key[1] >= lower
            ]
            for key in doomed:
                del self._readings[key]

    def next_future_reading(self, patient_id: str) -> Optional[GlucoseReading]:
        with self._lock:
            future = [(ts, r) for (pid, ts), r in self._readings.items() if pid == patient_id and r.is_future]
        if not future:
            return None
        return min(future, key=lambda item: item[0])[1]

    def cleanup_old_data(
        self,
        patient_id: str,
        before: datetime,
        treatments_before: Optional[datetime] = None,
    ) -> None:
        """
        Drop readings older than ``before`` and treatments older than
        ``treatments_before`` (default: 30 days earlier than ``before``).

        A reading that old but still flagged future is a stale projection
        that was never realized, so it goes too.
        """
        reading_cutoff = as_utc(before)
        if treatments_before is None:
            treatment_cutoff = reading_cutoff - TREATMENT_RETENTION
        else:
            treatment_cutoff = as_utc(treatments_before)
        with self._lock:
            kept = [t for t in self._treatments.get(patient_id, []) if as_utc(t.timestamp) >= treatment_cutoff]
            if patient_id in self._treatments:
                self._treatments[patient_id] = kept
            doomed = [
                key
                for key, reading in self._readings.items()
                if key[0] == patient_id and key[1] < reading_cutoff
            ]
            for key in doomed:
                del self._readings[key]
