from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Iterator, List, Tuple

from glucosim.core.clock import as_utc
from glucosim.core.patient.profile import PatientProfile
from glucosim.core.treatments import Treatment, TreatmentType


def effect_horizon_minutes(treatment: Treatment, patient: PatientProfile) -> float:
    if treatment.type is TreatmentType.INSULIN:
        return patient.insulin_duration_minutes
    return patient.carb_absorption_minutes


class TreatmentLedger:
    """
    Read-only, time-ordered snapshot of a treatment history.

    The ledger copies its input on construction, so treatments recorded by the
    caller afterwards are not visible to a projection already using it.
    """

    def __init__(self, treatments: Iterable[Treatment] = ()) -> None:
        self._treatments: Tuple[Treatment, ...] = tuple(sorted(treatments, key=lambda t: as_utc(t.timestamp)))

    def __len__(self) -> int:
        return len(self._treatments)

    def __iter__(self) -> Iterator[Treatment]:
        return iter(self._treatments)

    def __bool__(self) -> bool:
        return bool(self._treatments)

    def __repr__(self) -> str:
        return f"TreatmentLedger({len(self._treatments)} treatments)"

    def insulin(self) -> List[Treatment]:
        return [t for t in self._treatments if t.type is TreatmentType.INSULIN]

    def carbs(self) -> List[Treatment]:
        return [t for t in self._treatments if t.type is TreatmentType.CARB]

    def since(self, cutoff: datetime) -> "TreatmentLedger":
        return TreatmentLedger(t for t in self._treatments if as_utc(t.timestamp) >= as_utc(cutoff))

    def active_at(self, now: datetime, patient: PatientProfile) -> List[Treatment]:
        """Treatments whose effect window contains ``now``."""
        active: List[Treatment] = []
        for treatment in self._treatments:
            elapsed = treatment.minutes_since(now)
            if 0 <= elapsed <= effect_horizon_minutes(treatment, patient):
                active.append(treatment)
        return active

    def overlapping(self, start: datetime, end: datetime, patient: PatientProfile) -> "TreatmentLedger":
        """Treatments whose effect window intersects ``[start, end]``."""
        start, end = as_utc(start), as_utc(end)
        selected = []
        for treatment in self._treatments:
            given = as_utc(treatment.timestamp)
            window_end = given + timedelta(minutes=effect_horizon_minutes(treatment, patient))
            if given <= end and window_end >= start:
                selected.append(treatment)
        return TreatmentLedger(selected)
