from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from glucosim.core.patient.profile import PatientProfile
from glucosim.core.treatments import GlucoseReading, Treatment


class ReadingStore(Protocol):
    """
    Persistence collaborator consumed by the session. The engine itself never
    touches storage; reads happen before a projection and writes after it.
    """

    def get_patient(self, patient_id: str) -> Optional[PatientProfile]:
        ...

    def save_patient(self, profile: PatientProfile) -> None:
        ...

    def get_treatments(self, patient_id: str, since: Optional[datetime] = None) -> List[Treatment]:
        ...

    def save_treatment(self, patient_id: str, treatment: Treatment) -> None:
        ...

    def get_readings(self, patient_id: str, from_time: datetime, to_time: datetime) -> List[GlucoseReading]:
        ...

    def save_readings(self, readings: Sequence[GlucoseReading]) -> None:
        ...

    def clear_future_readings(self, patient_id: str, from_time: datetime) -> None:
        ...

    def next_future_reading(self, patient_id: str) -> Optional[GlucoseReading]:
        ...

    def cleanup_old_data(
        self,
        patient_id: str,
        before: datetime,
        treatments_before: Optional[datetime] = None,
    ) -> None:
        ...
