from __future__ import annotations

from typing import List, Optional


class GlucoSimError(Exception):
    """Base class for all engine errors."""


class InvalidProfile(GlucoSimError, ValueError):
    """Raised when a patient profile violates one of its invariants."""

    def __init__(self, violations: List[str], patient_id: Optional[str] = None):
        self.violations = list(violations)
        self.patient_id = patient_id
        prefix = f"INVALID_PROFILE[{patient_id}]" if patient_id else "INVALID_PROFILE"
        super().__init__(f"{prefix}: " + "; ".join(self.violations))


class ReprojectionBaselineMissing(GlucoSimError, RuntimeError):
    """Raised when a re-projection has neither past readings nor a usable baseline."""

    def __init__(self, message: str, patient_id: str, baseline: float):
        super().__init__(message)
        self.patient_id = patient_id
        self.baseline = baseline


class ProjectionInProgress(GlucoSimError, RuntimeError):
    """Raised when a second re-projection is requested while one is running."""

    def __init__(self, patient_id: str):
        super().__init__(f"A projection is already running for patient {patient_id!r}")
        self.patient_id = patient_id
