from datetime import datetime, timezone
from pathlib import Path
import sys

import pytest

project_root = Path(__file__).resolve().parents[1]
src_path = project_root / "src"

if src_path.exists():
    sys.path.insert(0, str(src_path))

from glucosim.core.patient.profile import PatientProfile  # noqa: E402


@pytest.fixture
def t0() -> datetime:
    return datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def quiet_patient() -> PatientProfile:
    """Patient with every background effect switched off."""
    return PatientProfile(
        id="quiet",
        basal_rates=tuple([0.0] * 24),
        liver_glucose_production=0.0,
        noise_level=0.0,
        current_glucose=120.0,
    )
