# src/glucosim/__init__.py

__version__ = "0.1.0"

# Engine
from .core.clock import Clock, SystemClock, FixedClock, as_utc
from .core.config import SimulationConfig
from .core.curves import (
    ActivityCurve,
    AbsorptionCurve,
    DEFAULT_INSULIN_CURVE,
    DEFAULT_CARB_CURVE,
    activity_at,
    absorption_at,
    cumulative_at,
)
from .core.effects import StepEffects, compute_step, insulin_on_board, carbs_on_board
from .core.errors import GlucoSimError, InvalidProfile, ReprojectionBaselineMissing, ProjectionInProgress
from .core.ledger import TreatmentLedger
from .core.patient.profile import PatientProfile, PatientProfileUpdate, TargetRange
from .core.projection import ProjectionDriver, align_to_grid, project, project_forward
from .core.reprojection import reproject, advance_readings, latest_past_reading
from .core.treatments import Treatment, TreatmentType, TreatmentMetadata, GlucoseReading

# Collaborators
from .storage import ReadingStore, InMemoryStore
from .session import SimulationSession, SimulationState

# Data handling
from .utils.run_io import readings_to_dataframe, readings_from_dataframe, write_readings_csv
from .validation import (
    load_patient_profile,
    load_patient_profile_by_name,
    load_treatments,
    load_simulation_config,
)

__all__ = [
    # Engine
    "Clock", "SystemClock", "FixedClock", "as_utc",
    "SimulationConfig",
    "ActivityCurve", "AbsorptionCurve", "DEFAULT_INSULIN_CURVE", "DEFAULT_CARB_CURVE",
    "activity_at", "absorption_at", "cumulative_at",
    "StepEffects", "compute_step", "insulin_on_board", "carbs_on_board",
    "GlucoSimError", "InvalidProfile", "ReprojectionBaselineMissing", "ProjectionInProgress",
    "TreatmentLedger",
    "PatientProfile", "PatientProfileUpdate", "TargetRange",
    "ProjectionDriver", "align_to_grid", "project", "project_forward",
    "reproject", "advance_readings", "latest_past_reading",
    "Treatment", "TreatmentType", "TreatmentMetadata", "GlucoseReading",
    # Collaborators
    "ReadingStore", "InMemoryStore",
    "SimulationSession", "SimulationState",
    # Data
    "readings_to_dataframe", "readings_from_dataframe", "write_readings_csv",
    "load_patient_profile", "load_patient_profile_by_name", "load_treatments", "load_simulation_config",
]
