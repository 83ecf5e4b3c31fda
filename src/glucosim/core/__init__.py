from .clock import Clock, FixedClock, SystemClock, as_utc
from .config import SimulationConfig
from .curves import (
    DEFAULT_CARB_CURVE,
    DEFAULT_INSULIN_CURVE,
    AbsorptionCurve,
    ActivityCurve,
    absorption_at,
    activity_at,
    cumulative_at,
)
from .errors import GlucoSimError, InvalidProfile, ProjectionInProgress, ReprojectionBaselineMissing
from .ledger import TreatmentLedger
from .projection import ProjectionDriver, align_to_grid, project, project_forward
from .reprojection import advance_readings, latest_past_reading, reproject
from .treatments import GlucoseReading, Treatment, TreatmentMetadata, TreatmentType

__all__ = [
    "Clock", "FixedClock", "SystemClock", "as_utc",
    "SimulationConfig",
    "DEFAULT_CARB_CURVE", "DEFAULT_INSULIN_CURVE", "AbsorptionCurve", "ActivityCurve",
    "absorption_at", "activity_at", "cumulative_at",
    "GlucoSimError", "InvalidProfile", "ProjectionInProgress", "ReprojectionBaselineMissing",
    "TreatmentLedger",
    "ProjectionDriver", "align_to_grid", "project", "project_forward",
    "advance_readings", "latest_past_reading", "reproject",
    "GlucoseReading", "Treatment", "TreatmentMetadata", "TreatmentType",
]
