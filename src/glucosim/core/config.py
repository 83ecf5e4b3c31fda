from __future__ import annotations

from dataclasses import dataclass


@dataclass
class SimulationConfig:
    """
    Central engine configuration shared by the projection driver, the
    re-projection coordinator and the session.
    """
    # Physiological bounds applied after every step
    min_glucose: float = 40.0
    max_glucose: float = 400.0

    # Grid
    interval_minutes: int = 5

    # Horizons
    forward_hours: float = 12.0
    reprojection_horizon_hours: float = 12.0
    treatment_lookback_hours: float = 24.0

    # Chart windows used by the session
    chart_history_hours: float = 24.0
    chart_forward_hours: float = 2.0

    # New-patient history seed
    history_seed_minutes: int = 30
    history_seed_glucose: float = 108.0
    history_seed_variation: float = 2.0

    # Resume from background
    background_recompute_minutes: float = 5.0

    # Storage retention
    reading_retention_days: float = 7.0
    treatment_retention_days: float = 30.0
