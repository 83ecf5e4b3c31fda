from dataclasses import replace
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import numpy as np
import pytest

from glucosim.core.clock import FixedClock
from glucosim.core.config import SimulationConfig
from glucosim.core.errors import InvalidProfile
from glucosim.core.patient.profile import PatientProfile
from glucosim.core.projection import (
    ProjectionDriver,
    align_to_grid,
    project,
    project_forward,
    sample_count,
)
from glucosim.core.treatments import Treatment


class TestGrid:
    def test_align_floors_to_five_minutes(self):
        ts = datetime(2024, 3, 1, 10, 7, 33, 120000, tzinfo=timezone.utc)
        assert align_to_grid(ts) == datetime(2024, 3, 1, 10, 5, tzinfo=timezone.utc)

    def test_aligned_timestamp_unchanged(self, t0):
        assert align_to_grid(t0) == t0

    def test_sample_count(self):
        assert sample_count(1, 5) == 13
        assert sample_count(12, 5) == 145
        assert sample_count(0, 5) == 1
        assert sample_count(1, 7) == 10


class TestProject:
    def test_unaligned_start_is_floored(self, quiet_patient):
        start = datetime(2024, 3, 1, 10, 7, 33, tzinfo=timezone.utc)
        readings = project(quiet_patient, [], start, 1, now=start)
        assert readings[0].timestamp == datetime(2024, 3, 1, 10, 5, tzinfo=timezone.utc)
        assert all(r.timestamp.minute % 5 == 0 and r.timestamp.second == 0 for r in readings)

    def test_timestamps_strictly_increasing_by_interval(self, t0, quiet_patient):
        readings = project(quiet_patient, [], t0, 2, 10, now=t0)
        gaps = {b.timestamp - a.timestamp for a, b in zip(readings, readings[1:])}
        assert gaps == {timedelta(minutes=10)}
        assert len(readings) == 13

    def test_first_reading_is_baseline(self, t0):
        patient = PatientProfile(current_glucose=133.0)
        readings = project(patient, [Treatment.insulin(t0, 4.0)], t0, 1, now=t0)
        assert readings[0].value == 133.0
        assert readings[0].iob == 4.0

    def test_is_future_relative_to_now(self, t0, quiet_patient):
        now = t0 + timedelta(hours=1)
        readings = project(quiet_patient, [], t0, 2, now=now)
        assert all(not r.is_future for r in readings if r.timestamp <= now)
        assert all(r.is_future for r in readings if r.timestamp > now)
        assert sum(not r.is_future for r in readings) == 13

    def test_now_from_clock(self, t0, quiet_patient):
        clock = FixedClock(t0 + timedelta(minutes=30))
        readings = project(quiet_patient, [], t0, 1, clock=clock)
        assert [r.is_future for r in readings].count(False) == 7

    def test_deterministic(self, t0):
        patient = PatientProfile()
        treatments = [Treatment.carb(t0 + timedelta(minutes=20), 60.0), Treatment.insulin(t0, 5.0)]
        first = project(patient, treatments, t0, 12, now=t0)
        second = project(patient, list(reversed(treatments)), t0, 12, now=t0)
        assert first == second

    def test_bounds_hold_under_extreme_treatments(self, t0):
        patient = PatientProfile()
        low = project(patient, [Treatment.insulin(t0, 20.0)], t0, 12, now=t0)
        high = project(patient, [Treatment.carb(t0, 300.0)], t0, 12, now=t0)
        assert min(r.value for r in low) == 40.0
        assert max(r.value for r in high) == 400.0
        assert all(40.0 <= r.value <= 400.0 for r in low + high)

    def test_custom_bounds_from_config(self, t0, quiet_patient):
        config = SimulationConfig(min_glucose=70.0)
        readings = project(quiet_patient, [Treatment.insulin(t0, 5.0)], t0, 3, now=t0, config=config)
        assert min(r.value for r in readings) == 70.0

    def test_invalid_profile_rejected_before_stepping(self, t0):
        patient = PatientProfile(insulin_sensitivity=0.0, carb_ratio=-1.0)
        with pytest.raises(InvalidProfile) as excinfo:
            project(patient, [], t0, 1, now=t0)
        assert len(excinfo.value.violations) == 2
        assert excinfo.value.patient_id == "default"

    def test_non_finite_baseline_rejected(self, t0, quiet_patient):
        with pytest.raises(InvalidProfile, match="current_glucose"):
            project(replace(quiet_patient, current_glucose=float("nan")), [], t0, 1, now=t0)

    def test_invalid_interval(self, t0, quiet_patient):
        with pytest.raises(ValueError, match="interval_minutes"):
            ProjectionDriver(quiet_patient, interval_minutes=0)


class TestScenarios:
    def test_flat_line_without_inputs(self, t0, quiet_patient):
        readings = project(quiet_patient, [], t0, 12, now=t0)
        assert len(readings) == 145
        assert {r.value for r in readings} == {120.0}
        assert all(r.iob == 0.0 and r.cob == 0.0 for r in readings)

    def test_single_insulin_bolus(self, t0, quiet_patient):
        patient = replace(quiet_patient, current_glucose=150.0)
        readings = project(patient, [Treatment.insulin(t0, 1.0)], t0, 12, now=t0)
        values = np.array([r.value for r in readings])

        assert values[0] == 150.0
        assert values[17] == pytest.approx(102.5)
        assert values[18] == pytest.approx(100.0)
        # falling activity adds nothing, so the trough holds
        assert np.all(values[18:] == values[18])
        assert 12 <= int(np.argmin(values)) <= 18
        assert np.all(np.diff(values) <= 0)

        iob = [r.iob for r in readings]
        assert iob[0] == 1.0
        assert all(b <= a for a, b in zip(iob, iob[1:]))
        assert iob[72] == 0.0

    def test_single_carb_intake(self, t0, quiet_patient):
        patient = replace(quiet_patient, current_glucose=100.0)
        readings = project(patient, [Treatment.carb(t0, 24.0)], t0, 4, now=t0)
        values = [r.value for r in readings]

        assert values[0] == 100.0
        assert values[24] == pytest.approx(200.0)
        assert all(b >= a for a, b in zip(values, values[1:]))
        assert readings[0].cob == 24.0
        assert readings[24].cob == 0.0
        assert all(r.cob == 0.0 for r in readings[24:])

    def test_treatment_before_window_still_counts(self, t0, quiet_patient):
        readings = project(quiet_patient, [Treatment.insulin(t0 - timedelta(hours=1), 2.0)], t0, 1, now=t0)
        assert 0.0 < readings[0].iob < 2.0
        assert readings[-1].value < readings[0].value

    def test_expired_treatment_ignored(self, t0, quiet_patient):
        readings = project(quiet_patient, [Treatment.insulin(t0 - timedelta(hours=7), 2.0)], t0, 1, now=t0)
        assert {r.value for r in readings} == {120.0}


class TestProjectForward:
    def test_starts_at_current_slot(self, quiet_patient):
        now = datetime(2024, 3, 1, 9, 12, tzinfo=timezone.utc)
        readings = project_forward(quiet_patient, [], 1, now=now)
        assert readings[0].timestamp == datetime(2024, 3, 1, 9, 10, tzinfo=timezone.utc)
        assert not readings[0].is_future
        assert all(r.is_future for r in readings[1:])

    def test_default_horizon_from_config(self, t0, quiet_patient):
        readings = project_forward(quiet_patient, [], now=t0)
        assert len(readings) == 145
        short = project_forward(quiet_patient, [], now=t0, config=SimulationConfig(forward_hours=2))
        assert len(short) == 25

    def test_lookback_window_filters_treatments(self, t0, quiet_patient):
        treatments = [Treatment.insulin(t0 - timedelta(hours=2), 2.0)]
        full = project_forward(quiet_patient, treatments, 1, now=t0)
        trimmed = project_forward(
            quiet_patient, treatments, 1, now=t0, config=SimulationConfig(treatment_lookback_hours=1)
        )
        assert full[0].iob > 0.0
        assert trimmed[0].iob == 0.0


class TestDaylightSaving:
    def test_steps_on_real_time_across_spring_forward(self, quiet_patient):
        amsterdam = ZoneInfo("Europe/Amsterdam")
        start = datetime(2024, 3, 31, 1, 0, tzinfo=amsterdam)
        readings = project(quiet_patient, [Treatment.insulin(start, 1.0)], start, 3, now=start)

        instants = [r.timestamp.astimezone(timezone.utc) for r in readings]
        assert len(set(instants)) == 37
        assert {b - a for a, b in zip(instants, instants[1:])} == {timedelta(minutes=5)}
        # 02:00 local does not exist that night
        assert readings[11].timestamp.hour == 1
        assert readings[12].timestamp.hour == 3
        assert all(r.timestamp.tzinfo is amsterdam for r in readings)

        start_utc = start.astimezone(timezone.utc)
        reference = project(quiet_patient, [Treatment.insulin(start_utc, 1.0)], start_utc, 3, now=start_utc)
        assert [r.value for r in readings] == [r.value for r in reference]
        assert [r.iob for r in readings] == [r.iob for r in reference]

    def test_repeated_hour_is_not_skipped(self, quiet_patient):
        amsterdam = ZoneInfo("Europe/Amsterdam")
        start = datetime(2024, 10, 27, 1, 30, tzinfo=amsterdam)
        now = datetime(2024, 10, 27, 0, 40, tzinfo=timezone.utc)
        readings = project(quiet_patient, [], start, 2, now=now)

        instants = [r.timestamp.astimezone(timezone.utc) for r in readings]
        assert len(set(instants)) == len(readings) == 25
        assert {b - a for a, b in zip(instants, instants[1:])} == {timedelta(minutes=5)}
        # the repeated 02:xx hour is walked under both UTC offsets
        assert sum(r.timestamp.hour == 2 for r in readings) == 12 + 7
        assert [r.is_future for r in readings] == [ts > now for ts in instants]
