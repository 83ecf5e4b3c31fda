from datetime import datetime, timezone

import pytest
import yaml
from pydantic import ValidationError

from glucosim.core.treatments import TreatmentType
from glucosim.presets import get_preset, load_presets, preset_treatment_payloads
from glucosim.validation import (
    format_validation_error,
    load_patient_profile,
    load_patient_profile_by_name,
    load_simulation_config,
    load_treatments,
    validate_patient_profile_dict,
    validate_treatments_payload,
)


def _write_yaml(path, data):
    path.write_text(yaml.safe_dump(data))
    return path


class TestPatientProfileFiles:
    def test_flat_basal_expands(self, tmp_path):
        path = _write_yaml(tmp_path / "patient.yaml", {"id": "p1", "basal_rates": 1.1, "current_glucose": 140})
        profile = load_patient_profile(path)
        assert profile.id == "p1"
        assert profile.basal_rates == tuple([1.1] * 24)
        assert profile.current_glucose == 140.0

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_patient_profile(path).insulin_sensitivity == 50.0

    def test_json_input(self, tmp_path):
        path = tmp_path / "patient.json"
        path.write_text('{"id": "json", "carb_ratio": 9}')
        assert load_patient_profile(path).carb_ratio == 9.0

    @pytest.mark.parametrize(
        "data, location",
        [
            ({"insulin_sensitivity": 0}, "insulin_sensitivity"),
            ({"basal_rates": [0.8] * 12}, "basal_rates"),
            ({"target_glucose": {"low": 180, "high": 100}}, "target_glucose"),
            ({"current_glucose": 500}, "current_glucose"),
            ({"unknown_field": 1}, "unknown_field"),
        ],
    )
    def test_rejects_invalid_profiles(self, data, location):
        with pytest.raises(ValidationError) as excinfo:
            validate_patient_profile_dict(data)
        assert any(line.startswith(location) for line in format_validation_error(excinfo.value))

    def test_rejects_nan(self):
        with pytest.raises(ValidationError):
            validate_patient_profile_dict({"weight": float("nan")})

    def test_rejects_infinite_target_bound(self):
        with pytest.raises(ValidationError) as excinfo:
            validate_patient_profile_dict({"target_glucose": {"low": float("-inf"), "high": 140}})
        assert any(line.startswith("target_glucose.low") for line in format_validation_error(excinfo.value))


class TestTreatmentFiles:
    def test_load_treatments(self, tmp_path):
        path = _write_yaml(
            tmp_path / "treatments.yaml",
            {
                "patient_id": "p1",
                "treatments": [
                    {"timestamp": "2024-03-01T08:00:00Z", "type": "carb", "value": 45, "rapid": True},
                    {"timestamp": "2024-03-01T08:05:00", "type": "insulin", "value": 3.5, "bolus": True},
                ],
            },
        )
        treatments = load_treatments(path)
        assert [t.type for t in treatments] == [TreatmentType.CARB, TreatmentType.INSULIN]
        assert treatments[0].metadata.rapid is True
        # naive timestamps are read as UTC
        assert treatments[1].timestamp == datetime(2024, 3, 1, 8, 5, tzinfo=timezone.utc)

    def test_bare_list_accepted(self):
        model = validate_treatments_payload([{"timestamp": "2024-03-01T08:00:00Z", "type": "insulin", "value": 1}])
        assert len(model.treatments) == 1
        assert model.patient_id is None

    @pytest.mark.parametrize(
        "entry",
        [
            {"timestamp": "2024-03-01T08:00:00Z", "type": "insulin", "value": 0},
            {"timestamp": "2024-03-01T08:00:00Z", "type": "exercise", "value": 30},
            {"timestamp": "2024-03-01T08:00:00Z", "type": "carb", "value": 20, "bolus": True},
            {"timestamp": "2024-03-01T08:00:00Z", "type": "insulin", "value": 2, "rapid": False},
        ],
    )
    def test_rejects_invalid_treatments(self, entry):
        with pytest.raises(ValidationError):
            validate_treatments_payload([entry])


class TestSimulationConfigFiles:
    def test_overrides(self, tmp_path):
        path = _write_yaml(tmp_path / "config.yaml", {"forward_hours": 6, "min_glucose": 50})
        config = load_simulation_config(path)
        assert config.forward_hours == 6.0
        assert config.min_glucose == 50.0
        assert config.max_glucose == 400.0

    def test_bounds_must_be_ordered(self, tmp_path):
        path = _write_yaml(tmp_path / "config.yaml", {"min_glucose": 300, "max_glucose": 200})
        with pytest.raises(ValidationError, match="min_glucose must be less than max_glucose"):
            load_simulation_config(path)


class TestPresets:
    def test_presets_are_valid(self):
        names = [preset["name"] for preset in load_presets()]
        assert {"default_patient", "steady_state", "breakfast_bolus", "correction"} <= set(names)
        for name in names:
            load_patient_profile_by_name(name).validate()

    def test_unknown_preset(self):
        with pytest.raises(KeyError):
            get_preset("nope")

    def test_treatment_offsets_resolved(self, t0):
        payloads = preset_treatment_payloads(get_preset("breakfast_bolus"), t0)
        assert all(p["timestamp"] == t0 for p in payloads)
        assert all("offset_minutes" not in p for p in payloads)
        model = validate_treatments_payload(payloads)
        assert [t.type for t in model.treatments] == ["carb", "insulin"]
