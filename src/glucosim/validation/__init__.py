from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Union

import yaml
from pydantic import ValidationError

from glucosim.core.config import SimulationConfig
from glucosim.core.patient.profile import PatientProfile
from glucosim.core.treatments import Treatment
from glucosim.validation.schemas import (
    PatientProfileModel,
    SimulationConfigModel,
    TargetRangeModel,
    TreatmentFileModel,
    TreatmentModel,
)


def _read_mapping(path: Union[str, Path]) -> Any:
    # YAML is a superset of JSON, so one loader covers both formats
    return yaml.safe_load(Path(path).read_text())


def validate_patient_profile_dict(data: Dict[str, Any]) -> PatientProfileModel:
    return PatientProfileModel.model_validate(data)


def load_patient_profile(path: Union[str, Path]) -> PatientProfile:
    data = _read_mapping(path)
    return validate_patient_profile_dict(data or {}).to_profile()


def load_patient_profile_by_name(name: str) -> PatientProfile:
    from glucosim.presets import get_preset

    preset = get_preset(name)
    return validate_patient_profile_dict(preset.get("patient", {})).to_profile()


def validate_treatments_payload(data: Any) -> TreatmentFileModel:
    if isinstance(data, list):
        data = {"treatments": data}
    return TreatmentFileModel.model_validate(data or {})


def load_treatments(path: Union[str, Path]) -> List[Treatment]:
    model = validate_treatments_payload(_read_mapping(path))
    return [entry.to_treatment() for entry in model.treatments]


def load_simulation_config(path: Union[str, Path]) -> SimulationConfig:
    data = _read_mapping(path)
    return SimulationConfigModel.model_validate(data or {}).to_config()


def format_validation_error(error: ValidationError) -> List[str]:
    lines: List[str] = []
    for entry in error.errors():
        loc = ".".join(str(item) for item in entry.get("loc", []))
        msg = entry.get("msg", "Invalid value")
        lines.append(f"{loc}: {msg}" if loc else msg)
    return lines


__all__ = [
    "PatientProfileModel",
    "SimulationConfigModel",
    "TargetRangeModel",
    "TreatmentFileModel",
    "TreatmentModel",
    "format_validation_error",
    "load_patient_profile",
    "load_patient_profile_by_name",
    "load_simulation_config",
    "load_treatments",
    "validate_patient_profile_dict",
    "validate_treatments_payload",
]
