"""Built-in patient presets."""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from importlib.resources import files
from typing import Any, Dict, List


def load_presets() -> List[Dict[str, Any]]:
    content = files("glucosim.presets").joinpath("presets.json").read_text()
    return json.loads(content)


def get_preset(name: str) -> Dict[str, Any]:
    presets = load_presets()
    for preset in presets:
        if preset.get("name") == name:
            return preset
    raise KeyError(name)


def preset_treatment_payloads(preset: Dict[str, Any], start: datetime) -> List[Dict[str, Any]]:
    """Resolve the preset's ``offset_minutes`` entries against ``start``."""
    payloads: List[Dict[str, Any]] = []
    for entry in preset.get("treatments", []):
        payload = {key: value for key, value in entry.items() if key != "offset_minutes"}
        payload["timestamp"] = start + timedelta(minutes=entry.get("offset_minutes", 0))
        payloads.append(payload)
    return payloads


__all__ = ["load_presets", "get_preset", "preset_treatment_payloads"]
