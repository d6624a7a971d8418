"""
JSON schema for simulation configuration documents.
"""

from typing import Dict, Any, List
import jsonschema

_NUMBER = {"type": "number"}

_POSITION = {
    "type": "object",
    "properties": {"X": _NUMBER, "Y": _NUMBER, "Z": _NUMBER},
    "additionalProperties": False
}

_VECTOR3 = {
    "type": "array",
    "items": _NUMBER,
    "minItems": 3,
    "maxItems": 3
}

_AXIS_CONFIG = {
    "type": "object",
    "required": ["min", "max"],
    "properties": {
        "positiveDirection": {"type": "string"},
        "negativeDirection": {"type": "string"},
        "polarity": {"enum": [1, -1]},
        "min": _NUMBER,
        "max": _NUMBER
    }
}

_RAPID_MOVE = {
    "type": "object",
    "required": ["type"],
    "properties": {
        "id": {"type": "string"},
        "type": {"const": "rapid"},
        "description": {"type": "string"},
        "axesValues": _POSITION,
        "positionMode": {"enum": ["relative", "absolute", "none"]},
        "coordinateSystem": {"enum": ["machine", "wcs", "none"]}
    },
    "not": {"required": ["dwellTime"]}
}

_DWELL_MOVE = {
    "type": "object",
    "required": ["type", "dwellTime"],
    "properties": {
        "id": {"type": "string"},
        "type": {"const": "dwell"},
        "description": {"type": "string"},
        "dwellTime": _NUMBER
    },
    "not": {"required": ["axesValues"]}
}

_MOVEMENT_STEP = {"oneOf": [_RAPID_MOVE, _DWELL_MOVE]}

_PROBE_OPERATION = {
    "type": "object",
    "required": ["axis", "direction", "distance", "feedRate", "backoffDistance"],
    "properties": {
        "id": {"type": "string"},
        "axis": {"enum": ["X", "Y", "Z"]},
        "direction": {"enum": [1, -1]},
        "distance": _NUMBER,
        "feedRate": _NUMBER,
        "backoffDistance": _NUMBER,
        "wcsOffset": _NUMBER,
        "preMoves": {"type": "array", "items": _MOVEMENT_STEP},
        "postMoves": {"type": "array", "items": _MOVEMENT_STEP}
    }
}

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Probe Simulation Configuration",
    "description": "Machine, probe sequence, stock and playback settings",
    "type": "object",
    "properties": {
        "machine": {
            "type": "object",
            "properties": {
                "units": {"enum": ["mm", "inch"]},
                "axes": {
                    "type": "object",
                    "properties": {"X": _AXIS_CONFIG, "Y": _AXIS_CONFIG, "Z": _AXIS_CONFIG}
                },
                "machineOrientation": {"enum": ["vertical", "horizontal"]},
                "stageDimensions": _VECTOR3
            }
        },
        "probeSequence": {
            "type": "object",
            "properties": {
                "initialPosition": _POSITION,
                "dwellsBeforeProbe": {"type": "integer"},
                "spindleSpeed": _NUMBER,
                "units": {"enum": ["mm", "inch"]},
                "endmillSize": {
                    "type": "object",
                    "required": ["sizeInMM"],
                    "properties": {
                        "input": {"type": "string"},
                        "unit": {"enum": ["fraction", "inch", "mm"]},
                        "sizeInMM": _NUMBER
                    }
                },
                "operations": {"type": "array", "items": _PROBE_OPERATION}
            }
        },
        "stock": {
            "type": "object",
            "properties": {
                "size": _VECTOR3,
                "position": _VECTOR3
            }
        },
        "simulation": {
            "type": "object",
            "properties": {
                "speed": _NUMBER,
                "tickIntervalMs": {"type": "integer"}
            }
        }
    }
}


class ConfigValidator:
    """Validates configuration documents against CONFIG_SCHEMA."""

    def __init__(self):
        self.schema = CONFIG_SCHEMA
        self.validator = jsonschema.Draft7Validator(self.schema)

    def validate_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate a configuration document.

        Args:
            config: Parsed configuration dictionary

        Returns:
            Validation result with valid flag and error messages
        """
        errors = sorted(self.validator.iter_errors(config), key=lambda e: [str(part) for part in e.path])
        return {
            'valid': not errors,
            'errors': [self._format_error(error) for error in errors]
        }

    @staticmethod
    def _format_error(error: jsonschema.ValidationError) -> str:
        location = "/".join(str(part) for part in error.path) or "<root>"
        return f"{location}: {error.message}"


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a configuration document."""
    return ConfigValidator().validate_config(config)


def get_config_schema() -> Dict[str, Any]:
    """Get the configuration schema."""
    return CONFIG_SCHEMA
