# ============================================================================
#  File: config_validate.py
#  Purpose: JSON schema validation for orchestrator settings
# ============================================================================
# SECTION 1: Imports and Globals
# ============================================================================

import json
import os
from typing import Any, Dict, List, Optional, Tuple

import jsonschema

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
CONFIG_DIR = os.path.join(PROJECT_ROOT, "config")
CONFIG_PATH = os.path.join(CONFIG_DIR, "orchestrator_settings.json")
SCHEMA_PATH = os.path.join(CONFIG_DIR, "config_schema.json")

# ============================================================================
# SECTION 2: Functions
# ============================================================================
# Function 2.1: load_schema
# ============================================================================
def load_schema(schema_path: str = SCHEMA_PATH) -> Dict[str, Any]:
    with open(schema_path, "r", encoding="utf-8") as f:
        return json.load(f)

# ============================================================================
# Function 2.2: validate_config_data
# ============================================================================
def validate_config_data(
    config_data: Dict[str, Any], schema_path: str = SCHEMA_PATH
) -> Tuple[bool, Optional[str]]:
    """
    Validates settings data (dict) against the JSON schema.

    Args:
        config_data: Settings data as dictionary
        schema_path: Path to the JSON schema file

    Returns:
        Tuple of (is_valid: bool, error_message: Optional[str])
    """
    try:
        jsonschema.validate(instance=config_data, schema=load_schema(schema_path))
        return True, None

    except FileNotFoundError as e:
        return False, f"Schema file not found: {e}"
    except json.JSONDecodeError as e:
        return False, f"Invalid schema JSON format: {e}"
    except jsonschema.ValidationError as e:
        location = ".".join(str(p) for p in e.path)
        return False, f"Configuration validation error at '{location}': {e.message}"
    except jsonschema.SchemaError as e:
        return False, f"Schema validation error: {e.message}"

# ============================================================================
# Function 2.3: validate_config
# ============================================================================
def validate_config(
    config_path: str = CONFIG_PATH, schema_path: str = SCHEMA_PATH
) -> Tuple[bool, Optional[str]]:
    """Loads a settings file and validates it against the schema."""
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = json.load(f)
    except FileNotFoundError as e:
        return False, f"Configuration file not found: {e}"
    except json.JSONDecodeError as e:
        return False, f"Invalid JSON format: {e}"
    return validate_config_data(config, schema_path)

# ============================================================================
# Function 2.4: get_validation_errors
# ============================================================================
def get_validation_errors(config_data: Dict[str, Any], schema_path: str = SCHEMA_PATH) -> List[Dict[str, Any]]:
    """
    Collects every schema violation instead of stopping at the first one.

    Returns:
        list[dict]: Entries with ``path``, ``message`` and ``invalid_value``
    """
    if not isinstance(config_data, dict):
        return [{
            "path": [],
            "message": f"Expected dict for config_data, got {type(config_data).__name__}",
            "invalid_value": config_data
        }]

    try:
        schema = load_schema(schema_path)
    except (OSError, json.JSONDecodeError) as e:
        return [{
            "path": [],
            "message": f"Error reading schema file: {e}",
            "invalid_value": None
        }]

    validator = jsonschema.Draft7Validator(schema)
    return [
        {
            "path": list(error.path),
            "message": error.message,
            "invalid_value": error.instance,
        }
        for error in sorted(validator.iter_errors(config_data), key=lambda e: [str(p) for p in e.path])
    ]
#
#
## END config_validate.py
