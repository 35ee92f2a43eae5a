"""
╔═════════════════════════════════════════════════════════════════════════════╗
║                  CONFIGURATION MANAGER SCRIPT - ver. 02.00                  ║
║ Purpose: Settings and plan template management for the plan orchestrator    ║
║ File:    config_manager.py                                                  ║
╠═════════════════════════════════════════════════════════════════════════════╣
║ Section 1: Initial Settings and Imports                                     ║
║ Purpose:   Configure initial settings, imports, and script variables        ║
╚═════════════════════════════════════════════════════════════════════════════╝
"""
import copy
import json
import os
import threading
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, model_validator

from plan_orchestrator.config import INTER_ACTION_PAUSE, INTER_GROUP_PAUSE
from plan_orchestrator.config_validate import CONFIG_DIR, CONFIG_PATH, SCHEMA_PATH, validate_config_data
from plan_orchestrator.error_handling import get_error_message

TEMPLATES_PATH = os.path.join(CONFIG_DIR, "plan_templates.yaml")

_config_lock = threading.RLock()
#
"""
╔═════════════════════════════════════════════════════════════════════════════╗
║ Section 2: Pydantic Configuration Models                                    ║
║ Purpose:   Define the data structure and validation for settings            ║
╠═════════════════════════════════════════════════════════════════════════════╣
║ Class 2.1: BudgetConfig                                                     ║
║ Purpose:   Quota, thresholds and operation classes for the budget ledger    ║
╚═════════════════════════════════════════════════════════════════════════════╝
 """
class BudgetConfig(BaseModel):
     daily_limit: int = Field(default=100000, gt=0)
     light_threshold: float = 0.60
     warning_threshold: float = 0.80
     critical_threshold: float = 0.95
     reset_interval_hours: float = Field(default=24, gt=0)
     emergency_shutdown_enabled: bool = True
     degradation_enabled: bool = True
     light_context_ceiling: int = 5000
     operator_initiated_operations: List[str] = ["user_chat", "user_prompt"]
     automatic_operations: List[str] = ["auto_critique", "auto_summary", "auto_planning"]
     context_heavy_operations: List[str] = ["planning", "critique", "summary"]

     @model_validator(mode="after")
     def _thresholds_ascend(self) -> "BudgetConfig":
          if not 0 <= self.light_threshold <= self.warning_threshold <= self.critical_threshold <= 1:
               raise ValueError("thresholds must satisfy 0 <= light <= warning <= critical <= 1")
          return self

     @property
     def reset_interval_seconds(self) -> float:
          return self.reset_interval_hours * 3600
# End class
"""
╔═════════════════════════════════════════════════════════════════════════════╗
║ Class 2.2: ExecutorSettings                                                 ║
║ Purpose:   Auto-execution policy and pacing for the workflow executor       ║
╚═════════════════════════════════════════════════════════════════════════════╝
"""
class ExecutorSettings(BaseModel):
     enable_auto_execution: bool = False
     auto_execute_types: List[str] = ["ask_user"]
     max_actions_per_run: int = 3
     require_confirmation: bool = True
     safe_mode: bool = True
     inter_action_pause: float = INTER_ACTION_PAUSE
     inter_group_pause: float = INTER_GROUP_PAUSE
     telemetry_enabled: bool = False
     telemetry_dir: str = "logs"
# End class
"""
╔═════════════════════════════════════════════════════════════════════════════╗
║ Class 2.3: OrchestratorSettings                                             ║
║ Purpose:   Root settings document                                           ║
╚═════════════════════════════════════════════════════════════════════════════╝
"""
class OrchestratorSettings(BaseModel):
     budget: BudgetConfig = Field(default_factory=BudgetConfig)
     executor: ExecutorSettings = Field(default_factory=ExecutorSettings)
# End class
#
"""
╔═════════════════════════════════════════════════════════════════════════════╗
║ Class 2.4: ConfigManager                                                    ║
║ Purpose:   Manages loading, validation, and saving of settings and plans    ║
╚═════════════════════════════════════════════════════════════════════════════╝
 """
class ConfigManager:
     """
     Loads orchestrator settings (JSON, schema-checked, then Pydantic-validated)
     and plan templates (YAML). Thread-safe.
     """
     def __init__(
          self,
          config_path: str = CONFIG_PATH,
          schema_path: str = SCHEMA_PATH,
          templates_path: str = TEMPLATES_PATH,
     ):
          self.config_path = config_path
          self.schema_path = schema_path
          self.templates_path = templates_path
          self._settings: Optional[OrchestratorSettings] = None
          self._templates: Dict[str, Dict[str, Any]] = {}
          self.reload()
     # End function

     # =========================================================================
     # Function 2.4.1: reload
     # =========================================================================
     def reload(self):
        """Reloads and re-validates settings and plan templates from disk."""
        with _config_lock:
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except FileNotFoundError:
                raise RuntimeError(f"FATAL: Settings file not found at {self.config_path}")
            except json.JSONDecodeError as e:
                raise RuntimeError(f"Failed to parse settings file {self.config_path}: {e}")

            is_valid, error = validate_config_data(data, self.schema_path)
            if not is_valid:
                raise RuntimeError(get_error_message('E002', error))
            try:
                self._settings = OrchestratorSettings(**data)
            except ValidationError as e:
                raise RuntimeError(get_error_message('E002', e))

            try:
                with open(self.templates_path, 'r', encoding='utf-8') as f:
                    self._templates = yaml.safe_load(f) or {}
            except FileNotFoundError:
                logger.warning(f"Plan template file not found at {self.templates_path}. Templates will be unavailable.")
                self._templates = {}
            except yaml.YAMLError as e:
                raise RuntimeError(f"Failed to parse plan templates from {self.templates_path}: {e}")

            logger.info(f"Settings loaded from {self.config_path}; {len(self._templates)} plan templates available")
     # End function

     # =========================================================================
     # Function 2.4.2: get
     # =========================================================================
     def get(self) -> OrchestratorSettings:
          """Returns the current, validated settings object."""
          with _config_lock:
               if self._settings is None:
                    self.reload()
               return self._settings
     # End function

     # =========================================================================
     # Function 2.4.3: list_plan_templates
     # =========================================================================
     def list_plan_templates(self) -> List[Dict[str, Any]]:
          """Summaries of the available plan templates."""
          with _config_lock:
               return [
                    {
                         "name": name,
                         "description": template.get("analysis", "No description available"),
                         "actions": len(template.get("actions") or []),
                         "strategy": (template.get("orchestration") or {}).get("execution_strategy", "sequential"),
                    }
                    for name, template in self._templates.items()
               ]

     # =========================================================================
     # Function 2.4.4: get_plan_template
     # =========================================================================
     def get_plan_template(self, template_name: str, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
          """
          Returns a deep copy of a plan template with top-level overrides applied.

          Raises:
              KeyError: If no template has that name
          """
          with _config_lock:
               if template_name not in self._templates:
                    raise KeyError(
                         f"Plan template '{template_name}' not found. Available: {list(self._templates.keys())}"
                    )
               template = copy.deepcopy(self._templates[template_name])
          if overrides:
               template.update(overrides)
          return template

     # =========================================================================
     # Function 2.4.5: save
     # =========================================================================
     def save(self, new_settings: dict) -> bool:
          """
          Validates and saves a new settings dictionary to the JSON file.

          Returns:
              bool: True if save was successful, False otherwise
          """
          with _config_lock:
               is_valid, error = validate_config_data(new_settings, self.schema_path)
               if not is_valid:
                    logger.error(get_error_message('E002', error))
                    return False
               try:
                    validated = OrchestratorSettings(**new_settings)
               except ValidationError as e:
                    logger.error(get_error_message('E002', e))
                    return False

               os.makedirs(os.path.dirname(self.config_path) or ".", exist_ok=True)
               with open(self.config_path, 'w', encoding='utf-8') as f:
                    json.dump(validated.model_dump(), f, indent=4)

               self._settings = validated
               logger.info(f"Settings saved to {self.config_path}")
               return True
#
#
## End of script
