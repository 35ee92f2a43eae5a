import json

import pytest

from plan_orchestrator.config_manager import ConfigManager, OrchestratorSettings
from plan_orchestrator.config_validate import CONFIG_PATH, get_validation_errors, validate_config
from plan_orchestrator.models import ActionRef, ExecutionStrategy
from plan_orchestrator.plan_builder import build_plan


@pytest.fixture
def settings_file(tmp_path):
    path = tmp_path / "orchestrator_settings.json"
    with open(CONFIG_PATH, encoding="utf-8") as f:
        path.write_text(f.read(), encoding="utf-8")
    return path


def test_shipped_settings_are_valid():
    assert validate_config() == (True, None)


def test_loads_settings_and_templates():
    manager = ConfigManager()
    settings = manager.get()

    assert settings.budget.daily_limit == 100_000
    assert settings.executor.safe_mode is True
    names = {t["name"] for t in manager.list_plan_templates()}
    assert names == {"component_refresh", "parallel_review", "staged_feature"}


@pytest.mark.parametrize("name", ["component_refresh", "parallel_review", "staged_feature"])
def test_every_template_builds_a_plan(name):
    plan = build_plan(ConfigManager().get_plan_template(name))
    assert len(plan) > 0


def test_staged_feature_template_shape():
    plan = build_plan(ConfigManager().get_plan_template("staged_feature", {"name": "Budget panel"}))

    assert plan.name == "Budget panel"
    assert plan.strategy is ExecutionStrategy.MIXED
    assert plan.orchestration.parallel_groups[1] == (ActionRef(1), ActionRef(2))
    assert plan.actions[3].dependencies == frozenset({ActionRef(1), ActionRef(2)})


def test_template_copies_are_independent():
    manager = ConfigManager()
    template = manager.get_plan_template("component_refresh")
    template["actions"].clear()

    assert len(manager.get_plan_template("component_refresh")["actions"]) == 2


def test_unknown_template_raises():
    with pytest.raises(KeyError, match="not found"):
        ConfigManager().get_plan_template("nope")


def test_missing_settings_file_is_fatal(tmp_path):
    with pytest.raises(RuntimeError, match="FATAL"):
        ConfigManager(config_path=str(tmp_path / "missing.json"))


def test_schema_violation_is_reported_with_code(settings_file):
    data = json.loads(settings_file.read_text())
    data["budget"]["daily_limit"] = "lots"
    settings_file.write_text(json.dumps(data))

    with pytest.raises(RuntimeError, match=r"\[E002\].*budget\.daily_limit"):
        ConfigManager(config_path=str(settings_file))


def test_descending_thresholds_fail_model_validation(settings_file):
    data = json.loads(settings_file.read_text())
    data["budget"]["warning_threshold"] = 0.99
    settings_file.write_text(json.dumps(data))

    with pytest.raises(RuntimeError, match=r"\[E002\]"):
        ConfigManager(config_path=str(settings_file))


def test_missing_templates_only_warn(settings_file, tmp_path):
    manager = ConfigManager(config_path=str(settings_file), templates_path=str(tmp_path / "none.yaml"))
    assert manager.list_plan_templates() == []


def test_save_round_trip(settings_file):
    manager = ConfigManager(config_path=str(settings_file))
    data = manager.get().model_dump()
    data["executor"]["max_actions_per_run"] = 5

    assert manager.save(data) is True
    assert manager.get().executor.max_actions_per_run == 5
    assert ConfigManager(config_path=str(settings_file)).get().executor.max_actions_per_run == 5


def test_save_rejects_invalid_settings(settings_file):
    manager = ConfigManager(config_path=str(settings_file))
    data = manager.get().model_dump()
    data["executor"]["unexpected"] = True

    assert manager.save(data) is False
    assert "unexpected" not in settings_file.read_text()


def test_get_validation_errors_collects_everything():
    data = OrchestratorSettings().model_dump()
    data["budget"]["daily_limit"] = 0
    data["executor"]["safe_mode"] = "yes"

    errors = get_validation_errors(data)

    assert [e["path"] for e in errors] == [["budget", "daily_limit"], ["executor", "safe_mode"]]
    assert get_validation_errors([])[0]["message"] == "Expected dict for config_data, got list"
