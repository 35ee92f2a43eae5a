import csv
import json

import pytest

from plan_orchestrator.telemetry import FIELDNAMES, increment_usage, record_telemetry


def _rows(directory):
    with open(directory / "telemetry.csv", newline="") as f:
        return list(csv.DictReader(f))


async def test_decorator_records_outcomes(tmp_path):
    @record_telemetry("runner", "improve_file", str(tmp_path))
    async def run(result):
        if isinstance(result, Exception):
            raise result
        return result

    assert await run(True) is True
    assert await run(False) is False
    with pytest.raises(ValueError):
        await run(ValueError("boom"))

    rows = _rows(tmp_path)
    assert [r["outcome"] for r in rows] == ["ok", "failed", "error"]
    assert list(rows[0].keys()) == FIELDNAMES
    assert float(rows[0]["elapsed_sec"]) >= 0

    with open(tmp_path / "usage.json") as f:
        assert json.load(f) == {"runner:improve_file": 3}


def test_increment_usage_counts_per_operation(tmp_path):
    assert increment_usage("executor", "ask_user", str(tmp_path)) == 1
    assert increment_usage("executor", "ask_user", str(tmp_path)) == 2
    assert increment_usage("executor", "debug_issue", str(tmp_path)) == 1
