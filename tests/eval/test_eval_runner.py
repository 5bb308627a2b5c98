"""Test eval runner execution."""

import os
import subprocess
import sys
from pathlib import Path

import pytest

from backend.itinerary_engine.config import Settings
from eval.runner import evaluate_predicates, load_itinerary, load_scenarios, main, run_scenario

REPO_ROOT = Path(__file__).resolve().parents[2]
TOKYO = REPO_ROOT / "fixtures" / "tokyo-4day.json"
SETTINGS = Settings(llm_enabled=False, _env_file=None)  # type: ignore[call-arg]


def write_scenarios(tmp_path: Path, predicate: str) -> Path:
    """Helper to write a one-scenario file against the Tokyo fixture."""
    eval_dir = tmp_path / "eval"
    eval_dir.mkdir(parents=True)
    path = eval_dir / "scenarios.yaml"
    path.write_text(
        "scenarios:\n"
        "  - scenario_id: tmp_move\n"
        '    message: "Move Senso-ji to day 2"\n'
        f"    fixture: {TOKYO}\n"
        "    must_satisfy:\n"
        f'      - predicate: "{predicate}"\n'
    )
    return path


def test_bundled_scenarios_load() -> None:
    """Test that the bundled scenario file parses and names its fixtures."""
    scenarios = load_scenarios()["scenarios"]

    ids = [s["scenario_id"] for s in scenarios]
    assert "move_to_day" in ids
    assert "missing_target_asks" in ids
    assert all(s["must_satisfy"] for s in scenarios)


def test_evaluate_predicates_counts_failures_and_errors(capsys: pytest.CaptureFixture[str]) -> None:
    """Test pass, fail and error predicates."""
    env = {"value": 3}

    passed, total = evaluate_predicates(
        env,
        [
            {"predicate": "value == 3", "description": "equal"},
            {"predicate": "value > 5", "description": "bigger"},
            {"predicate": "missing.attr", "description": "broken"},
        ],
    )

    assert (passed, total) == (1, 3)
    out = capsys.readouterr().out
    assert "PASS: equal" in out
    assert "FAIL: bigger" in out
    assert "ERROR: broken" in out


@pytest.mark.asyncio
async def test_run_scenario_move() -> None:
    """Test that a move scenario yields the parsed intent and mutated itinerary."""
    itinerary = load_itinerary(TOKYO)

    env = await run_scenario({"message": "Move Senso-ji to day 3"}, itinerary, SETTINGS)

    assert env["intent"].params.to_day == 3
    assert env["result"].success
    assert "Senso-ji Temple" in env["names"](env["itinerary"], 3)
    assert "Senso-ji Temple" in env["names"](env["original"], 1)


@pytest.mark.asyncio
async def test_run_scenario_clarification() -> None:
    """Test that an untargeted message yields a clarification and no result."""
    env = await run_scenario({"message": "Move it to the evening"}, load_itinerary(TOKYO), SETTINGS)

    assert env["intent"] is None
    assert env["result"] is None
    assert env["clarification"].options


def test_main_exit_codes(tmp_path: Path) -> None:
    """Test that main returns 0 when all predicates pass and 1 otherwise."""
    passing = write_scenarios(tmp_path / "ok", "result.success")
    failing = write_scenarios(tmp_path / "bad", "result.success == False")

    assert main(passing) == 0
    assert main(failing) == 1


def test_eval_runner_executes() -> None:
    """Test that eval runner runs as a script."""
    env = {**os.environ, "PYTHONPATH": str(REPO_ROOT), "PYTHONIOENCODING": "utf-8"}
    result = subprocess.run(
        [sys.executable, "eval/runner.py"], capture_output=True, text=True, cwd=REPO_ROOT, env=env
    )

    assert "=== Scenario: move_to_day ===" in result.stdout
    assert "=== Summary ===" in result.stdout
