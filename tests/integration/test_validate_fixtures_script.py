"""Integration tests for the fixture validation script."""

import json
import shutil
from pathlib import Path

import pytest

from backend.itinerary_engine.models.itinerary import Itinerary
from scripts.validate_fixtures import (
    FixtureLoadError,
    discover_fixtures,
    load_fixture,
    main,
    run_fixture,
)

FIXTURES_DIR = Path(__file__).resolve().parents[2] / "fixtures"


@pytest.fixture
def fixture_dir(tmp_path: Path) -> Path:
    """Copy of the bundled fixtures in a scratch directory."""
    for path in FIXTURES_DIR.glob("*.json"):
        shutil.copy(path, tmp_path / path.name)
    return tmp_path


def test_load_wrapper_and_bare_fixtures() -> None:
    """Test both fixture document shapes."""
    tokyo = load_fixture(FIXTURES_DIR / "tokyo-4day.json")
    osaka = load_fixture(FIXTURES_DIR / "osaka-2day.json")

    assert tokyo.constraints is not None
    assert tokyo.options.expected_anchors
    assert osaka.itinerary.destination
    assert osaka.constraints is None


def test_load_fixture_errors(tmp_path: Path) -> None:
    """Test that unreadable and malformed fixtures raise FixtureLoadError."""
    not_json = tmp_path / "broken.json"
    not_json.write_text("{")
    wrong_shape = tmp_path / "wrong.json"
    wrong_shape.write_text(json.dumps({"days": "nope"}))

    with pytest.raises(FixtureLoadError):
        load_fixture(not_json)
    with pytest.raises(FixtureLoadError, match="validation error"):
        load_fixture(wrong_shape)
    with pytest.raises(FixtureLoadError):
        load_fixture(tmp_path / "missing.json")


def test_discover_skips_saved_output(fixture_dir: Path) -> None:
    """Test that directory discovery ignores *-fixed.json files."""
    (fixture_dir / "tokyo-4day-fixed.json").write_text("{}")

    found = discover_fixtures([str(fixture_dir)])

    assert [p.name for p in found] == ["osaka-2day.json", "tokyo-4day.json"]


def test_run_fixture_with_fix(capsys: pytest.CaptureFixture[str]) -> None:
    """Test validate, remediate and re-validate for the Tokyo fixture."""
    outcome = run_fixture(FIXTURES_DIR / "tokyo-4day.json", fix=True)

    assert outcome.error is None
    assert outcome.before is not None
    assert outcome.after is not None
    assert outcome.before.counts.errors == 3
    assert outcome.after.counts.errors == 0
    assert outcome.changes == 8
    out = capsys.readouterr().out
    assert "MISSING_ANCHOR" in out
    assert "Remediation: 8 change(s)" in out


def test_main_save_writes_fixed_copy(fixture_dir: Path) -> None:
    """Test that --save writes a loadable remediated itinerary."""
    exit_code = main([str(fixture_dir / "tokyo-4day.json"), "--save"])

    assert exit_code == 0
    saved = fixture_dir / "tokyo-4day-fixed.json"
    itinerary = Itinerary.model_validate(json.loads(saved.read_text()))
    assert [slot.slot_id for slot in itinerary.days[1].slots] == ["d2-slot-1", "d2-slot-2"]


def test_main_reports_load_failures(fixture_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Test that one bad fixture fails the run without stopping the batch."""
    (fixture_dir / "bad.json").write_text("not json")

    exit_code = main([str(fixture_dir)])

    assert exit_code == 1
    out = capsys.readouterr().out
    assert "Summary: 2/3 fixture(s) validated" in out
    assert "bad.json: FAILED" in out


def test_main_without_fixtures(tmp_path: Path) -> None:
    """Test the empty-directory exit code."""
    assert main([str(tmp_path)]) == 1
