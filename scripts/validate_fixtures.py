"""Validate (and optionally remediate) persisted itinerary fixtures.

Usage:
    python scripts/validate_fixtures.py [paths...] [--fix] [--save]

A fixture is either a bare itinerary document or a wrapper holding
``itinerary`` plus optional ``constraints`` and ``validationOptions``.
"""

import argparse
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from backend.itinerary_engine.models.issues import (
    IssueSeverity,
    ValidationOptions,
    ValidationReport,
)
from backend.itinerary_engine.models.itinerary import Itinerary
from backend.itinerary_engine.models.remediation import FlightConstraints
from backend.itinerary_engine.verification.batch import validate
from backend.itinerary_engine.verification.remediation import remediate

DEFAULT_FIXTURE_DIR = Path("fixtures")

_ICONS = {
    IssueSeverity.ERROR: "x",
    IssueSeverity.WARNING: "!",
    IssueSeverity.INFO: "i",
}


class FixtureLoadError(Exception):
    """Fixture file could not be read or does not describe an itinerary."""

    pass


@dataclass
class FixtureCase:
    """One fixture file with its flight window and validation expectations."""

    path: Path
    itinerary: Itinerary
    constraints: FlightConstraints | None = None
    options: ValidationOptions = field(default_factory=ValidationOptions)


@dataclass
class FixtureOutcome:
    path: Path
    before: ValidationReport | None = None
    after: ValidationReport | None = None
    changes: int = 0
    error: str | None = None


def load_fixture(path: Path) -> FixtureCase:
    """Read a fixture file.

    Raises:
        FixtureLoadError: If the file is unreadable, not JSON or not an itinerary
    """
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise FixtureLoadError(f"{path}: {e}") from e

    try:
        if isinstance(data, dict) and "itinerary" in data:
            constraints = data.get("constraints")
            return FixtureCase(
                path=path,
                itinerary=Itinerary.model_validate(data["itinerary"]),
                constraints=FlightConstraints.model_validate(constraints) if constraints else None,
                options=ValidationOptions.model_validate(data.get("validationOptions") or {}),
            )
        return FixtureCase(path=path, itinerary=Itinerary.model_validate(data))
    except ValidationError as e:
        raise FixtureLoadError(f"{path}: {e.error_count()} validation error(s)\n{e}") from e


def discover_fixtures(paths: list[str]) -> list[Path]:
    """Expand directories to their *.json files; skip previously saved *-fixed.json output."""
    if not paths:
        paths = [str(DEFAULT_FIXTURE_DIR)]
    found: list[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            found.extend(sorted(p for p in path.glob("*.json") if not p.stem.endswith("-fixed")))
        else:
            found.append(path)
    return found


def print_report(report: ValidationReport, label: str) -> None:
    print(f"\n{label}: {report.health_score}/100 ({report.status.value})")
    print(
        f"  {report.counts.errors} error(s), {report.counts.warnings} warning(s), "
        f"{report.counts.info} info"
    )
    for issue in report.issues:
        where = f"Day {issue.day}" + (f", {issue.slot}" if issue.slot else "")
        print(f"  [{_ICONS[issue.severity]}] [{where}] {issue.type.value}: {issue.message}")


def run_fixture(path: Path, fix: bool = False, save: bool = False) -> FixtureOutcome:
    """Validate one fixture, remediating and re-validating when asked.

    Load failures are returned in the outcome rather than raised so one bad
    fixture never stops the batch.
    """
    print("\n" + "=" * 60)
    print(f"Fixture: {path}")
    print("=" * 60)

    try:
        case = load_fixture(path)
    except FixtureLoadError as e:
        print(f"  FAILED TO LOAD: {e}")
        return FixtureOutcome(path=path, error=str(e))

    before = validate(case.itinerary, case.constraints, case.options)
    print_report(before, "Validation")
    outcome = FixtureOutcome(path=path, before=before)
    if not fix:
        return outcome

    result = remediate(case.itinerary, case.constraints)
    outcome.changes = len(result.changes)
    print(f"\nRemediation: {len(result.changes)} change(s)")
    for change in result.changes:
        where = f"Day {change.day}" + (f", {change.slot}" if change.slot else "")
        print(f"  - [{where}] {change.type.value}: {change.reason}")

    outcome.after = validate(result.itinerary, case.constraints, case.options)
    print_report(outcome.after, "After remediation")

    if save:
        target = path.with_name(f"{path.stem}-fixed.json")
        target.write_text(result.itinerary.model_dump_json(by_alias=True, indent=2) + "\n")
        print(f"\nSaved remediated itinerary to {target}")

    return outcome


def main(argv: list[str] | None = None) -> int:
    """Run all fixtures; returns non-zero if any fixture failed to load."""
    parser = argparse.ArgumentParser(description="Validate itinerary fixtures")
    parser.add_argument("paths", nargs="*", help="Fixture files or directories (default: fixtures/)")
    parser.add_argument("--fix", action="store_true", help="Remediate and re-validate")
    parser.add_argument("--save", action="store_true", help="Write <name>-fixed.json (implies --fix)")
    args = parser.parse_args(argv)

    fixtures = discover_fixtures(args.paths)
    if not fixtures:
        print("No fixtures found")
        return 1

    outcomes = [run_fixture(path, fix=args.fix or args.save, save=args.save) for path in fixtures]

    failed = [o for o in outcomes if o.error is not None]
    print("\n" + "=" * 60)
    print(f"Summary: {len(outcomes) - len(failed)}/{len(outcomes)} fixture(s) validated")
    for outcome in outcomes:
        if outcome.before is None:
            print(f"  {outcome.path.name}: FAILED")
            continue
        line = f"  {outcome.path.name}: {outcome.before.health_score}"
        if outcome.after is not None:
            line += f" -> {outcome.after.health_score} ({outcome.changes} change(s))"
        print(line)

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
