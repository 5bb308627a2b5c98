"""Shared pytest fixtures for all test suites."""

import json
from pathlib import Path

import pytest

from backend.itinerary_engine.config import Settings
from backend.itinerary_engine.models.issues import ValidationOptions
from backend.itinerary_engine.models.itinerary import Itinerary
from backend.itinerary_engine.models.remediation import FlightConstraints

FIXTURES_DIR = Path(__file__).resolve().parent.parent / "fixtures"


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def tokyo_fixture() -> dict:
    """Raw Tokyo/Kyoto fixture document (itinerary + flight window + expectations)."""
    data: dict = json.loads((FIXTURES_DIR / "tokyo-4day.json").read_text())
    return data


@pytest.fixture
def tokyo_itinerary(tokyo_fixture: dict) -> Itinerary:
    """Four-day Tokyo/Kyoto itinerary seeded with known problems."""
    return Itinerary.model_validate(tokyo_fixture["itinerary"])


@pytest.fixture
def tokyo_flight(tokyo_fixture: dict) -> FlightConstraints:
    return FlightConstraints.model_validate(tokyo_fixture["constraints"])


@pytest.fixture
def tokyo_options(tokyo_fixture: dict) -> ValidationOptions:
    return ValidationOptions.model_validate(tokyo_fixture["validationOptions"])


@pytest.fixture
def osaka_itinerary() -> Itinerary:
    """Two-day Osaka itinerary with no validation issues."""
    return Itinerary.model_validate(json.loads((FIXTURES_DIR / "osaka-2day.json").read_text()))
