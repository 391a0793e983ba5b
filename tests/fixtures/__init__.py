"""Test fixtures for Platewise."""

from tests.fixtures.mocks import (
    FakeClock,
    MockMicronutrientDatabase,
    MockModelClient,
    RecordingSleep,
    result_json,
    result_payload,
)

__all__ = [
    "FakeClock",
    "MockMicronutrientDatabase",
    "MockModelClient",
    "RecordingSleep",
    "result_json",
    "result_payload",
]
