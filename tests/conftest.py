"""Shared fixtures for the assessment core tests."""

import pytest

from assessment.schemas.attempt import RetentionPolicy
from assessment.services.assessment_service import AssessmentService
from assessment.utils.event_bus import EventBus
from assessment.utils.storage import MemoryStorage
from tests.helpers import FixedClock, SleepRecorder


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def event_bus(clock) -> EventBus:
    return EventBus(max_events=1000, clock=clock)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_service(event_bus, clock, sleeper):
    """Factory so tests can pick storage and retention."""

    def _make(storage=None, max_attempts: int = 20, **kwargs) -> AssessmentService:
        return AssessmentService(
            storage=storage if storage is not None else MemoryStorage(),
            event_bus=event_bus,
            clock=clock,
            retention_policy=RetentionPolicy(max_attempts_stored=max_attempts),
            sleep=sleeper,
            **kwargs,
        )

    return _make


@pytest.fixture
def service(make_service, storage) -> AssessmentService:
    return make_service(storage)
