"""Test doubles shared by the assessment core tests."""

from datetime import datetime, timedelta, timezone

from assessment.exceptions import StorageError
from assessment.schemas.attempt import Attempt
from assessment.utils.storage import MemoryStorage

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class FailingStorage(MemoryStorage):
    """Reads work, every write fails."""

    def __init__(self):
        super().__init__()
        self.set_calls = 0

    def set(self, key, value):
        self.set_calls += 1
        raise StorageError("set", key, OSError("disk full"))


class FlakyStorage(MemoryStorage):
    """The first ``failures`` writes to ``key`` (any key when None) fail."""

    def __init__(self, failures: int, key: str = None):
        super().__init__()
        self.failures = failures
        self.key = key
        self.set_calls = 0

    def set(self, key, value):
        self.set_calls += 1
        if self.failures > 0 and (self.key is None or key == self.key):
            self.failures -= 1
            raise StorageError("set", key, OSError("temporarily unavailable"))
        super().set(key, value)


class UnreadableStorage(MemoryStorage):
    def get(self, key):
        raise StorageError("get", key, OSError("corrupt"))


class SleepRecorder:
    """Stands in for asyncio.sleep and records the requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class EventRecorder:
    def __init__(self, bus, *names: str):
        self.events = []
        for name in names:
            bus.subscribe(name, self.events.append)

    def names(self):
        return [e.name for e in self.events]


def make_attempt(attempt_id: str, quiz_id: str = "q1", offset: int = 0, score: float = 50.0) -> Attempt:
    return Attempt(
        attempt_id=attempt_id,
        quiz_id=quiz_id,
        module_id="m1",
        timestamp=T0 + timedelta(seconds=offset),
        final_score=score,
    )


