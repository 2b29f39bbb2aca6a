"""Tests for submission with retry, backoff and pending sync."""

import asyncio

import pytest

from assessment.schemas.attempt import AttemptStatus
from assessment.utils.event_bus import ATTEMPT_PENDING, ATTEMPT_SAVED, QUIZ_SUBMIT
from assessment.utils.storage import ATTEMPTS_KEY, PENDING_KEY
from tests.helpers import EventRecorder, FailingStorage, FlakyStorage, make_attempt


@pytest.mark.asyncio
async def test_saves_when_storage_succeeds(service, event_bus, sleeper) -> None:
    recorder = EventRecorder(event_bus, ATTEMPT_SAVED, QUIZ_SUBMIT)

    result = await service.submit_with_retry(make_attempt("a1"), max_retries=1)

    assert result.status == AttemptStatus.SAVED
    assert result.tries == 1
    assert sleeper.delays == []
    assert recorder.names() == [ATTEMPT_SAVED, QUIZ_SUBMIT]

    stored = service.get_attempts("q1")
    assert [a.attempt_id for a in stored] == ["a1"]
    assert stored[0].status == AttemptStatus.SAVED
    assert stored[0].saved_at is not None


@pytest.mark.asyncio
async def test_pending_sync_after_retries_exhausted(make_service, event_bus, sleeper) -> None:
    storage = FailingStorage()
    service = make_service(storage)
    recorder = EventRecorder(event_bus, ATTEMPT_PENDING, QUIZ_SUBMIT)

    result = await service.submit_with_retry(make_attempt("a2", quiz_id="q2"), max_retries=1)

    assert result.status == AttemptStatus.PENDING_SYNC
    assert result.tries == 2
    assert sleeper.delays == [1.0]
    assert recorder.names() == [ATTEMPT_PENDING]

    pending = service.get_pending_attempts()
    assert [a.attempt_id for a in pending] == ["a2"]
    assert pending[0].status == AttemptStatus.PENDING_SYNC


@pytest.mark.asyncio
async def test_pending_bucket_is_persisted_when_writable(make_service) -> None:
    storage = FlakyStorage(failures=100, key=ATTEMPTS_KEY)
    service = make_service(storage)

    result = await service.submit_with_retry(make_attempt("a3"), max_retries=0)

    assert result.status == AttemptStatus.PENDING_SYNC
    assert [a["attempt_id"] for a in storage.get(PENDING_KEY)] == ["a3"]
    assert service.get_attempts("q1") == []


@pytest.mark.asyncio
async def test_backoff_schedule_is_bounded(make_service, sleeper) -> None:
    service = make_service(FailingStorage())
    await service.submit_with_retry(make_attempt("a4"), max_retries=5)
    assert sleeper.delays == [1.0, 3.0, 7.0, 7.0, 7.0]


@pytest.mark.asyncio
async def test_recovers_after_transient_failure(make_service, sleeper) -> None:
    storage = FlakyStorage(failures=2)
    service = make_service(storage)

    result = await service.submit_with_retry(make_attempt("a5"))

    assert result.status == AttemptStatus.SAVED
    assert result.tries == 3
    assert sleeper.delays == [1.0, 3.0]
    assert service.get_pending_attempts() == []


@pytest.mark.asyncio
async def test_resubmitting_same_attempt_is_a_no_op(service, event_bus) -> None:
    recorder = EventRecorder(event_bus, ATTEMPT_SAVED)
    attempt = make_attempt("a6")

    first = await service.submit_with_retry(attempt)
    second = await service.submit_with_retry(attempt)

    assert first.status == second.status == AttemptStatus.SAVED
    assert second.tries == 0
    assert len(service.get_attempts("q1")) == 1
    assert len(recorder.events) == 1


@pytest.mark.asyncio
async def test_resubmitting_pending_attempt_stays_pending(make_service, event_bus) -> None:
    service = make_service(FailingStorage())
    recorder = EventRecorder(event_bus, ATTEMPT_PENDING)
    attempt = make_attempt("a7")

    await service.submit_with_retry(attempt, max_retries=0)
    again = await service.submit_with_retry(attempt, max_retries=0)

    assert again.status == AttemptStatus.PENDING_SYNC
    assert again.tries == 0
    assert len(recorder.events) == 1


@pytest.mark.asyncio
async def test_concurrent_submissions_share_one_write(make_service) -> None:
    storage = FlakyStorage(failures=1)
    service = make_service(storage)
    attempt = make_attempt("a8")

    first, second = await asyncio.gather(
        service.submit_with_retry(attempt),
        service.submit_with_retry(attempt),
    )

    assert first.status == second.status == AttemptStatus.SAVED
    assert [a.attempt_id for a in service.get_attempts("q1")] == ["a8"]
    assert storage.set_calls == 2


@pytest.mark.asyncio
async def test_successful_submit_clears_draft(service) -> None:
    service.start_draft("q1", {"answers": {"x": "A"}})
    await service.submit_with_retry(make_attempt("a9"))
    assert service.get_draft("q1") is None


@pytest.mark.asyncio
async def test_malformed_attempt_is_reported_pending(service, event_bus) -> None:
    recorder = EventRecorder(event_bus, ATTEMPT_PENDING)
    result = await service.submit_with_retry({"attemptId": "broken", "quizId": "q1"})

    assert result.status == AttemptStatus.PENDING_SYNC
    assert result.attempt_id == "broken"
    assert result.tries == 0
    assert [e.payload for e in recorder.events] == [{"quiz_id": "q1", "attempt_id": "broken", "tries": 0}]
    assert service.get_pending_attempts() == []


def test_backoff_delay_formula(make_service) -> None:
    service = make_service(backoff_base=0.5, backoff_cap=100.0)
    assert [service.backoff_delay(n) for n in (1, 2, 3, 4)] == [0.5, 1.5, 3.5, 7.5]
