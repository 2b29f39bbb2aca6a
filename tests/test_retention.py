"""Tests for per-quiz FIFO attempt retention."""

import random

import pytest

from assessment.schemas.attempt import RetentionPolicy
from assessment.services.retention import prune_attempts
from tests.helpers import make_attempt


def ids(attempts):
    return [a.attempt_id for a in attempts]


def test_under_cap_keeps_everything() -> None:
    attempts = [make_attempt("a1"), make_attempt("a2", offset=1)]
    kept, evicted = prune_attempts(attempts, "q1", RetentionPolicy(max_attempts_stored=2))
    assert ids(kept) == ["a1", "a2"]
    assert evicted == []


def test_evicts_oldest_of_the_same_quiz_only() -> None:
    attempts = [
        make_attempt("x1", quiz_id="other", offset=-100),
        make_attempt("a1", offset=0),
        make_attempt("a2", offset=1),
        make_attempt("x2", quiz_id="other", offset=2),
        make_attempt("a3", offset=3),
    ]
    kept, evicted = prune_attempts(attempts, "q1", RetentionPolicy(max_attempts_stored=2))
    assert ids(kept) == ["x1", "a2", "x2", "a3"]
    assert ids(evicted) == ["a1"]


def test_age_is_timestamp_then_position() -> None:
    attempts = [
        make_attempt("late", offset=50),
        make_attempt("early", offset=10),
        make_attempt("tie-first", offset=20),
        make_attempt("tie-second", offset=20),
    ]
    kept, evicted = prune_attempts(attempts, "q1", RetentionPolicy(max_attempts_stored=1))
    assert ids(evicted) == ["early", "tie-first", "tie-second"]
    assert ids(kept) == ["late"]


def test_policy_rejects_non_positive_cap() -> None:
    with pytest.raises(ValueError):
        RetentionPolicy(max_attempts_stored=0)


def test_random_sequences_respect_bound_and_fifo() -> None:
    rng = random.Random(11)
    for _ in range(50):
        cap = rng.randint(1, 5)
        policy = RetentionPolicy(max_attempts_stored=cap)
        stored = []
        for n in range(rng.randint(1, 25)):
            quiz_id = rng.choice(["q1", "q2"])
            stored.append(make_attempt(f"a{n}", quiz_id=quiz_id, offset=rng.randint(0, 30)))
            stored, evicted = prune_attempts(stored, quiz_id, policy)

            for qid in ("q1", "q2"):
                assert sum(1 for a in stored if a.quiz_id == qid) <= cap

            if evicted:
                oldest_kept = min(a.timestamp for a in stored if a.quiz_id == quiz_id)
                assert all(e.timestamp <= oldest_kept for e in evicted)
