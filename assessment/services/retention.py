"""
Attempt retention: bound the number of stored attempts per quiz
"""
import logging
from typing import List, Tuple

from assessment.schemas.attempt import Attempt, PruneStrategy, RetentionPolicy
from assessment.utils.clock import ensure_aware

logger = logging.getLogger(__name__)


def prune_attempts(
    attempts: List[Attempt],
    quiz_id: str,
    policy: RetentionPolicy
) -> Tuple[List[Attempt], List[Attempt]]:
    """
    Evict the oldest attempts of ``quiz_id`` beyond the policy cap

    Age is the attempt timestamp, list position breaks ties. Attempts of
    other quizzes are untouched and every kept attempt stays at its
    original position.

    Args:
        attempts: All stored attempts in insertion order
        quiz_id: Quiz whose attempts are pruned
        policy: Retention policy (FIFO only)

    Returns:
        Tuple of (kept, evicted); evicted is ordered oldest first
    """
    if policy.strategy != PruneStrategy.FIFO:
        raise ValueError(f"Unsupported prune strategy: {policy.strategy}")

    positions = [i for i, a in enumerate(attempts) if a.quiz_id == quiz_id]
    overflow = len(positions) - policy.max_attempts_stored
    if overflow <= 0:
        return list(attempts), []

    by_age = sorted(positions, key=lambda i: (ensure_aware(attempts[i].timestamp), i))
    evicted_positions = set(by_age[:overflow])

    kept = [a for i, a in enumerate(attempts) if i not in evicted_positions]
    evicted = [attempts[i] for i in by_age[:overflow]]

    logger.info(f"Pruned {len(evicted)} attempt(s) for quiz {quiz_id}")
    return kept, evicted
