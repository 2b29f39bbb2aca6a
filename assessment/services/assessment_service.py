"""
Assessment service: attempts, drafts, submission with retry, module gating

Stateful facade over a StorageAdapter. Nothing here raises across the
public surface: reads degrade to empty results, writes are retried or
reported through the event bus, scoring degrades per question.
"""
import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from assessment.schemas.attempt import (
    Attempt,
    AttemptStatus,
    Draft,
    RetentionPolicy,
    SubmitResult,
)
from assessment.schemas.module import (
    FinalExamStatus,
    FinalExamStatusKind,
    MicroQuizState,
    ModuleState,
    StartDecision,
)
from assessment.schemas.quiz import Quiz, QuizScore
from assessment.services import gating_service
from assessment.services.grading_service import (
    AnswersLike,
    GradingService,
    QuizLike,
    normalize_answers,
)
from assessment.services.retention import prune_attempts
from assessment.services.signature import structure_signature
from assessment.utils.clock import Clock, SystemClock, ensure_aware
from assessment.utils.event_bus import (
    ATTEMPT_PENDING,
    ATTEMPT_PRUNED,
    ATTEMPT_SAVED,
    QUIZ_SUBMIT,
    STORAGE_ERROR,
    EventBus,
)
from assessment.utils.storage import (
    ATTEMPTS_KEY,
    DRAFT_KEY,
    FLAGS_KEY,
    PENDING_KEY,
    PROGRESS_KEY,
    StorageAdapter,
)

logger = logging.getLogger(__name__)

QUIZ_GATING_FLAG = "quizGating"

Sleep = Callable[[float], Awaitable[Any]]
AttemptLike = Union[Attempt, Mapping[str, Any]]
ModuleStateLike = Union[ModuleState, Mapping[str, Any], str, None]


class AssessmentService:
    """
    Service for quiz attempts and module gating

    - Attempts live under ``assessment.attempts.v1``, pruned FIFO per quiz
    - Attempts that exhaust their retries go to ``assessment.pending.v1``
      (or stay in memory if that write fails too) and are never retried here
    - Drafts, progress snapshots and feature flags use their own keys
    """

    def __init__(
        self,
        storage: StorageAdapter,
        event_bus: EventBus,
        clock: Optional[Clock] = None,
        retention_policy: Optional[RetentionPolicy] = None,
        grading_service: Optional[GradingService] = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        backoff_cap: float = 7.0,
        read_threshold: float = gating_service.READ_THRESHOLD,
        default_passing_score: float = 70.0,
        default_flags: Optional[Dict[str, bool]] = None,
        sleep: Sleep = asyncio.sleep
    ):
        self.storage = storage
        self.event_bus = event_bus
        self.clock = clock or SystemClock()
        self.retention_policy = retention_policy or RetentionPolicy()
        self.grading_service = grading_service or GradingService(event_bus)
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self.read_threshold = read_threshold
        self.default_passing_score = default_passing_score
        self.default_flags = dict(default_flags or {QUIZ_GATING_FLAG: True})
        self._sleep = sleep

        self._in_flight: Dict[str, "asyncio.Future[SubmitResult]"] = {}
        # Pending attempts whose pending-bucket write failed as well
        self._unsynced: Dict[str, Attempt] = {}

    # ------------------------------------------------------------------
    # Storage helpers
    # ------------------------------------------------------------------

    def _storage_failed(self, operation: str, key: str, error: Exception) -> None:
        logger.warning(f"Storage {operation} failed for {key}: {str(error)}")
        self.event_bus.publish(
            STORAGE_ERROR, {"operation": operation, "key": key, "error": str(error)}
        )

    def _safe_get(self, key: str, default: Any) -> Any:
        """Read ``key``; any failure or unexpected shape yields ``default``"""
        try:
            value = self.storage.get(key)
        except Exception as e:
            self._storage_failed("get", key, e)
            return default
        if value is None or not isinstance(value, type(default)):
            return default
        return value

    def _read_for_update(self, key: str, default: Any) -> Any:
        """Like _safe_get, but None on a failed read so the caller skips its write"""
        try:
            value = self.storage.get(key)
        except Exception as e:
            self._storage_failed("get", key, e)
            return None
        if value is None or not isinstance(value, type(default)):
            return default
        return value

    def _safe_set(self, key: str, value: Any) -> bool:
        try:
            self.storage.set(key, value)
            return True
        except Exception as e:
            self._storage_failed("set", key, e)
            return False

    def _safe_remove(self, key: str) -> None:
        try:
            self.storage.remove(key)
        except Exception as e:
            self._storage_failed("remove", key, e)

    @staticmethod
    def _valid_key(value: Any, kind: str) -> bool:
        if isinstance(value, str):
            return True
        logger.warning(f"Ignoring non-string {kind}: {value!r}")
        return False

    def _parse_attempts(self, raw: Any) -> List[Attempt]:
        if not isinstance(raw, list):
            return []
        attempts = []
        for item in raw:
            try:
                attempts.append(Attempt.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping malformed stored attempt: {e.error_count()} error(s)")
        return attempts

    @staticmethod
    def _dump_attempts(attempts: List[Attempt]) -> List[Dict[str, Any]]:
        return [a.model_dump(mode="json") for a in attempts]

    @staticmethod
    def _oldest_first(attempts: List[Attempt]) -> List[Attempt]:
        order = sorted(range(len(attempts)), key=lambda i: (ensure_aware(attempts[i].timestamp), i))
        return [attempts[i] for i in order]

    def _coerce_attempt(self, attempt: AttemptLike) -> Optional[Attempt]:
        if isinstance(attempt, Attempt):
            return attempt
        try:
            return Attempt.model_validate(attempt)
        except ValidationError as e:
            logger.error(f"Rejecting malformed attempt: {str(e)}")
            return None

    # ------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------

    def get_attempts(self, quiz_id: str) -> List[Attempt]:
        """Stored attempts of ``quiz_id``, oldest first"""
        attempts = self._parse_attempts(self._safe_get(ATTEMPTS_KEY, []))
        return self._oldest_first([a for a in attempts if a.quiz_id == quiz_id])

    def create_attempt(
        self,
        quiz: QuizLike,
        answers: AnswersLike,
        attempt_id: Optional[str] = None
    ) -> Optional[Attempt]:
        """Score ``answers`` and wrap the result in a new, unsaved Attempt"""
        result = self.score_quiz(quiz, answers)
        module_id = None
        if isinstance(quiz, Quiz):
            module_id = quiz.module_id
        elif isinstance(quiz, Mapping):
            module_id = quiz.get("module_id", quiz.get("moduleId"))
        answer_map = normalize_answers(answers)
        try:
            return Attempt(
                attempt_id=attempt_id or str(uuid.uuid4()),
                quiz_id=result.quiz_id or "",
                module_id=None if module_id is None else str(module_id),
                timestamp=self.clock.now(),
                answers=[{"qid": qid, "selected": selected} for qid, selected in answer_map.items()],
                question_scores=result.question_scores,
                final_score=result.final_score,
            )
        except ValidationError as e:
            logger.error(f"Could not build attempt: {str(e)}")
            return None

    def _persist(self, attempt: Attempt) -> Attempt:
        """
        Append, prune and write the attempts list

        Adapter errors propagate, including on the read: an unreadable list
        is never treated as empty here.
        """
        attempts = self._parse_attempts(self.storage.get(ATTEMPTS_KEY) or [])
        attempts.append(attempt)
        kept, evicted = prune_attempts(attempts, attempt.quiz_id, self.retention_policy)
        self.storage.set(ATTEMPTS_KEY, self._dump_attempts(kept))

        logger.info(f"Attempt saved: {attempt.attempt_id} (quiz {attempt.quiz_id}, score {attempt.final_score})")
        self.event_bus.publish(ATTEMPT_SAVED, {
            "quiz_id": attempt.quiz_id,
            "attempt_id": attempt.attempt_id,
            "final_score": attempt.final_score,
        })
        if evicted:
            self.event_bus.publish(ATTEMPT_PRUNED, {
                "quiz_id": attempt.quiz_id,
                "removed": len(evicted),
                "attempt_ids": [a.attempt_id for a in evicted],
            })
        return attempt

    def _as_saved(self, attempt: Attempt) -> Attempt:
        return attempt.model_copy(update={
            "status": AttemptStatus.SAVED,
            "saved_at": self.clock.now(),
        })

    def save_attempt(self, attempt: AttemptLike) -> Optional[Attempt]:
        """
        Store one attempt, pruning older attempts of the same quiz

        Returns:
            The stored attempt (status SAVED), or None if it could not be stored
        """
        attempt = self._coerce_attempt(attempt)
        if attempt is None:
            return None
        try:
            return self._persist(self._as_saved(attempt))
        except Exception as e:
            self._storage_failed("set", ATTEMPTS_KEY, e)
            return None

    def get_pending_attempts(self) -> List[Attempt]:
        """Attempts marked PENDING_SYNC, oldest first"""
        stored = self._parse_attempts(self._safe_get(PENDING_KEY, []))
        stored_ids = {a.attempt_id for a in stored}
        unsynced = [a for a in self._unsynced.values() if a.attempt_id not in stored_ids]
        return self._oldest_first(stored + unsynced)

    def _submitted_status(self, attempt_id: str) -> Optional[AttemptStatus]:
        attempts = self._parse_attempts(self._safe_get(ATTEMPTS_KEY, []))
        if any(a.attempt_id == attempt_id for a in attempts):
            return AttemptStatus.SAVED
        if any(a.attempt_id == attempt_id for a in self.get_pending_attempts()):
            return AttemptStatus.PENDING_SYNC
        return None

    def backoff_delay(self, retry: int) -> float:
        """Delay before retry ``retry`` (1-based): base * (2**n - 1), capped"""
        return min(self.backoff_base * (2 ** retry - 1), self.backoff_cap)

    async def submit_with_retry(
        self,
        attempt: AttemptLike,
        max_retries: Optional[int] = None
    ) -> SubmitResult:
        """
        Persist a submission, retrying write failures with backoff

        At most one submission per quiz is in flight; a second call while one
        is running waits for and returns the same result. Re-submitting an
        attempt id that is already stored returns its stored status.

        An attempt that fails validation is reported PENDING_SYNC with
        ``tries=0`` and a ``quiz.attempt.pending`` event, but nothing is
        stored for it and get_pending_attempts() will not list it.

        Returns:
            SubmitResult with status SAVED or PENDING_SYNC
        """
        candidate = self._coerce_attempt(attempt)
        if candidate is None:
            raw_id, raw_quiz = "", None
            if isinstance(attempt, Mapping):
                raw_id = attempt.get("attempt_id", attempt.get("attemptId", ""))
                raw_quiz = attempt.get("quiz_id", attempt.get("quizId"))
            self.event_bus.publish(ATTEMPT_PENDING, {
                "quiz_id": None if raw_quiz is None else str(raw_quiz),
                "attempt_id": str(raw_id),
                "tries": 0,
            })
            return SubmitResult(status=AttemptStatus.PENDING_SYNC, attempt_id=str(raw_id), tries=0)

        running = self._in_flight.get(candidate.quiz_id)
        if running is not None:
            logger.info(f"Submission for quiz {candidate.quiz_id} already in flight")
            return await asyncio.shield(running)

        previous = self._submitted_status(candidate.attempt_id)
        if previous is not None:
            logger.info(f"Attempt {candidate.attempt_id} already submitted ({previous.value})")
            return SubmitResult(status=previous, attempt_id=candidate.attempt_id, tries=0)

        if not isinstance(max_retries, int):
            max_retries = self.max_retries
        retries = max(0, max_retries)

        task = asyncio.ensure_future(self._submit(candidate, retries))
        self._in_flight[candidate.quiz_id] = task

        def _release(done, quiz_id=candidate.quiz_id):
            if self._in_flight.get(quiz_id) is done:
                del self._in_flight[quiz_id]

        task.add_done_callback(_release)
        return await asyncio.shield(task)

    async def _submit(self, attempt: Attempt, max_retries: int) -> SubmitResult:
        tries = 0
        while True:
            tries += 1
            try:
                self._persist(self._as_saved(attempt))
            except Exception as e:
                if tries > max_retries:
                    logger.warning(f"Attempt {attempt.attempt_id} failed after {tries} tries: {str(e)}")
                    break
                delay = self.backoff_delay(tries)
                logger.warning(
                    f"Saving attempt {attempt.attempt_id} failed (try {tries}): {str(e)}. "
                    f"Retrying in {delay:.0f}s"
                )
                await self._sleep(delay)
                continue

            self.event_bus.publish(QUIZ_SUBMIT, {
                "quiz_id": attempt.quiz_id,
                "attempt_id": attempt.attempt_id,
                "status": AttemptStatus.SAVED.value,
            })
            self.clear_draft(attempt.quiz_id)
            return SubmitResult(status=AttemptStatus.SAVED, attempt_id=attempt.attempt_id, tries=tries)

        return self._mark_pending(attempt, tries)

    def _mark_pending(self, attempt: Attempt, tries: int) -> SubmitResult:
        pending = attempt.model_copy(update={"status": AttemptStatus.PENDING_SYNC, "saved_at": None})
        try:
            stored = self._parse_attempts(self.storage.get(PENDING_KEY) or [])
            stored = [a for a in stored if a.attempt_id != pending.attempt_id]
            stored.append(pending)
            self.storage.set(PENDING_KEY, self._dump_attempts(stored))
            self._unsynced.pop(pending.attempt_id, None)
        except Exception as e:
            logger.error(f"Could not store pending attempt {pending.attempt_id}: {str(e)}")
            self._unsynced[pending.attempt_id] = pending

        self.event_bus.publish(ATTEMPT_PENDING, {
            "quiz_id": attempt.quiz_id,
            "attempt_id": attempt.attempt_id,
            "tries": tries,
        })
        return SubmitResult(status=AttemptStatus.PENDING_SYNC, attempt_id=attempt.attempt_id, tries=tries)

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def score_quiz(self, quiz: QuizLike, answers: AnswersLike) -> QuizScore:
        try:
            return self.grading_service.grade_quiz(quiz, answers)
        except Exception as e:
            logger.error(f"Scoring failed: {str(e)}", exc_info=True)
            return QuizScore(final_score=0.0, raw_percent=0.0, earned=0.0, total=0.0)

    def passing_score_for(self, quiz: QuizLike) -> float:
        if isinstance(quiz, Quiz):
            return quiz.passing_score
        if isinstance(quiz, Mapping):
            value = quiz.get("passing_score", quiz.get("passingScore"))
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return float(value)
        return self.default_passing_score

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def start_draft(self, quiz_id: str, data: Optional[Dict[str, Any]] = None) -> Optional[Draft]:
        """Create or overwrite the draft of ``quiz_id``"""
        try:
            draft = Draft(quiz_id=quiz_id, data=data or {}, updated_at=self.clock.now())
            serialized = draft.model_dump(mode="json")
        except (ValidationError, PydanticSerializationError) as e:
            logger.error(f"Rejecting malformed draft for {quiz_id!r}: {str(e)}")
            return None

        drafts = self._read_for_update(DRAFT_KEY, {})
        if drafts is None:
            return None
        drafts[draft.quiz_id] = serialized
        return draft if self._safe_set(DRAFT_KEY, drafts) else None

    def get_draft(self, quiz_id: str) -> Optional[Draft]:
        if not self._valid_key(quiz_id, "quiz id"):
            return None
        raw = self._safe_get(DRAFT_KEY, {}).get(quiz_id)
        if raw is None:
            return None
        try:
            return Draft.model_validate(raw)
        except ValidationError:
            logger.warning(f"Discarding malformed draft for {quiz_id}")
            return None

    def clear_draft(self, quiz_id: str) -> None:
        if not self._valid_key(quiz_id, "quiz id"):
            return
        drafts = self._read_for_update(DRAFT_KEY, {})
        if drafts is None or quiz_id not in drafts:
            return
        del drafts[quiz_id]
        if drafts:
            self._safe_set(DRAFT_KEY, drafts)
        else:
            self._safe_remove(DRAFT_KEY)

    # ------------------------------------------------------------------
    # Feature flags
    # ------------------------------------------------------------------

    def is_feature_enabled(self, flag: str) -> bool:
        if not self._valid_key(flag, "feature flag"):
            return False
        flags = self._safe_get(FLAGS_KEY, {})
        if flag in flags:
            return bool(flags[flag])
        return bool(self.default_flags.get(flag, False))

    def set_feature_flag(self, flag: str, enabled: bool) -> bool:
        if not self._valid_key(flag, "feature flag"):
            return False
        flags = self._read_for_update(FLAGS_KEY, {})
        if flags is None:
            return False
        flags[flag] = bool(enabled)
        return self._safe_set(FLAGS_KEY, flags)

    # ------------------------------------------------------------------
    # Module progress and gating
    # ------------------------------------------------------------------

    def _stored_module_state(self, module_id: str) -> Tuple[bool, Optional[ModuleState]]:
        """(entry exists, validated snapshot); an existing entry may fail validation"""
        if not self._valid_key(module_id, "module id"):
            return False, None
        raw = self._safe_get(PROGRESS_KEY, {}).get(module_id)
        return raw is not None, gating_service.coerce_module_state(raw)

    def get_module_state(self, module_id: str) -> Optional[ModuleState]:
        return self._stored_module_state(module_id)[1]

    def save_module_state(self, state: Union[ModuleState, Mapping[str, Any]]) -> bool:
        module = gating_service.coerce_module_state(state)
        if module is None or not module.module_id:
            logger.error("Cannot save module state without a module id")
            return False
        progress = self._read_for_update(PROGRESS_KEY, {})
        if progress is None:
            return False
        progress[module.module_id] = module.model_dump(mode="json")
        return self._safe_set(PROGRESS_KEY, progress)

    def refresh_structure_signature(self, state: ModuleState) -> ModuleState:
        """Copy of ``state`` with the signature of its current required lists"""
        return state.model_copy(update={
            "structure_signature": structure_signature(state.required_sections, state.micro_quizzes)
        })

    def record_micro_quiz_result(
        self,
        module_id: str,
        quiz: QuizLike,
        score: Union[QuizScore, float]
    ) -> bool:
        """
        Mark a micro-quiz passed once a score meets its passing threshold

        A later failing score never clears an earlier pass.

        Returns:
            Whether this score passes the quiz
        """
        final_score = score.final_score if isinstance(score, QuizScore) else score
        if isinstance(final_score, bool) or not isinstance(final_score, (int, float)):
            return False
        passed = final_score >= self.passing_score_for(quiz)
        if not passed:
            return False

        quiz_id = None
        if isinstance(quiz, Quiz):
            quiz_id = quiz.quiz_id
        elif isinstance(quiz, Mapping):
            quiz_id = quiz.get("quiz_id", quiz.get("quizId", quiz.get("id")))
        if quiz_id is None:
            logger.error("Cannot record micro-quiz result without a quiz id")
            return passed

        if not self._valid_key(module_id, "module id"):
            return passed
        exists, state = self._stored_module_state(module_id)
        if exists and state is None:
            self._storage_failed(
                "get", PROGRESS_KEY, ValueError(f"malformed progress for module {module_id}")
            )
            return passed
        state = state or ModuleState(module_id=module_id)
        quiz_states = dict(state.micro_quiz_state)
        quiz_states[str(quiz_id)] = MicroQuizState(passed=True)
        self.save_module_state(state.model_copy(update={"micro_quiz_state": quiz_states}))
        return passed

    def mark_final_exam_passed(self, module_id: str) -> Optional[ModuleState]:
        """Record a final exam pass against the module's current structure"""
        state = self.get_module_state(module_id)
        if state is None:
            logger.warning(f"No progress stored for module {module_id}")
            return None
        state = self.refresh_structure_signature(state)
        state = state.model_copy(update={
            "final_exam_passed": True,
            "last_passed_signature": state.structure_signature,
        })
        self.save_module_state(state)
        return state

    def micro_quiz_start_allowed(self, module_id: str, section_id: str) -> StartDecision:
        state = self.get_module_state(module_id)
        progress = None
        if state is not None and self._valid_key(section_id, "section id"):
            progress = state.section_progress.get(section_id)
        return gating_service.micro_quiz_start_allowed(
            progress,
            self.is_feature_enabled(QUIZ_GATING_FLAG),
            self.read_threshold
        )

    def evaluate_module(self, module_state: ModuleStateLike) -> FinalExamStatus:
        """Final exam status of a snapshot, or of the stored snapshot for a module id"""
        if isinstance(module_state, str):
            module_state = self.get_module_state(module_state)
        try:
            return gating_service.final_exam_status(module_state, self.clock.now(), self.read_threshold)
        except Exception as e:
            logger.error(f"Module evaluation failed: {str(e)}", exc_info=True)
            return FinalExamStatus(status=FinalExamStatusKind.LOCKED, unmet_criteria=[])
