"""
Quiz grading service with partial credit
Single choice / true-false: exact match
Multiple choice: partial credit, wrong picks subtract
"""
import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from assessment.schemas.quiz import (
    UNSCORED_KINDS,
    Answer,
    Question,
    QuestionKind,
    QuestionScore,
    Quiz,
    QuizScore,
)
from assessment.utils.event_bus import SCORING_ERROR, EventBus

logger = logging.getLogger(__name__)

QuizLike = Union[Quiz, Mapping[str, Any]]
AnswersLike = Union[Mapping[str, Any], Iterable[Union[Answer, Mapping[str, Any]]], None]


class MalformedQuestionError(ValueError):
    """A question cannot be scored as declared"""


def round_half_up(value: float, decimals: int = 1) -> float:
    """
    Round to ``decimals`` places, ties away from zero

    round_half_up(1.25) == 1.3, round_half_up(1.24) == 1.2.
    Non-finite input yields 0.0.
    """
    if value is None or not math.isfinite(value):
        return 0.0
    factor = 10 ** decimals
    if value < 0:
        return -math.floor(-value * factor + 0.5) / factor
    return math.floor(value * factor + 0.5) / factor


def multi_select_partial(selected: Iterable[str], correct: Iterable[str], total_options: int) -> float:
    """
    Partial credit fraction for a multiple-choice question

    fraction = hits / C - misses / max(I, 1), clamped to [0, 1], where C is
    the number of correct options and I = total_options - C.

    Raises:
        MalformedQuestionError: if there are no correct options
    """
    correct_set = set(correct)
    if not correct_set:
        raise MalformedQuestionError("multiple-choice question has no correct options")

    selected_set = set(selected)
    hits = len(selected_set & correct_set)
    misses = len(selected_set - correct_set)
    incorrect_options = total_options - len(correct_set)

    raw = hits / len(correct_set) - misses / max(incorrect_options, 1)
    return max(0.0, min(1.0, raw))


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return []


def normalize_answers(answers: Any) -> Dict[str, Any]:
    """Normalize answers to {qid: selected}; unusable entries are dropped"""
    if answers is None or isinstance(answers, (str, bytes)):
        return {}
    if isinstance(answers, Mapping):
        return {str(qid): selected for qid, selected in answers.items()}

    answer_map = {}
    try:
        items = list(answers)
    except TypeError:
        return {}
    for item in items:
        if isinstance(item, Answer):
            answer_map[item.qid] = item.selected
            continue
        try:
            answer = Answer.model_validate(item)
        except ValidationError:
            logger.debug(f"Dropping malformed answer: {item!r}")
            continue
        answer_map[answer.qid] = answer.selected
    return answer_map


class GradingService:
    """
    Service for scoring quiz submissions

    Strategy:
    - Single choice / true-false: exact match against the canonical answer
    - Multiple choice: partial credit via multi_select_partial
    - Ordering / gap fill: no rule yet, always 0 and flagged ``scored=False``

    A malformed question scores 0 and publishes ``quiz.scoring.error``;
    the rest of the quiz is still scored.
    """

    def __init__(self, event_bus: Optional[EventBus] = None):
        self.event_bus = event_bus

    def grade_quiz(self, quiz: QuizLike, answers: AnswersLike) -> QuizScore:
        """
        Score a complete submission

        Args:
            quiz: Quiz model or raw quiz mapping
            answers: {qid: selected} or a sequence of Answer-like items

        Returns:
            QuizScore with the rounded final score and per-question details
        """
        quiz_id, raw_questions = self._unpack_quiz(quiz)
        answer_map = normalize_answers(answers)

        question_scores = []
        earned = 0.0
        total = 0.0

        for index, raw in enumerate(raw_questions):
            question, error = self._coerce_question(raw)
            if question is None:
                qid = self._raw_qid(raw, index)
                self._report_error(quiz_id, qid, error)
                max_score = self._raw_weight(raw) * 100
                total += max_score
                question_scores.append(
                    QuestionScore(qid=qid, fraction=0.0, score=0.0, max_score=max_score, error=error)
                )
                continue

            weight = question.weight
            if not math.isfinite(weight) or weight <= 0:
                logger.warning(f"Ignoring question {question.qid} in quiz {quiz_id}: weight {weight}")
                question_scores.append(
                    QuestionScore(
                        qid=question.qid, fraction=0.0, score=0.0, max_score=0.0,
                        error="invalid weight"
                    )
                )
                continue

            fraction, scored, error = self._grade_question(quiz_id, question, answer_map)
            max_score = weight * 100
            score = min(max(fraction * max_score, 0.0), max_score)

            earned += score
            total += max_score
            question_scores.append(
                QuestionScore(
                    qid=question.qid,
                    fraction=fraction,
                    score=score,
                    max_score=max_score,
                    scored=scored,
                    error=error
                )
            )

        raw_percent = (earned / total * 100) if total > 0 and math.isfinite(earned) else 0.0
        if not math.isfinite(raw_percent):
            raw_percent = 0.0
        final_score = min(max(round_half_up(raw_percent, 1), 0.0), 100.0)

        logger.info(f"Quiz {quiz_id} scored: {earned:.2f}/{total:.2f} -> {final_score}%")

        return QuizScore(
            quiz_id=quiz_id,
            final_score=final_score,
            raw_percent=raw_percent,
            earned=earned,
            total=total,
            question_scores=question_scores
        )

    def _grade_question(
        self,
        quiz_id: Optional[str],
        question: Question,
        answers: Dict[str, Any]
    ) -> Tuple[float, bool, Optional[str]]:
        """Returns (fraction, scored, error)"""
        if question.kind in UNSCORED_KINDS:
            return 0.0, False, None

        selected = answers.get(question.qid)
        if selected is None:
            return 0.0, True, None

        try:
            if question.kind == QuestionKind.MULTIPLE_CHOICE:
                fraction = self._grade_multiple_choice(question, selected)
            else:
                fraction = self._grade_single_choice(question, selected)
        except (MalformedQuestionError, TypeError) as e:
            self._report_error(quiz_id, question.qid, str(e))
            return 0.0, True, str(e)

        if not math.isfinite(fraction):
            return 0.0, True, None
        return fraction, True, None

    def _grade_single_choice(self, question: Question, selected: Any) -> float:
        """Exact match; a list-shaped correct answer uses its first element"""
        correct = question.correct
        if isinstance(correct, list):
            if not correct:
                raise MalformedQuestionError("correct answer list is empty")
            correct = correct[0]
        if correct is None:
            raise MalformedQuestionError("question has no correct answer")

        return 1.0 if selected == correct and type(selected) is type(correct) else 0.0

    def _grade_multiple_choice(self, question: Question, selected: Any) -> float:
        if isinstance(question.correct, bool):
            raise MalformedQuestionError("multiple-choice correct answer cannot be boolean")
        return multi_select_partial(
            selected=_as_list(selected),
            correct=_as_list(question.correct),
            total_options=len(question.options)
        )

    def _report_error(self, quiz_id: Optional[str], qid: Optional[str], error: Optional[str]) -> None:
        logger.error(f"Scoring error in quiz {quiz_id}, question {qid}: {error}")
        if self.event_bus is not None:
            self.event_bus.publish(SCORING_ERROR, {"quiz_id": quiz_id, "qid": qid, "error": error})

    def _unpack_quiz(self, quiz: Any) -> Tuple[Optional[str], List[Any]]:
        if isinstance(quiz, Quiz):
            return quiz.quiz_id, list(quiz.questions)

        if isinstance(quiz, Mapping):
            quiz_id = quiz.get("quiz_id", quiz.get("quizId", quiz.get("id")))
            quiz_id = None if quiz_id is None else str(quiz_id)
            questions = quiz.get("questions")
            if isinstance(questions, (list, tuple)):
                return quiz_id, list(questions)
            self._report_error(quiz_id, None, "quiz has no question list")
            return quiz_id, []

        self._report_error(None, None, f"unsupported quiz type {type(quiz).__name__}")
        return None, []

    def _coerce_question(self, raw: Any) -> Tuple[Optional[Question], Optional[str]]:
        if isinstance(raw, Question):
            return raw, None
        try:
            return Question.model_validate(raw), None
        except ValidationError as e:
            return None, f"malformed question: {e.error_count()} validation error(s)"

    def _raw_qid(self, raw: Any, index: int) -> str:
        if isinstance(raw, Mapping):
            for field in ("qid", "id", "questionId"):
                if raw.get(field) is not None:
                    return str(raw[field])
        return f"#{index}"

    def _raw_weight(self, raw: Any) -> float:
        """Weight of an unparseable question; 1 when absent, 0 when invalid"""
        weight = raw.get("weight", 1.0) if isinstance(raw, Mapping) else 1.0
        if isinstance(weight, bool) or not isinstance(weight, (int, float)):
            return 0.0
        try:
            weight = float(weight)
        except OverflowError:
            return 0.0
        if not math.isfinite(weight) or weight <= 0:
            return 0.0
        return weight

