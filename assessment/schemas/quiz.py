"""
Pydantic schemas for quizzes, answers and scoring results
"""
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, Field


class QuestionKind(str, Enum):
    """Question types understood by the scoring engine"""
    SINGLE_CHOICE = "single-choice"
    MULTIPLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"
    ORDERING = "ordering"
    GAP_FILL = "gap-fill"


# Kinds that are accepted but always score zero
UNSCORED_KINDS = frozenset({QuestionKind.ORDERING, QuestionKind.GAP_FILL})

AnswerValue = Union[bool, str, List[str], None]


class Question(BaseModel):
    """Individual quiz question"""
    qid: str = Field(..., validation_alias=AliasChoices("qid", "id", "questionId"))
    kind: QuestionKind = Field(..., validation_alias=AliasChoices("kind", "type"))
    options: List[str] = Field(default_factory=list)
    correct: AnswerValue = Field(
        None, validation_alias=AliasChoices("correct", "correctAnswer", "answer")
    )
    weight: float = 1.0

    class Config:
        populate_by_name = True
        extra = "ignore"


class Quiz(BaseModel):
    """Quiz descriptor; title and metadata are carried but never scored"""
    quiz_id: str = Field(..., validation_alias=AliasChoices("quiz_id", "quizId", "id"))
    module_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("module_id", "moduleId")
    )
    questions: List[Question] = Field(default_factory=list)
    passing_score: float = Field(
        70.0, validation_alias=AliasChoices("passing_score", "passingScore")
    )
    title: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        populate_by_name = True
        extra = "ignore"


class Answer(BaseModel):
    """A learner's selection for one question"""
    qid: str = Field(..., validation_alias=AliasChoices("qid", "questionId", "id"))
    selected: AnswerValue = None

    class Config:
        populate_by_name = True
        frozen = True


class QuestionScore(BaseModel):
    """Scoring details for a single question"""
    qid: str
    fraction: float
    score: float  # unrounded, within [0, 100 * weight]
    max_score: float
    scored: bool = True  # False for kinds without a scoring rule
    error: Optional[str] = None

    class Config:
        frozen = True


class QuizScore(BaseModel):
    """Aggregate result of scoring one quiz submission"""
    quiz_id: Optional[str] = None
    final_score: float  # percent, half-up rounded to one decimal
    raw_percent: float
    earned: float
    total: float
    question_scores: List[QuestionScore] = Field(default_factory=list)

    class Config:
        frozen = True
