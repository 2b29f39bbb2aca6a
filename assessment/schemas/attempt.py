"""
Pydantic schemas for attempts, drafts and retention
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field

from assessment.schemas.quiz import Answer, QuestionScore


class AttemptStatus(str, Enum):
    """Lifecycle status of a stored attempt"""
    SAVED = "saved"
    PENDING_SYNC = "pending_sync"


class PruneStrategy(str, Enum):
    FIFO = "fifo"


class RetentionPolicy(BaseModel):
    """How many attempts are kept per quiz and which are evicted"""
    max_attempts_stored: int = Field(
        20, gt=0, validation_alias=AliasChoices("max_attempts_stored", "maxAttemptsStored")
    )
    strategy: PruneStrategy = PruneStrategy.FIFO

    class Config:
        populate_by_name = True
        frozen = True


class Attempt(BaseModel):
    """
    One submission of a quiz.

    Stored attempts are never mutated; status changes go through
    ``model_copy(update=...)``. A freshly built attempt has no status.
    """
    attempt_id: str = Field(..., validation_alias=AliasChoices("attempt_id", "attemptId", "id"))
    quiz_id: str = Field(..., validation_alias=AliasChoices("quiz_id", "quizId"))
    module_id: Optional[str] = Field(None, validation_alias=AliasChoices("module_id", "moduleId"))
    timestamp: datetime
    answers: List[Answer] = Field(default_factory=list)
    question_scores: List[QuestionScore] = Field(default_factory=list)
    final_score: float = Field(0.0, validation_alias=AliasChoices("final_score", "finalScore"))
    status: Optional[AttemptStatus] = None
    saved_at: Optional[datetime] = None

    class Config:
        populate_by_name = True
        frozen = True


class SubmitResult(BaseModel):
    """Outcome of submit_with_retry"""
    status: AttemptStatus
    attempt_id: str
    tries: int = 1


class Draft(BaseModel):
    """In-progress quiz state keyed by quiz id"""
    quiz_id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime
