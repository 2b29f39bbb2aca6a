"""
Pydantic schemas package
"""
from assessment.schemas.attempt import (
    Attempt,
    AttemptStatus,
    Draft,
    PruneStrategy,
    RetentionPolicy,
    SubmitResult,
)
from assessment.schemas.event import EventEnvelope
from assessment.schemas.module import (
    FinalExamStatus,
    FinalExamStatusKind,
    MicroQuizState,
    ModuleState,
    SectionProgress,
    StartDecision,
    UnmetCriterion,
    UnmetReason,
)
from assessment.schemas.quiz import (
    UNSCORED_KINDS,
    Answer,
    Question,
    QuestionKind,
    QuestionScore,
    Quiz,
    QuizScore,
)

__all__ = [
    "Answer", "Attempt", "AttemptStatus", "Draft", "EventEnvelope",
    "FinalExamStatus", "FinalExamStatusKind", "MicroQuizState", "ModuleState",
    "PruneStrategy", "Question", "QuestionKind", "QuestionScore", "Quiz",
    "QuizScore", "RetentionPolicy", "SectionProgress", "StartDecision",
    "SubmitResult", "UNSCORED_KINDS", "UnmetCriterion", "UnmetReason",
]
