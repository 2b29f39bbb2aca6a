"""
Pydantic schemas for module progress snapshots and gating results
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator


class SectionProgress(BaseModel):
    """Reading progress of one module section"""
    read_ratio: float = Field(0.0, validation_alias=AliasChoices("read_ratio", "readRatio"))
    manually_marked: bool = Field(
        False, validation_alias=AliasChoices("manually_marked", "manuallyMarked")
    )

    class Config:
        populate_by_name = True


class MicroQuizState(BaseModel):
    passed: bool = False


class ModuleState(BaseModel):
    """
    Snapshot of a learner's progress through one module.

    Owned by the progress layer; the gating evaluators only read it.
    """
    module_id: Optional[str] = Field(None, validation_alias=AliasChoices("module_id", "moduleId"))
    required_sections: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("required_sections", "requiredSections"),
    )
    micro_quizzes: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("micro_quizzes", "microQuizzes"),
    )
    section_progress: Dict[str, Optional[SectionProgress]] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("section_progress", "sectionProgress"),
    )
    micro_quiz_state: Dict[str, Optional[MicroQuizState]] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("micro_quiz_state", "microQuizState"),
    )
    final_exam_passed: bool = Field(
        False, validation_alias=AliasChoices("final_exam_passed", "finalExamPassed")
    )
    structure_signature: Optional[str] = Field(
        None, validation_alias=AliasChoices("structure_signature", "structureSignature")
    )
    last_passed_signature: Optional[str] = Field(
        None, validation_alias=AliasChoices("last_passed_signature", "lastPassedSignature")
    )
    cooldown_until: Optional[datetime] = Field(
        None, validation_alias=AliasChoices("cooldown_until", "cooldownUntil")
    )

    @field_validator("section_progress", "micro_quiz_state", mode="before")
    @classmethod
    def drop_malformed_entries(cls, value: Any, info) -> Any:
        """A malformed entry becomes None (unread / not passed), not a failed snapshot"""
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            return value
        entry_model = SectionProgress if info.field_name == "section_progress" else MicroQuizState
        entries = {}
        for key, entry in value.items():
            if entry is None or isinstance(entry, entry_model):
                entries[str(key)] = entry
                continue
            try:
                entries[str(key)] = entry_model.model_validate(entry)
            except ValidationError:
                entries[str(key)] = None
        return entries

    class Config:
        populate_by_name = True
        extra = "ignore"


class FinalExamStatusKind(str, Enum):
    LOCKED = "locked"
    READY = "ready"
    PASSED = "passed"
    OUTDATED = "outdated"
    COOLDOWN = "cooldown"


class UnmetReason(str, Enum):
    SECTION_UNREAD = "section_unread"
    MICRO_NOT_PASSED = "micro_not_passed"


class UnmetCriterion(BaseModel):
    """Tagged reason blocking the final exam, with the offending id"""
    code: UnmetReason
    id: str

    class Config:
        frozen = True

    @classmethod
    def section_unread(cls, section_id: str) -> "UnmetCriterion":
        return cls(code=UnmetReason.SECTION_UNREAD, id=section_id)

    @classmethod
    def micro_not_passed(cls, quiz_id: str) -> "UnmetCriterion":
        return cls(code=UnmetReason.MICRO_NOT_PASSED, id=quiz_id)


class FinalExamStatus(BaseModel):
    status: FinalExamStatusKind
    unmet_criteria: List[UnmetCriterion] = Field(default_factory=list)

    class Config:
        frozen = True


class StartDecision(BaseModel):
    """Whether a micro-quiz may be started, and why not"""
    allowed: bool
    reasons: List[UnmetReason] = Field(default_factory=list)

    class Config:
        frozen = True
