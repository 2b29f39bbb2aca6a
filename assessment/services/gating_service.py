"""
Gating evaluators for micro-quizzes and the module final exam

All functions are pure: the result depends only on the snapshot passed in
(and ``now`` for cooldowns).
"""
import logging
from datetime import datetime
from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError

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
from assessment.utils.clock import ensure_aware

logger = logging.getLogger(__name__)

# A section counts as read from this ratio on
READ_THRESHOLD = 0.85

SectionProgressLike = Union[SectionProgress, Mapping[str, Any], None]
ModuleStateLike = Union[ModuleState, Mapping[str, Any], None]


def _coerce_section(progress: SectionProgressLike) -> Optional[SectionProgress]:
    if progress is None or isinstance(progress, SectionProgress):
        return progress
    try:
        return SectionProgress.model_validate(progress)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed section progress: {str(e)}")
        return None


def coerce_module_state(state: ModuleStateLike) -> Optional[ModuleState]:
    """Validate a raw snapshot; None when empty or malformed"""
    if isinstance(state, ModuleState):
        return state
    if not state:
        return None
    try:
        return ModuleState.model_validate(state)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed module state: {str(e)}")
        return None


def section_readable(progress: SectionProgressLike, threshold: float = READ_THRESHOLD) -> bool:
    """True iff the section was read far enough or marked read by hand"""
    progress = _coerce_section(progress)
    if progress is None:
        return False
    return progress.read_ratio >= threshold or progress.manually_marked


def micro_quiz_start_allowed(
    progress: SectionProgressLike,
    gating_enabled: bool,
    threshold: float = READ_THRESHOLD
) -> StartDecision:
    """
    Decide whether the micro-quiz of a section may be started

    Args:
        progress: Reading progress of the section the quiz belongs to
        gating_enabled: When False every quiz may be started

    Returns:
        StartDecision with SECTION_UNREAD as the only possible reason
    """
    if not gating_enabled:
        return StartDecision(allowed=True, reasons=[])

    allowed = section_readable(progress, threshold)
    reasons = [] if allowed else [UnmetReason.SECTION_UNREAD]
    return StartDecision(allowed=allowed, reasons=reasons)


def _micro_passed(state: Optional[MicroQuizState]) -> bool:
    return bool(state is not None and state.passed)


def unmet_criteria(state: ModuleState, threshold: float = READ_THRESHOLD) -> List[UnmetCriterion]:
    """Unread sections then unpassed micro-quizzes, each in declared order"""
    unmet = []
    for section_id in state.required_sections:
        if not section_readable(state.section_progress.get(section_id), threshold):
            unmet.append(UnmetCriterion.section_unread(section_id))
    for quiz_id in state.micro_quizzes:
        if not _micro_passed(state.micro_quiz_state.get(quiz_id)):
            unmet.append(UnmetCriterion.micro_not_passed(quiz_id))
    return unmet


def final_exam_status(
    state: ModuleStateLike,
    now: datetime,
    threshold: float = READ_THRESHOLD
) -> FinalExamStatus:
    """
    Derive the final exam status of a module

    Precedence: OUTDATED, COOLDOWN, then PASSED/READY when nothing is
    unmet, LOCKED otherwise. The unmet list is attached in every case
    except READY/PASSED, where it is empty by definition.
    """
    module = coerce_module_state(state)
    if module is None:
        return FinalExamStatus(status=FinalExamStatusKind.LOCKED, unmet_criteria=[])

    unmet = unmet_criteria(module, threshold)

    if module.final_exam_passed and module.structure_signature != module.last_passed_signature:
        return FinalExamStatus(status=FinalExamStatusKind.OUTDATED, unmet_criteria=unmet)

    if module.cooldown_until is not None and ensure_aware(module.cooldown_until) > ensure_aware(now):
        return FinalExamStatus(status=FinalExamStatusKind.COOLDOWN, unmet_criteria=unmet)

    if not unmet:
        status = FinalExamStatusKind.PASSED if module.final_exam_passed else FinalExamStatusKind.READY
        return FinalExamStatus(status=status, unmet_criteria=[])

    return FinalExamStatus(status=FinalExamStatusKind.LOCKED, unmet_criteria=unmet)
