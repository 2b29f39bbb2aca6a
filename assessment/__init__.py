"""
Assessment core: quiz scoring, attempt persistence and module gating
"""
from assessment.services.assessment_service import AssessmentService
from assessment.services.grading_service import GradingService
from assessment.utils.event_bus import EventBus
from assessment.utils.i18n import Translator

__version__ = "1.0.0"

__all__ = ["AssessmentService", "EventBus", "GradingService", "Translator"]
