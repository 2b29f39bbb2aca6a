"""
Application boundary: logging setup and settings-driven wiring
"""
import logging
from typing import Optional

from assessment.config import Settings, get_settings
from assessment.schemas.attempt import RetentionPolicy
from assessment.services.assessment_service import QUIZ_GATING_FLAG, AssessmentService
from assessment.utils.clock import Clock, SystemClock
from assessment.utils.event_bus import EventBus
from assessment.utils.i18n import Translator
from assessment.utils.storage import MemoryStorage, RedisStorage, StorageAdapter

logger = logging.getLogger(__name__)


def configure_logging(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def create_storage(settings: Optional[Settings] = None) -> StorageAdapter:
    """Build the storage adapter named by STORAGE_BACKEND"""
    settings = settings or get_settings()
    backend = settings.STORAGE_BACKEND.lower()
    if backend == "redis":
        return RedisStorage(settings.REDIS_URL, namespace=settings.STORAGE_NAMESPACE)
    if backend != "memory":
        logger.warning(f"Unknown storage backend '{settings.STORAGE_BACKEND}', using memory")
    return MemoryStorage()


def create_event_bus(settings: Optional[Settings] = None, clock: Optional[Clock] = None) -> EventBus:
    settings = settings or get_settings()
    return EventBus(max_events=settings.EVENT_LOG_SIZE, clock=clock)


def create_translator(event_bus: EventBus, settings: Optional[Settings] = None) -> Translator:
    settings = settings or get_settings()
    return Translator(event_bus, locale=settings.DEFAULT_LOCALE)


def create_assessment_service(
    settings: Optional[Settings] = None,
    storage: Optional[StorageAdapter] = None,
    event_bus: Optional[EventBus] = None,
    clock: Optional[Clock] = None
) -> AssessmentService:
    """
    Wire an AssessmentService from settings

    Any collaborator passed in is used as-is; the rest are built here.
    """
    settings = settings or get_settings()
    clock = clock or SystemClock()
    event_bus = event_bus or create_event_bus(settings, clock)
    storage = storage or create_storage(settings)

    service = AssessmentService(
        storage=storage,
        event_bus=event_bus,
        clock=clock,
        retention_policy=RetentionPolicy(max_attempts_stored=settings.MAX_ATTEMPTS_STORED),
        max_retries=settings.SUBMIT_MAX_RETRIES,
        backoff_base=settings.BACKOFF_BASE_SECONDS,
        backoff_cap=settings.BACKOFF_CAP_SECONDS,
        read_threshold=settings.SECTION_READ_THRESHOLD,
        default_passing_score=settings.DEFAULT_PASSING_SCORE,
        default_flags={QUIZ_GATING_FLAG: settings.QUIZ_GATING_ENABLED},
    )
    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} ready ({type(storage).__name__})")
    return service
