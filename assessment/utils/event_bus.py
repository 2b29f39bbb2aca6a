"""
In-process synchronous event bus with a bounded event log
"""
import logging
import uuid
from collections import defaultdict, deque
from typing import Any, Callable, Deque, Dict, List, Optional

from assessment.schemas.event import EventEnvelope
from assessment.utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

# Event names emitted by the core
ATTEMPT_SAVED = "quiz.attempt.save"
ATTEMPT_PENDING = "quiz.attempt.pending"
ATTEMPT_PRUNED = "quiz.attempt.pruned"
QUIZ_SUBMIT = "quiz.submit"
SCORING_ERROR = "quiz.scoring.error"
I18N_MISSING_KEY = "i18n.missing_key"
STORAGE_ERROR = "storage.error"

Handler = Callable[[EventEnvelope], Any]


class EventBus:
    """
    Publish/subscribe dispatcher

    - Dispatch is synchronous, in subscription order
    - A failing handler is logged and does not stop the others
    - The last ``max_events`` envelopes are kept for debugging
    """

    def __init__(self, max_events: int = 1000, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)
        self._log: Deque[EventEnvelope] = deque(maxlen=max(1, max_events))

    def subscribe(self, name: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``name``; returns a callable that unsubscribes it"""
        self._handlers[name].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(name)
            if handlers and handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, name: str, payload: Optional[Dict[str, Any]] = None) -> EventEnvelope:
        envelope = EventEnvelope(
            id=str(uuid.uuid4()),
            name=name,
            ts=self.clock.now().isoformat(),
            payload=dict(payload or {}),
            version=1,
        )
        self._log.append(envelope)
        logger.debug(f"Event {name}: {envelope.payload}")

        # Copy so handlers may unsubscribe while being dispatched
        for handler in list(self._handlers.get(name, ())):
            try:
                handler(envelope)
            except Exception as e:
                logger.error(f"Event handler error for {name}: {str(e)}", exc_info=True)

        return envelope

    def recent_events(self, name: Optional[str] = None) -> List[EventEnvelope]:
        """Retained envelopes, oldest first, optionally filtered by name"""
        if name is None:
            return list(self._log)
        return [e for e in self._log if e.name == name]

    def clear(self) -> None:
        self._log.clear()
