"""
Event Bus

Synchronous pub/sub channel for workflow lifecycle notifications.
"""

import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


# Standard event types
class EventTypes:
    SESSION_CREATED = "session:created"
    SESSION_STATUS = "session:status"
    PHASE_CHANGED = "phase:changed"
    TASK_CREATED = "task:created"
    TASK_STATUS = "task:status"
    TASK_COMPLETED = "task:completed"
    TASK_FAILED = "task:failed"
    WORKFLOW_COMPLETED = "workflow:completed"
    WORKFLOW_FAILED = "workflow:failed"


class EventBus:
    """
    Simple event bus for publishing and subscribing to events

    Handlers run synchronously, in subscription order, before publish()
    returns. A handler that raises is logged and skipped; the remaining
    handlers still run.
    """

    def __init__(self):
        """Initialize event bus"""
        self._subscribers: Dict[str, List[Callable[..., Any]]] = {}

    def subscribe(self, event_type: str, handler: Callable[..., Any]):
        """
        Subscribe to event type

        Args:
            event_type: Event type to subscribe to
            handler: Callback invoked with the event's positional payload
        """
        self._subscribers.setdefault(event_type, []).append(handler)

    def once(self, event_type: str, handler: Callable[..., Any]):
        """Subscribe a handler that is removed after its first call."""
        def wrapper(*args):
            self.unsubscribe(event_type, wrapper)
            return handler(*args)

        wrapper.__wrapped__ = handler
        self.subscribe(event_type, wrapper)

    def unsubscribe(self, event_type: str, handler: Callable[..., Any]) -> bool:
        """
        Remove the earliest registration of a handler

        Returns:
            True if a handler was removed
        """
        handlers = self._subscribers.get(event_type, [])
        for i, registered in enumerate(handlers):
            if registered is handler or getattr(registered, "__wrapped__", None) is handler:
                del handlers[i]
                return True
        return False

    def publish(self, event_type: str, *args: Any):
        """
        Publish event

        Args:
            event_type: Event type
            *args: Event payload passed to every handler
        """
        # Snapshot so handlers may (un)subscribe while being notified
        handlers = list(self._subscribers.get(event_type, []))

        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                # Log error but continue
                logger.exception("Error in %s event handler %r", event_type, handler)

    def listener_count(self, event_type: str) -> int:
        return len(self._subscribers.get(event_type, []))

    def clear(self):
        """Remove all handlers"""
        self._subscribers.clear()
