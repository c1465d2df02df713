"""
Event system for page translator observability.

Provides decoupled event publishing and subscription so the host can
dismiss loading indicators, confirm restores and surface configuration
errors without polling.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List
import time


class EventType(Enum):
    """Page translator event types."""

    # Session lifecycle
    SESSION_STARTED = "session_started"
    FIRST_CONTENT_TRANSLATED = "first_content_translated"
    SWEEP_COMPLETED = "sweep_completed"

    # Restore handshake
    RESTORE_ACKNOWLEDGED = "restore_acknowledged"
    RESTORE_COMPLETE = "restore_complete"

    # Hard configuration errors
    PROVIDER_ERROR = "provider_error"


@dataclass
class Event:
    """Page translator event.

    Attributes:
        type: Event type
        data: Event-specific data dictionary
        timestamp: Unix timestamp when event occurred
        source: Optional source identifier (e.g., "batch_translator")
    """
    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    source: str = "unknown"


class EventBus:
    """Central event bus for the page translator."""

    def __init__(self):
        """Initialize event bus."""
        self._listeners: Dict[EventType, List[Callable]] = {}
        self._history: List[Event] = []
        self._record_history = False

    def subscribe(self, event_type: EventType, callback: Callable[[Event], None]) -> None:
        """Subscribe to an event type.

        Args:
            event_type: Type of event to listen for
            callback: Function to call when event occurs (receives Event object)
        """
        self._listeners.setdefault(event_type, []).append(callback)

    def unsubscribe(self, event_type: EventType, callback: Callable) -> None:
        """Unsubscribe from an event type."""
        if event_type in self._listeners:
            try:
                self._listeners[event_type].remove(callback)
            except ValueError:
                pass  # Callback not found

    def publish(self, event: Event) -> None:
        """Publish an event to all subscribers.

        Args:
            event: Event to publish
        """
        if self._record_history:
            self._history.append(event)

        for listener in list(self._listeners.get(event.type, [])):
            try:
                listener(event)
            except Exception as e:
                # Don't let listener errors crash the session
                from clip_translate.utils.unified_logger import error, LogType
                error(f"Event listener failed: {e}", LogType.ERROR_DETAIL,
                      {'details': repr(e), 'kind': event.type.value})

    def enable_history(self) -> None:
        """Enable event history recording."""
        self._record_history = True

    def get_history(self) -> List[Event]:
        """Get recorded event history in chronological order."""
        return self._history.copy()

    def clear_history(self) -> None:
        self._history.clear()

    def get_events_by_type(self, event_type: EventType) -> List[Event]:
        """Get all events of a specific type from history."""
        return [e for e in self._history if e.type == event_type]


# === Convenience Event Builders ===

def create_first_content_event(provider: str, nodes: int) -> Event:
    """Create the event that lets the host dismiss its loading indicator."""
    return Event(
        type=EventType.FIRST_CONTENT_TRANSLATED,
        data={"provider": provider, "nodes": nodes},
        source="batch_translator"
    )


def create_provider_error_event(provider: str, kind: str, message: str) -> Event:
    """Create a hard configuration error event.

    Args:
        provider: Provider that reported the error
        kind: ErrorKind value
        message: Human-readable message
    """
    return Event(
        type=EventType.PROVIDER_ERROR,
        data={"provider": provider, "kind": kind, "message": message},
        source="provider_arbiter"
    )
