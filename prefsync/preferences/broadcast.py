"""
Preference Broadcast Channel
In-process publish/subscribe between consumers of the same preference profile
"""
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from prefsync.core.logging import StructuredLogger

from .preference_models import PreferenceDocument


def new_origin_id() -> str:
    """Random identifier, stable for one consumer's lifetime"""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class BroadcastMessage:
    """A full-document snapshot tagged with the emitting consumer"""
    origin_id: str
    preferences: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_document(cls, origin_id: str, document: PreferenceDocument) -> "BroadcastMessage":
        return cls(origin_id=origin_id, preferences=document.to_dict())

    def to_event(self) -> Dict[str, Any]:
        """Event shape delivered to out-of-process listeners"""
        return {"originId": self.origin_id, "preferences": dict(self.preferences)}

    @classmethod
    def from_event(cls, event: Mapping[str, Any]) -> "BroadcastMessage":
        return cls(origin_id=str(event.get("originId", "")),
                   preferences=dict(event.get("preferences") or {}))


BroadcastHandler = Callable[[BroadcastMessage], None]


class BroadcastChannel:
    """Synchronous fan-out with echo suppression.

    Every subscriber registers under its own id; ``emit`` skips the subscriber
    whose id equals the message origin. Nothing is stored, so a subscriber that
    attaches late catches up through its own load.
    """

    def __init__(self, name: str = "preferences", logger: Optional[StructuredLogger] = None):
        self.name = name
        self.logger = logger
        self._subscribers: Dict[str, BroadcastHandler] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, subscriber_id: str, handler: BroadcastHandler) -> Callable[[], None]:
        """Register a handler; returns the matching unsubscribe function"""
        if subscriber_id in self._subscribers:
            raise ValueError(f"Subscriber {subscriber_id} already registered on {self.name}")

        self._subscribers[subscriber_id] = handler

        def unsubscribe():
            if self._subscribers.get(subscriber_id) is handler:
                del self._subscribers[subscriber_id]

        return unsubscribe

    def emit(self, message: BroadcastMessage) -> int:
        """Deliver to every subscriber except the originator; returns delivery count"""
        delivered = 0
        for subscriber_id, handler in list(self._subscribers.items()):
            if subscriber_id == message.origin_id:
                continue
            try:
                handler(message)
                delivered += 1
            except Exception as e:
                if self.logger:
                    self.logger.error("Broadcast handler failed",
                                      channel=self.name, subscriber_id=subscriber_id, error=str(e))
        return delivered
