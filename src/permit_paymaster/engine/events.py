"""
Lifecycle events for one sponsored transfer attempt.

Every stage the pipeline enters produces one typed event. Events are
appended to the attempt's ``LifecycleLog`` (append-only, ordered) and
dispatched on an ``EventBus`` so callers can observe progress as it happens.
"""

import asyncio
import inspect
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..schemas.operations import OperationReceipt


class Stage(str, Enum):
    """Lifecycle stages in the order an attempt goes through them."""
    CONNECTING = "connecting"
    RESOLVING_ACCOUNT = "resolving_account"
    SIGNING_PERMIT = "signing_permit"
    ENCODING_PAYLOAD = "encoding_payload"
    ESTIMATING_FEES = "estimating_fees"
    SUBMITTING = "submitting"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    FAILED = "failed"


# ==================== Base Event ====================

class BaseEvent(ABC):
    """Base class for all events in the system."""

    @abstractmethod
    def __repr__(self) -> str:
        """String representation of the event."""
        pass


class LifecycleEvent(BaseModel, BaseEvent):
    """The attempt entered ``stage``."""
    stage: Stage
    message: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=time.time)

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(stage={self.stage.value})"


# ==================== Terminal Events ====================

class ConfirmedEvent(LifecycleEvent):
    """Result: the operation was included and succeeded."""
    stage: Stage = Stage.CONFIRMED
    receipt: OperationReceipt

    def __repr__(self) -> str:
        return f"ConfirmedEvent(tx={self.receipt.transaction_hash})"


class FailedEvent(LifecycleEvent):
    """Result: the attempt aborted in ``failed_stage``."""
    stage: Stage = Stage.FAILED
    failed_stage: Optional[str] = None
    reason: str = ""
    error_type: str = ""

    def __repr__(self) -> str:
        return f"FailedEvent(stage={self.failed_stage}, error={self.error_type})"


# ==================== Lifecycle Log ====================

class LifecycleLog:
    """Append-only, ordered record of an attempt's events."""

    def __init__(self) -> None:
        self._events: List[LifecycleEvent] = []

    def append(self, event: LifecycleEvent) -> None:
        self._events.append(event)

    @property
    def events(self) -> Tuple[LifecycleEvent, ...]:
        return tuple(self._events)

    def stages(self) -> List[str]:
        return [event.stage.value for event in self._events]

    def __iter__(self) -> Iterator[LifecycleEvent]:
        return iter(tuple(self._events))

    def __len__(self) -> int:
        return len(self._events)

    def __repr__(self) -> str:
        return f"LifecycleLog({' -> '.join(self.stages())})"


# ==================== Event Bus ====================

EventHandlerFunc = Callable[[LifecycleEvent], Awaitable[None]]


class EventBus:
    """Event dispatcher for publishing lifecycle events to observers."""

    def __init__(self) -> None:
        """Initialize with empty subscribers."""
        self._subscribers: Dict[type, list[EventHandlerFunc]] = {}

    def subscribe(self, event_class: type[LifecycleEvent], handler: EventHandlerFunc) -> None:
        """
        Register an async handler for the given event class.

        Subscribing to a base class (e.g. ``LifecycleEvent``) also receives
        every subclass event.

        Raises:
            TypeError: If handler is not a coroutine function.
        """
        if not inspect.iscoroutinefunction(handler):
            raise TypeError(f"Handler must be a coroutine function, got {type(handler).__name__}")

        if event_class not in self._subscribers:
            self._subscribers[event_class] = []
        self._subscribers[event_class].append(handler)

    async def dispatch(self, event: LifecycleEvent) -> None:
        """
        Run all handlers registered for the event's class or its bases in parallel.
        Handler exceptions propagate to the publisher.
        """
        handlers = [
            handler
            for cls in type(event).__mro__
            for handler in self._subscribers.get(cls, [])
        ]
        if handlers:
            await asyncio.gather(*(handler(event) for handler in handlers))
