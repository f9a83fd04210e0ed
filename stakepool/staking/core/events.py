# MIT License
# Copyright (c) 2025 Hashborn

"""
Event system for pool lifecycle events.

Events are emitted only after the operation that produced them committed.
"""
from typing import Dict, List, Callable, Any
import logging

logger = logging.getLogger(__name__)

POOL_INITIALIZED = "pool_initialized"
OWNER_DEPOSITED = "owner_deposited"
OWNER_WITHDREW = "owner_withdrew"
STAKE_CREATED = "stake_created"
UNSTAKE_STARTED = "unstake_started"
UNSTAKE_COMPLETED = "unstake_completed"
RESTAKED = "restaked"
OPERATION_REJECTED = "operation_rejected"


class EventBus:
    """
    Simple synchronous event bus.

    A failing listener is logged and does not affect other listeners or the
    already-committed operation.
    """

    def __init__(self):
        self.listeners: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, callback: Callable) -> None:
        self.listeners.setdefault(event_type, []).append(callback)
        logger.debug(f"Subscribed to event: {event_type}")

    def unsubscribe(self, event_type: str, callback: Callable) -> None:
        if event_type in self.listeners:
            try:
                self.listeners[event_type].remove(callback)
                logger.debug(f"Unsubscribed from event: {event_type}")
            except ValueError:
                logger.warning(f"Callback not found for event: {event_type}")

    def emit(self, event_type: str, **data: Any) -> None:
        """
        Emit an event to all subscribers.

        Args:
            event_type: Event name
            **data: Event data as keyword arguments
        """
        listeners = list(self.listeners.get(event_type, []))
        if not listeners:
            return

        logger.debug(f"Emitting event: {event_type} to {len(listeners)} listener(s)")
        for callback in listeners:
            try:
                callback(**data)
            except Exception as e:
                logger.error(f"Error in event callback for {event_type}: {e}", exc_info=True)

    def clear(self, event_type: str = None) -> None:
        if event_type:
            self.listeners.pop(event_type, None)
        else:
            self.listeners.clear()


# Global event bus instance
event_bus = EventBus()
