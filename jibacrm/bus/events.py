"""
Event Bus - Decoupled Module Communication
Engines emit events after a mutation has been flushed; listeners (the
advisory stage suggester, the CLI) react without the engines importing them.
"""

from typing import Callable, Dict, List, Any
import logging

logger = logging.getLogger(__name__)


class EventBus:
    """
    Simple event bus for decoupled module communication.
    Modules emit events, other modules register handlers to listen.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}

    def on(self, event_name: str, handler: Callable):
        """
        Register a handler for an event.

        Args:
            event_name: Name of the event to listen for
            handler: Callable that receives event_data dict
        """
        if event_name not in self._handlers:
            self._handlers[event_name] = []
        self._handlers[event_name].append(handler)
        logger.debug(f"Registered handler for event '{event_name}': {handler.__name__}")

    def off(self, event_name: str, handler: Callable):
        """Remove a handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event_name: str, event_data: Dict[str, Any] = None):
        """
        Emit an event to all registered handlers.
        A failing handler is logged and never breaks the emitter.

        Args:
            event_name: Name of the event
            event_data: Optional dict of data to pass to handlers
        """
        if event_data is None:
            event_data = {}

        logger.debug(f"Emitting event '{event_name}' with data: {event_data}")

        for handler in list(self._handlers.get(event_name, [])):
            try:
                handler(event_data)
            except Exception as e:
                logger.error(f"Error in handler {handler.__name__} for event '{event_name}': {e}")

    def clear(self):
        """Clear all handlers (useful for testing)."""
        self._handlers.clear()


# Singleton instance
bus = EventBus()


# =============================================================================
# STANDARD EVENTS
# =============================================================================

# Mutation Engine
EVENT_CONTACT_CREATED = 'contact_created'
EVENT_CONTACT_UPDATED = 'contact_updated'
EVENT_CONTACT_DELETED = 'contact_deleted'
EVENT_CONTACTS_REPLACED = 'contacts_replaced'
EVENT_CONTACTS_IMPORTED = 'contacts_imported'
EVENT_CONTACTS_CLEARED = 'contacts_cleared'
EVENT_NOTE_ADDED = 'note_added'
EVENT_SETTINGS_UPDATED = 'settings_updated'

# Dedup / Merge
EVENT_CONTACTS_MERGED = 'contacts_merged'

# Action-Throttle Ledger
EVENT_ACTION_RECORDED = 'action_recorded'

# Follow-Up Engine
EVENT_FOLLOWUP_SCHEDULED = 'followup_scheduled'
EVENT_FOLLOWUP_COMPLETED = 'followup_completed'

# Advisory stage suggestion
EVENT_STAGE_SUGGESTED = 'stage_suggested'
