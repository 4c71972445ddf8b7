"""
Action-Throttle Ledger
Soft "once per local calendar day" guard for UI actions such as logging a
call outcome. Keys are free-form strings chosen by callers.
"""

import logging
from typing import Optional

from jibacrm.bus.events import bus, EVENT_ACTION_RECORDED
from jibacrm.db.store import get_store
from jibacrm.engine.clock import now_ms, same_local_day

logger = logging.getLogger(__name__)


def can_perform(contact_id: str, action_key: str, now: Optional[int] = None) -> bool:
    """
    True if the action was never recorded for this contact, or was last
    recorded on an earlier local calendar day. Unknown contacts get False.
    """
    now = now if now is not None else now_ms()
    with get_store().read() as state:
        contact = state.find_contact(contact_id)
        if contact is None:
            return False
        last = contact.last_action_timestamps.get(action_key)

    if not last:
        return True
    return not same_local_day(last, now)


def record_action(contact_id: str, action_key: str, now: Optional[int] = None) -> bool:
    """
    Overwrite the timestamp for this action. Does not count as contact activity.
    Returns False if the contact does not exist.
    """
    now = now if now is not None else now_ms()
    with get_store().transaction() as state:
        contact = state.find_contact(contact_id)
        if contact is None:
            logger.debug(f"record_action: contact_id={contact_id} not found")
            return False
        contact.last_action_timestamps[action_key] = now

    logger.debug(f"Recorded action {action_key!r} for contact {contact_id}")
    bus.emit(EVENT_ACTION_RECORDED, {'contact_id': contact_id, 'action_key': action_key, 'timestamp': now})
    return True


def perform_once_per_day(contact_id: str, action_key: str, now: Optional[int] = None) -> bool:
    """
    Check and record in one step. Returns True if the caller may go ahead,
    False if the action was already done today (or the contact is gone).
    """
    with get_store().transaction():
        if not can_perform(contact_id, action_key, now):
            logger.info(f"Action {action_key!r} already recorded today for contact {contact_id}")
            return False
        return record_action(contact_id, action_key, now)
