"""
One-click contact actions.
Each combines a throttle check, the state change and a history note, the way
the contact screen uses them.
"""

import logging
from typing import Optional

from jibacrm.engine import crm, followups, throttle
from jibacrm.engine.clock import local_date, midnight_in_days, now_ms
from jibacrm.models import Contact

logger = logging.getLogger(__name__)

FOLLOWUP_CUSTOM_KEY = 'followup-custom'


def outcome_action_key(outcome: str) -> str:
    return f"outcome-{outcome}"


def log_outcome(contact_id: str, outcome: str, now: Optional[int] = None) -> Optional[Contact]:
    """
    Log a call outcome as an 'outcome' note, at most once per day per outcome.
    Returns the updated contact, or None if throttled / not found.
    """
    if not throttle.perform_once_per_day(contact_id, outcome_action_key(outcome), now):
        return None
    return crm.add_note(contact_id, outcome, 'outcome', now=now)


def schedule_follow_up_action(
    contact_id: str,
    days: Optional[int],
    action_key: str = FOLLOWUP_CUSTOM_KEY,
    now: Optional[int] = None,
) -> Optional[Contact]:
    """Throttled follow-up scheduling that also leaves a system note."""
    if not throttle.perform_once_per_day(contact_id, action_key, now):
        return None

    followups.schedule_follow_up(contact_id, days, now=now)
    if days is None:
        text = "Marked as 'Don't call again'."
    else:
        due = local_date(midnight_in_days(days, now))
        text = f"Follow-up scheduled for {due.isoformat()}."
    return crm.add_note(contact_id, text, 'system', now=now)


def complete_follow_up_action(contact_id: str, now: Optional[int] = None) -> Optional[Contact]:
    followups.complete_follow_up(contact_id)
    return crm.add_note(contact_id, 'Follow-up marked as done.', 'system', now=now)


def change_deal_stage(contact_id: str, deal_stage: str, now: Optional[int] = None) -> Optional[Contact]:
    """Move a contact to a deal stage; counts as activity and leaves an autotag note."""
    now = now if now is not None else now_ms()
    if crm.update_contact(contact_id, {'deal_stage': deal_stage, 'last_activity': now}) is None:
        return None
    return crm.add_note(contact_id, f"Deal stage updated to: {deal_stage}", 'autotag', now=now)


def change_lead_type(contact_id: str, lead_type: str, now: Optional[int] = None) -> Optional[Contact]:
    now = now if now is not None else now_ms()
    return crm.update_contact(contact_id, {'lead_type': lead_type, 'last_activity': now})
