"""
Follow-Up Engine
At most one open follow-up per contact. Completed entries stay as history.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from jibacrm.bus.events import bus, EVENT_FOLLOWUP_SCHEDULED, EVENT_FOLLOWUP_COMPLETED
from jibacrm.db.store import get_store
from jibacrm.engine.clock import local_date, local_midnight, midnight_in_days, now_ms
from jibacrm.errors import ValidationError
from jibacrm.models import Contact, FollowUp

logger = logging.getLogger(__name__)


def _open_index(follow_ups: List[FollowUp], contact_id: str) -> int:
    for index, follow_up in enumerate(follow_ups):
        if follow_up.contact_id == contact_id and not follow_up.completed:
            return index
    return -1


def schedule_follow_up(contact_id: str, days: Optional[int], now: Optional[int] = None) -> List[FollowUp]:
    """
    Schedule a follow-up ``days`` after today's local midnight, replacing the
    contact's open entry in place if it has one.
    ``days=None`` means "do not follow up": the open entry is removed.
    Returns the full follow-up list.
    """
    if days is not None and days < 0:
        raise ValidationError(f"Follow-up days must be zero or more, got {days}")

    with get_store().transaction() as state:
        index = _open_index(state.follow_ups, contact_id)
        if days is None:
            if index > -1:
                del state.follow_ups[index]
            follow_up = None
        else:
            follow_up = FollowUp(contact_id=contact_id, due_date=midnight_in_days(days, now), completed=False)
            if index > -1:
                state.follow_ups[index] = follow_up
            else:
                state.follow_ups.append(follow_up)
        result = copy.deepcopy(state.follow_ups)

    if follow_up is None:
        logger.info(f"Cleared open follow-up for contact {contact_id}")
    else:
        logger.info(f"Scheduled follow-up for contact {contact_id} in {days} days")
    bus.emit(EVENT_FOLLOWUP_SCHEDULED, {'contact_id': contact_id, 'days': days,
                                        'follow_up': copy.copy(follow_up)})
    return result


def complete_follow_up(contact_id: str) -> List[FollowUp]:
    """Mark the contact's open follow-up as completed. No-op if none is open."""
    with get_store().transaction() as state:
        index = _open_index(state.follow_ups, contact_id)
        if index > -1:
            state.follow_ups[index].completed = True
        result = copy.deepcopy(state.follow_ups)

    if index > -1:
        logger.info(f"Completed follow-up for contact {contact_id}")
        bus.emit(EVENT_FOLLOWUP_COMPLETED, {'contact_id': contact_id})
    else:
        logger.debug(f"complete_follow_up: no open follow-up for contact {contact_id}")
    return result


def list_follow_ups() -> List[FollowUp]:
    """The whole collection, open and completed, including orphans."""
    with get_store().read() as state:
        return copy.deepcopy(state.follow_ups)


def get_open_follow_up(contact_id: str) -> Optional[FollowUp]:
    with get_store().read() as state:
        index = _open_index(state.follow_ups, contact_id)
        return copy.copy(state.follow_ups[index]) if index > -1 else None


# =============================================================================
# READ-TIME CATEGORISATION
# =============================================================================

@dataclass
class FollowUpEntry:
    follow_up: FollowUp
    contact: Contact


@dataclass
class FollowUpBuckets:
    upcoming: List[FollowUpEntry] = field(default_factory=list)
    overdue: List[FollowUpEntry] = field(default_factory=list)
    completed: List[FollowUpEntry] = field(default_factory=list)


def categorize_follow_ups(
    follow_ups: Iterable[FollowUp],
    contacts: Iterable[Contact],
    now: Optional[int] = None,
) -> FollowUpBuckets:
    """
    Join follow-ups with live contacts (dangling references are dropped) and
    split them. Overdue means not completed and due strictly before today's
    local midnight.
    """
    today_midnight = local_midnight(local_date(now if now is not None else now_ms()))
    by_id = {c.id: c for c in contacts}
    buckets = FollowUpBuckets()

    for follow_up in follow_ups:
        contact = by_id.get(follow_up.contact_id)
        if contact is None:
            continue
        entry = FollowUpEntry(follow_up=follow_up, contact=contact)
        if follow_up.completed:
            buckets.completed.append(entry)
        elif follow_up.due_date < today_midnight:
            buckets.overdue.append(entry)
        else:
            buckets.upcoming.append(entry)

    buckets.upcoming.sort(key=lambda e: e.follow_up.due_date)
    buckets.overdue.sort(key=lambda e: e.follow_up.due_date)
    buckets.completed.sort(key=lambda e: e.follow_up.due_date, reverse=True)
    return buckets
