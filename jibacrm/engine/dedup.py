"""
Dedup / Merge Engine
Groups contacts by normalized phone number and collapses each group into its
most recently active member.
"""

import copy
import logging
import re
from collections import OrderedDict
from typing import Dict, List, Optional, Tuple

from jibacrm.bus.events import bus, EVENT_CONTACTS_MERGED
from jibacrm.db.store import get_store
from jibacrm.engine.clock import now_ms
from jibacrm.engine.crm import new_id
from jibacrm.logging_config import log_call
from jibacrm.models import Contact, Note

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r'\D')


def normalize_phone(phone: Optional[str]) -> str:
    """Strip every non-digit: '(555) 000-1234' -> '5550001234'."""
    return _NON_DIGITS.sub('', phone or '')


def group_by_phone(contacts: List[Contact]) -> Tuple[Dict[str, List[Contact]], List[Contact]]:
    """
    Partition contacts by normalized phone.
    Returns (groups in first-seen order, contacts without a usable phone).
    """
    groups: Dict[str, List[Contact]] = OrderedDict()
    without_phone: List[Contact] = []
    for contact in contacts:
        key = normalize_phone(contact.phone)
        if key:
            groups.setdefault(key, []).append(contact)
        else:
            without_phone.append(contact)
    return groups, without_phone


def merge_group(group: List[Contact], now: int) -> Contact:
    """
    Collapse one phone group. The member with the greatest last_activity
    survives; every other member's notes are folded in, plus one system note
    per absorbed duplicate, and the history is re-sorted newest first.
    """
    ordered = sorted(group, key=lambda c: c.last_activity, reverse=True)
    master, duplicates = copy.copy(ordered[0]), ordered[1:]

    notes: List[Note] = list(master.notes)
    for dup in duplicates:
        notes.extend(dup.notes)
        notes.append(Note(
            id=new_id(),
            text=f"Merged with duplicate contact: {dup.name} ({dup.phone})",
            timestamp=now,
            type='system',
        ))

    notes.sort(key=lambda n: n.timestamp, reverse=True)
    master.notes = notes
    return master


def merge_contacts(contacts: List[Contact], now: int) -> Tuple[List[Contact], int]:
    """
    Pure merge over a list. Returns (surviving contacts, number absorbed).
    Survivors come first in group order, then the contacts without a phone.
    """
    groups, without_phone = group_by_phone(contacts)
    survivors: List[Contact] = []
    merged_count = 0

    for phone, group in groups.items():
        if len(group) == 1:
            survivors.append(group[0])
            continue
        master = merge_group(group, now)
        merged_count += len(group) - 1
        logger.debug(f"merge: phone {phone} → kept {master.id}, absorbed {len(group) - 1}")
        survivors.append(master)

    return survivors + without_phone, merged_count


@log_call
def merge_duplicates(now: Optional[int] = None) -> int:
    """
    Find and merge duplicate contacts in the store.
    Follow-ups of absorbed contacts are not re-pointed; they drop out at read time.
    Returns: number of duplicate records removed
    """
    now = now if now is not None else now_ms()

    with get_store().transaction() as state:
        survivors, merged_count = merge_contacts(state.contacts, now)
        if merged_count:
            state.contacts[:] = survivors

    if merged_count:
        logger.info(f"Merged {merged_count} duplicate contacts")
        bus.emit(EVENT_CONTACTS_MERGED, {'merged_count': merged_count})
    else:
        logger.info("No duplicates found")
    return merged_count
