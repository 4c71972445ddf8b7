"""
CRM Engine - Mutation Engine and settings
Pure Python module with no AI dependency. Handles contact CRUD, note history,
bulk replace / import, delete-all and the settings record.
Other modules react to changes through the event bus.
"""

import copy
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional

from jibacrm.bus.events import (
    bus,
    EVENT_CONTACT_CREATED, EVENT_CONTACT_UPDATED, EVENT_CONTACT_DELETED,
    EVENT_CONTACTS_REPLACED, EVENT_CONTACTS_IMPORTED, EVENT_CONTACTS_CLEARED,
    EVENT_NOTE_ADDED, EVENT_SETTINGS_UPDATED,
)
from jibacrm.db.store import get_store
from jibacrm.engine.clock import now_ms
from jibacrm.errors import ValidationError
from jibacrm.models import AppSettings, Contact, CONTACT_FIELDS, NOTE_TYPES, Note

logger = logging.getLogger(__name__)

# Allowlists: field names never come from callers unchecked
_UPDATE_FIELDS = set(CONTACT_FIELDS) - {'id'}
_CREATE_FIELDS = set(CONTACT_FIELDS) - {'id', 'last_activity', 'last_action_timestamps'}
_STRING_FIELDS = ('name', 'company', 'phone', 'email')


def _validate_fields(fields: Dict[str, Any], allowed: set, action: str) -> None:
    """Raise ValidationError if any key in fields is not an allowed contact field."""
    invalid = set(fields.keys()) - allowed
    if invalid:
        raise ValidationError(f"Invalid contact fields for {action}: {sorted(invalid)}")


def new_id() -> str:
    return str(uuid.uuid4())


def coerce_note(value: Any, now: int) -> Note:
    """Accept a Note or a camelCase note dict; fill in a missing id / timestamp."""
    note = copy.copy(value) if isinstance(value, Note) else Note.from_dict(value or {})
    if not note.id:
        note.id = new_id()
    if not note.timestamp:
        note.timestamp = now
    return note


def build_contact(fields: Dict[str, Any], now: int) -> Contact:
    """Fresh contact from partial fields: new id, blank strings, last_activity = now."""
    _validate_fields(fields, _CREATE_FIELDS, 'create')
    data = {key: ('' if fields.get(key) is None else str(fields.get(key)).strip()) for key in _STRING_FIELDS}
    return Contact(
        id=new_id(),
        lead_type=fields.get('lead_type') or None,
        deal_stage=fields.get('deal_stage') or None,
        contact_note=fields.get('contact_note') or None,
        subject_property=fields.get('subject_property') or None,
        requirements=fields.get('requirements') or None,
        notes=[coerce_note(n, now) for n in (fields.get('notes') or [])],
        last_activity=now,
        snooze_until=fields.get('snooze_until'),
        ignore_reminder=fields.get('ignore_reminder'),
        **data,
    )


# =============================================================================
# CONTACT OPERATIONS
# =============================================================================

def create_contact(fields: Dict[str, Any], now: Optional[int] = None) -> Contact:
    """
    Create a contact and place it at the head of the collection, so it is the
    most recent activity without a re-sort.
    Raises ValidationError when name is blank.
    """
    if not str(fields.get('name') or '').strip():
        raise ValidationError("Name is required.")

    now = now if now is not None else now_ms()
    contact = build_contact(fields, now)

    with get_store().transaction() as state:
        state.contacts.insert(0, contact)
        created = copy.deepcopy(contact)

    logger.info(f"Created contact {created.id}: {created.name}")
    bus.emit(EVENT_CONTACT_CREATED, {'contact_id': created.id, 'contact': created})
    return created


def get_contact(contact_id: str) -> Optional[Contact]:
    """Get contact by ID."""
    with get_store().read() as state:
        contact = state.find_contact(contact_id)
        if contact:
            return copy.deepcopy(contact)
    logger.debug(f"get_contact: contact_id={contact_id} not found")
    return None


def list_all_contacts() -> List[Contact]:
    """Every contact in collection order."""
    with get_store().read() as state:
        return copy.deepcopy(state.contacts)


def update_contact(contact_id: str, updates: Dict[str, Any]) -> Optional[Contact]:
    """
    Shallow-patch a contact.
    last_activity is NOT bumped here; pass it in updates to mark user activity.
    Returns the updated contact, or None if it no longer exists.
    """
    _validate_fields(updates, _UPDATE_FIELDS, 'update')

    with get_store().transaction() as state:
        contact = state.find_contact(contact_id)
        if contact is None:
            logger.debug(f"update_contact: contact_id={contact_id} not found")
            return None
        if not updates:
            return copy.deepcopy(contact)

        for key, value in updates.items():
            if key == 'notes':
                value = [coerce_note(n, now_ms()) for n in (value or [])]
            elif key == 'last_action_timestamps':
                value = dict(value or {})
            elif key in _STRING_FIELDS:
                value = '' if value is None else str(value)
            setattr(contact, key, value)
        updated = copy.deepcopy(contact)

    logger.info(f"Updated contact {contact_id}: {sorted(updates.keys())}")
    bus.emit(EVENT_CONTACT_UPDATED, {'contact_id': contact_id, 'updates': dict(updates)})
    return updated


def delete_contact(contact_id: str) -> bool:
    """
    Remove a contact entirely. Follow-ups pointing at it are left in place and
    filtered out at read time.
    Returns: True if deleted, False if not found
    """
    with get_store().transaction() as state:
        before = len(state.contacts)
        state.contacts[:] = [c for c in state.contacts if c.id != contact_id]
        deleted = len(state.contacts) < before

    if deleted:
        logger.info(f"Deleted contact {contact_id}")
        bus.emit(EVENT_CONTACT_DELETED, {'contact_id': contact_id})
    return deleted


def add_note(contact_id: str, text: str, note_type: str = 'note', now: Optional[int] = None,
             suggest: bool = True) -> Optional[Contact]:
    """
    Prepend a note to the contact's history and bump last_activity.
    suggest=False tells note_added listeners not to request a deal-stage suggestion.
    Returns the updated contact, or None if it no longer exists.
    """
    if note_type not in NOTE_TYPES:
        raise ValidationError(f"Unknown note type {note_type!r}. Choose from: {', '.join(NOTE_TYPES)}")
    if not text or not text.strip():
        raise ValidationError("Note text is empty.")

    now = now if now is not None else now_ms()

    with get_store().transaction() as state:
        contact = state.find_contact(contact_id)
        if contact is None:
            logger.debug(f"add_note: contact_id={contact_id} not found")
            return None
        note = Note(id=new_id(), text=text, timestamp=now, type=note_type)
        contact.notes.insert(0, note)
        contact.last_activity = now
        updated = copy.deepcopy(contact)

    logger.info(f"Added {note_type} note to contact {contact_id}")
    bus.emit(EVENT_NOTE_ADDED, {
        'contact_id': contact_id,
        'note': copy.copy(note),
        'contact': updated,
        'suggest': suggest,
    })
    return updated


def replace_all_contacts(contacts: Iterable[Contact]) -> int:
    """
    Replace the whole collection, keeping the given order verbatim
    (used for manual reordering). Ids must be unique.
    Returns the number of contacts stored.
    """
    new_contacts = copy.deepcopy(list(contacts))
    seen = set()
    for contact in new_contacts:
        if not contact.id:
            raise ValidationError("Every contact needs an id for a bulk replace.")
        if contact.id in seen:
            raise ValidationError(f"Duplicate contact id {contact.id!r} in bulk replace.")
        seen.add(contact.id)

    with get_store().transaction() as state:
        state.contacts[:] = new_contacts

    logger.info(f"Replaced contact collection ({len(new_contacts)} contacts)")
    bus.emit(EVENT_CONTACTS_REPLACED, {'count': len(new_contacts)})
    return len(new_contacts)


def is_importable(record: Dict[str, Any]) -> bool:
    """An import record needs both a name and a phone."""
    return bool(str(record.get('name') or '').strip()) and bool(str(record.get('phone') or '').strip())


def import_contacts(records: Iterable[Dict[str, Any]], now: Optional[int] = None) -> int:
    """
    Create one contact per record, exactly like create_contact, with no
    deduplication. Records without a name or phone are skipped.
    The batch is prepended in input order.
    Returns: number of contacts created
    """
    now = now if now is not None else now_ms()
    imported: List[Contact] = []

    for index, record in enumerate(records):
        if not is_importable(record):
            logger.warning(f"import_contacts: record {index} skipped (name and phone are required)")
            continue
        imported.append(build_contact(record, now))

    if not imported:
        logger.info("import_contacts: nothing to import")
        return 0

    with get_store().transaction() as state:
        state.contacts[:0] = imported

    logger.info(f"Imported {len(imported)} contacts")
    bus.emit(EVENT_CONTACTS_IMPORTED, {
        'count': len(imported),
        'contact_ids': [c.id for c in imported],
    })
    return len(imported)


def delete_all_contacts() -> int:
    """Remove every contact and every follow-up (completed ones included). Settings survive."""
    with get_store().transaction() as state:
        removed = len(state.contacts)
        state.contacts.clear()
        state.follow_ups.clear()

    logger.warning(f"Deleted all contacts ({removed}) and follow-ups")
    bus.emit(EVENT_CONTACTS_CLEARED, {'count': removed})
    return removed


# =============================================================================
# SETTINGS
# =============================================================================

def get_settings() -> AppSettings:
    with get_store().read() as state:
        return copy.deepcopy(state.settings)


def update_settings(settings: AppSettings) -> AppSettings:
    """Replace the settings record as a whole (no partial patch)."""
    with get_store().transaction() as state:
        state.settings = AppSettings.from_dict(settings.to_dict())
        saved = copy.deepcopy(state.settings)

    logger.info(f"Updated settings: {len(saved.lead_types)} lead types, "
                f"{len(saved.deal_stages)} deal stages, {len(saved.call_outcomes)} call outcomes")
    bus.emit(EVENT_SETTINGS_UPDATED, {'settings': saved})
    return saved
