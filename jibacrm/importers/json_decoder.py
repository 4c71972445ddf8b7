"""
JSON decoder. Accepts a bare array of contacts or an object with a
"contacts" array, which covers the app's own full export. Embedded notes are
passed through as they are.
"""

import json
import logging
from typing import Any, Dict, List

from jibacrm.errors import DecodeError
from jibacrm.models import CONTACT_FIELDS

logger = logging.getLogger(__name__)

# Import always mints a fresh id and activity time
_SKIPPED = {'id', 'last_activity', 'last_action_timestamps'}


def to_record(item: Dict[str, Any]) -> Dict[str, Any]:
    """camelCase contact object -> partial-contact record."""
    notes = item.get('notes')
    if notes is not None and not (isinstance(notes, list) and all(isinstance(n, dict) for n in notes)):
        raise DecodeError(f"Contact {item.get('name') or '(unnamed)'!r} has malformed notes: "
                          f"expected a list of note objects.")
    return {
        attr: item[key]
        for attr, key in CONTACT_FIELDS.items()
        if attr not in _SKIPPED and key in item and item[key] is not None
    }


def decode_json(text: str) -> List[Dict[str, Any]]:
    try:
        data = json.loads(text)
    except ValueError as e:
        raise DecodeError(f"Error parsing JSON file: {e}") from e

    items = data if isinstance(data, list) else (data.get('contacts') if isinstance(data, dict) else None)
    if not isinstance(items, list):
        raise DecodeError('JSON file is not in a recognized format (expected an array of contacts '
                          'or an object with a "contacts" property).')

    records = [to_record(item) for item in items if isinstance(item, dict)]
    logger.debug(f"decode_json: {len(records)} contact objects")
    return records
