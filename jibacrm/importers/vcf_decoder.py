"""
vCard (.vcf) decoder.
Reads FN / N / ORG / TEL / EMAIL / NOTE from each card. The first non-empty
TEL and EMAIL win; NOTE goes to contact_note, not the note history.
"""

import logging
import re
from typing import Any, Dict, List

from jibacrm.errors import DecodeError

logger = logging.getLogger(__name__)

# Folded lines continue with a leading space or tab
_FOLD = re.compile(r'\r?\n[ \t]')
_LINE_BREAK = re.compile(r'\r\n|\n|\r')


def unfold(text: str) -> str:
    return _FOLD.sub('', text)


def unescape(value: str) -> str:
    return (value.replace('\\n', '\n').replace('\\N', '\n')
            .replace('\\,', ',').replace('\\;', ';').replace('\\\\', '\\'))


def property_name(key_part: str) -> str:
    """'item1.TEL;TYPE=CELL' -> 'TEL'."""
    name = key_part.split(';', 1)[0]
    if '.' in name:
        name = name.rsplit('.', 1)[1]
    return name.strip().upper()


def decode_card(card_text: str) -> Dict[str, Any]:
    record: Dict[str, Any] = {}
    full_name = first_name = last_name = note = ''

    for line in _LINE_BREAK.split(card_text):
        line = line.strip()
        colon = line.find(':')
        if colon == -1:
            continue
        prop = property_name(line[:colon])
        value = line[colon + 1:]

        if prop == 'FN':
            full_name = unescape(value).strip()
        elif prop == 'N':
            parts = value.split(';')
            last_name = unescape(parts[0]).strip() if parts else ''
            first_name = unescape(parts[1]).strip() if len(parts) > 1 else ''
        elif prop == 'ORG':
            record['company'] = unescape(value.split(';')[0]).strip()
        elif prop == 'TEL' and not record.get('phone'):
            record['phone'] = value.strip()
        elif prop == 'EMAIL' and not record.get('email'):
            record['email'] = value.strip()
        elif prop == 'NOTE':
            note = unescape(value).strip()

    record['name'] = (full_name or f"{first_name} {last_name}").strip()
    if note:
        record['contact_note'] = note
    return record


def decode_vcf(text: str) -> List[Dict[str, Any]]:
    """One partial-contact record per BEGIN:VCARD block."""
    unfolded = unfold(text)
    if 'BEGIN:VCARD' not in unfolded.upper():
        raise DecodeError("No vCard entries (BEGIN:VCARD) found in the file.")

    cards = re.split(r'BEGIN:VCARD', unfolded, flags=re.IGNORECASE)[1:]
    records = [decode_card(card) for card in cards]
    logger.debug(f"decode_vcf: {len(records)} cards")
    return records
