"""
CSV header -> contact field mapping.

suggest_mapping() tries, per field:
  1. exact (case-insensitive) match against the alias table, in alias order
  2. a header that contains the field label
  3. a close fuzzy match (rapidfuzz ratio) against the aliases
and leaves the field unmapped (None) otherwise.
"""

import logging
from typing import Any, Dict, List, Optional

from rapidfuzz import fuzz, process

from jibacrm.errors import ValidationError
from jibacrm.models import Note

logger = logging.getLogger(__name__)

EXPECTED_FIELDS = ['Name', 'Company', 'Phone', 'Email', 'Contact Note', 'Notes', 'Lead Type', 'Deal Stage']

# Field label -> key in the partial-contact record
FIELD_KEYS = {
    'Name': 'name',
    'Company': 'company',
    'Phone': 'phone',
    'Email': 'email',
    'Contact Note': 'contact_note',
    'Notes': 'notes',
    'Lead Type': 'lead_type',
    'Deal Stage': 'deal_stage',
}

HEADER_ALIASES = {
    'Name': ['name', 'full name', 'contact name', 'given name'],
    'Company': ['company', 'organization 1 - name', 'organization', 'workplace'],
    'Phone': ['phone 1 - value', 'phone', 'mobile', 'cell', 'primary phone'],
    'Email': ['e-mail 1 - value', 'email 1 - value', 'email', 'e-mail', 'email address', 'primary email'],
    'Notes': ['notes', 'note history', 'history', 'comments'],
    'Contact Note': ['contact note', 'note', 'description', 'primary note'],
    'Lead Type': ['lead type', 'type', 'category', 'group membership'],
    'Deal Stage': ['deal stage', 'stage', 'status'],
}

FUZZY_THRESHOLD = 90


def _exact_match(aliases: List[str], headers: List[str]) -> Optional[str]:
    for alias in aliases:
        for header in headers:
            if header.lower().strip() == alias:
                return header
    return None


def _contains_match(label: str, headers: List[str]) -> Optional[str]:
    needle = label.lower()
    for header in headers:
        if needle in header.lower():
            return header
    return None


def _fuzzy_match(aliases: List[str], headers: List[str]) -> Optional[str]:
    choices = {header: header.lower().strip() for header in headers}
    best_header, best_score = None, 0.0
    for alias in aliases:
        match = process.extractOne(alias, choices, scorer=fuzz.ratio, score_cutoff=FUZZY_THRESHOLD)
        if match and match[1] > best_score:
            best_score = match[1]
            best_header = match[2]
    return best_header


def best_header_for(label: str, headers: List[str]) -> Optional[str]:
    """Best matching file header for one field label, or None."""
    aliases = HEADER_ALIASES.get(label, [label.lower()])
    return (
        _exact_match(aliases, headers)
        or _contains_match(label, headers)
        or _fuzzy_match(aliases, headers)
    )


def suggest_mapping(headers: List[str]) -> Dict[str, Optional[str]]:
    """Suggested header for every expected field (None = do not import)."""
    mapping = {label: best_header_for(label, headers) for label in EXPECTED_FIELDS}
    logger.debug(f"suggest_mapping: {mapping}")
    return mapping


def normalize_field_label(label: str) -> str:
    """'contact_note', 'Contact Note', 'contactnote' -> 'Contact Note'."""
    wanted = label.replace('_', '').replace(' ', '').replace('-', '').lower()
    for expected in EXPECTED_FIELDS:
        if expected.replace(' ', '').lower() == wanted:
            return expected
    raise ValidationError(f"Unknown import field {label!r}. Choose from: {', '.join(EXPECTED_FIELDS)}")


def apply_overrides(
    mapping: Dict[str, Optional[str]],
    overrides: Dict[str, Optional[str]],
    headers: List[str],
) -> Dict[str, Optional[str]]:
    """Caller overrides win. A header of None / '' / 'unmapped' clears the field."""
    result = dict(mapping)
    for label, header in (overrides or {}).items():
        field_label = normalize_field_label(label)
        if header in (None, '', 'unmapped'):
            result[field_label] = None
            continue
        if header not in headers:
            raise ValidationError(f"Column {header!r} is not in the file. Columns: {', '.join(headers)}")
        result[field_label] = header
    return result


def apply_mapping(rows: List[Dict[str, str]], mapping: Dict[str, Optional[str]], now: int) -> List[Dict[str, Any]]:
    """
    Turn CSV rows into partial-contact records. Empty cells are skipped; the
    Notes column becomes a single 'note' entry in the history.
    """
    records = []
    for row in rows:
        record: Dict[str, Any] = {}
        for label, header in mapping.items():
            if not header:
                continue
            value = (row.get(header) or '').strip()
            if not value:
                continue
            key = FIELD_KEYS[label]
            if key == 'notes':
                record['notes'] = [Note(text=value, timestamp=now, type='note')]
            else:
                record[key] = value
        records.append(record)
    return records
