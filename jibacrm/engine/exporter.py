"""
Export - full JSON dump and per-contact CSV.
"""

import csv
import io
import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from jibacrm.db.store import get_store
from jibacrm.engine.clock import format_timestamp
from jibacrm.logging_config import log_call
from jibacrm.models import Contact, Note

logger = logging.getLogger(__name__)

CSV_HEADERS = ["ID", "Name", "Company", "Phone", "Email", "LeadType", "DealStage", "NoteHistory"]


def export_data() -> Dict[str, Any]:
    """The full current state: {"contacts", "followUps", "settings"}."""
    with get_store().read() as state:
        records = state.to_records()
    return {
        'contacts': records['contacts'],
        'followUps': records['followUps'],
        'settings': records['settings'],
    }


def render_note(note: Note) -> str:
    text = note.text.replace('\r\n', ' ').replace('\n', ' ').replace('\r', ' ')
    return f"[{format_timestamp(note.timestamp)} - {note.type}] {text}"


def note_history(contact: Contact) -> str:
    return " | ".join(render_note(n) for n in contact.notes)


def contacts_to_csv(contacts: List[Contact]) -> str:
    """Header row, then one fully quoted row per contact, CRLF line endings."""
    buffer = io.StringIO()
    buffer.write(",".join(CSV_HEADERS) + "\r\n")
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\r\n")
    for c in contacts:
        writer.writerow([
            c.id, c.name, c.company, c.phone, c.email,
            c.lead_type or '', c.deal_stage or '', note_history(c),
        ])
    return buffer.getvalue()


@log_call
def export_json(path: Path) -> int:
    """Write the JSON export. Returns the number of contacts written."""
    data = export_data()
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    logger.info(f"Exported {len(data['contacts'])} contacts to {path}")
    return len(data['contacts'])


@log_call
def export_csv(path: Path) -> int:
    """Write the CSV export. Returns the number of contacts written."""
    with get_store().read() as state:
        content = contacts_to_csv(state.contacts)
        count = len(state.contacts)
    with open(path, 'w', encoding='utf-8', newline='') as f:
        f.write(content)
    logger.info(f"Exported {count} contacts to {path}")
    return count
