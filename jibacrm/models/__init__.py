"""
Data Models
Dataclasses for all entities. These are pure Python objects, no storage logic.

Attribute names are snake_case; the persisted and exported JSON uses the
camelCase keys below, so files written by earlier versions of the app load
unchanged. Unknown keys are ignored and missing keys fall back to defaults.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

NOTE_TYPES = ('note', 'outcome', 'autotag', 'system')
SORT_ORDERS = ('activity', 'firstName', 'lastName')


def _str(value: Any) -> str:
    if value is None:
        return ''
    return str(value)


def _opt_str(value: Any) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class Note:
    """Immutable history entry on a contact."""
    id: str = ''
    text: str = ''
    timestamp: int = 0
    type: str = 'note'

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'text': self.text, 'timestamp': self.timestamp, 'type': self.type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Note':
        note_type = data.get('type', 'note')
        return cls(
            id=_str(data.get('id')),
            text=_str(data.get('text')),
            timestamp=_int(data.get('timestamp')),
            type=note_type if note_type in NOTE_TYPES else 'note',
        )


# snake_case attribute -> camelCase JSON key
CONTACT_FIELDS = {
    'id': 'id',
    'name': 'name',
    'company': 'company',
    'phone': 'phone',
    'email': 'email',
    'lead_type': 'leadType',
    'deal_stage': 'dealStage',
    'contact_note': 'contactNote',
    'subject_property': 'subjectProperty',
    'requirements': 'requirements',
    'notes': 'notes',
    'last_activity': 'lastActivity',
    'snooze_until': 'snoozeUntil',
    'ignore_reminder': 'ignoreReminder',
    'last_action_timestamps': 'lastActionTimestamps',
}


@dataclass
class Contact:
    """A person or organisation tracked by the CRM."""
    id: str = ''
    name: str = ''
    company: str = ''
    phone: str = ''
    email: str = ''
    lead_type: Optional[str] = None
    deal_stage: Optional[str] = None
    contact_note: Optional[str] = None
    subject_property: Optional[str] = None
    requirements: Optional[str] = None
    notes: List[Note] = field(default_factory=list)  # newest first
    last_activity: int = 0
    snooze_until: Optional[int] = None
    ignore_reminder: Optional[bool] = None
    last_action_timestamps: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'name': self.name,
            'company': self.company,
            'phone': self.phone,
            'email': self.email,
            'leadType': self.lead_type,
            'dealStage': self.deal_stage,
            'contactNote': self.contact_note,
            'subjectProperty': self.subject_property,
            'requirements': self.requirements,
            'notes': [n.to_dict() for n in self.notes],
            'lastActivity': self.last_activity,
            'lastActionTimestamps': dict(self.last_action_timestamps),
        }
        if self.snooze_until is not None:
            data['snoozeUntil'] = self.snooze_until
        if self.ignore_reminder is not None:
            data['ignoreReminder'] = self.ignore_reminder
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Contact':
        notes = data.get('notes')
        timestamps = data.get('lastActionTimestamps') or {}
        snooze = data.get('snoozeUntil')
        ignore = data.get('ignoreReminder')
        return cls(
            id=_str(data.get('id')),
            name=_str(data.get('name')),
            company=_str(data.get('company')),
            phone=_str(data.get('phone')),
            email=_str(data.get('email')),
            lead_type=_opt_str(data.get('leadType')),
            deal_stage=_opt_str(data.get('dealStage')),
            contact_note=_opt_str(data.get('contactNote')),
            subject_property=_opt_str(data.get('subjectProperty')),
            requirements=_opt_str(data.get('requirements')),
            notes=[Note.from_dict(n) for n in notes if isinstance(n, dict)] if isinstance(notes, list) else [],
            last_activity=_int(data.get('lastActivity')),
            snooze_until=_int(snooze) if snooze is not None else None,
            ignore_reminder=bool(ignore) if ignore is not None else None,
            last_action_timestamps={
                str(k): _int(v) for k, v in timestamps.items()
            } if isinstance(timestamps, dict) else {},
        )


@dataclass
class FollowUp:
    """Scheduled reminder. contact_id is a weak reference, checked at read time."""
    contact_id: str = ''
    due_date: int = 0  # epoch ms at local midnight
    completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {'contactId': self.contact_id, 'dueDate': self.due_date, 'completed': self.completed}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FollowUp':
        return cls(
            contact_id=_str(data.get('contactId')),
            due_date=_int(data.get('dueDate')),
            completed=bool(data.get('completed', False)),
        )


@dataclass
class LeadType:
    id: str = ''
    name: str = ''
    theme: str = 'gray'

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'theme': self.theme}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LeadType':
        return cls(id=_str(data.get('id')), name=_str(data.get('name')), theme=_str(data.get('theme')) or 'gray')


@dataclass
class DealStage:
    id: str = ''
    name: str = ''
    theme: str = 'gray'

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'theme': self.theme}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DealStage':
        return cls(id=_str(data.get('id')), name=_str(data.get('name')), theme=_str(data.get('theme')) or 'gray')


@dataclass
class CallOutcome:
    id: str = ''
    name: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CallOutcome':
        return cls(id=_str(data.get('id')), name=_str(data.get('name')))


@dataclass
class AppSettings:
    """Label taxonomies. Order of each list is significant."""
    lead_types: List[LeadType] = field(default_factory=list)
    deal_stages: List[DealStage] = field(default_factory=list)
    call_outcomes: List[CallOutcome] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'leadTypes': [t.to_dict() for t in self.lead_types],
            'dealStages': [s.to_dict() for s in self.deal_stages],
            'callOutcomes': [o.to_dict() for o in self.call_outcomes],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AppSettings':
        """Build settings, backfilling any missing taxonomy from the defaults."""
        defaults = default_settings()

        def _list(key, item_cls, fallback):
            raw = data.get(key)
            if not isinstance(raw, list):
                return fallback
            return [item_cls.from_dict(item) for item in raw if isinstance(item, dict)]

        return cls(
            lead_types=_list('leadTypes', LeadType, defaults.lead_types),
            deal_stages=_list('dealStages', DealStage, defaults.deal_stages),
            call_outcomes=_list('callOutcomes', CallOutcome, defaults.call_outcomes),
        )


def default_settings() -> AppSettings:
    """Taxonomy seeded on first run."""
    return AppSettings(
        lead_types=[
            LeadType('1', 'FSBO', 'red'),
            LeadType('2', 'Buyer', 'blue'),
            LeadType('3', 'Tenant', 'green'),
            LeadType('4', 'Seller', 'purple'),
            LeadType('5', 'Landlord', 'orange'),
            LeadType('6', 'Investor', 'yellow'),
            LeadType('7', 'Developer', 'gray'),
            LeadType('8', 'Client', 'pink'),
        ],
        deal_stages=[
            DealStage('s1', 'Research', 'gray'),
            DealStage('s2', 'Showings', 'blue'),
            DealStage('s3', 'LOI', 'yellow'),
            DealStage('s4', 'Contract', 'orange'),
            DealStage('s5', 'CCO', 'green'),
        ],
        call_outcomes=[
            CallOutcome('co1', 'Made Contact Nudged'),
            CallOutcome('co2', 'Made Contact Not Interested'),
            CallOutcome('co3', 'No Answer'),
            CallOutcome('co4', 'Call went to VM'),
            CallOutcome('co5', 'Texted Instead'),
            CallOutcome('co6', 'Bad Number'),
        ],
    )


@dataclass
class ContactQuery:
    """Filter / sort / pagination request for the contact list."""
    page: int = 1
    page_size: int = 0  # <= 0 means every match
    search_term: Optional[str] = None
    lead_type: Optional[str] = None
    deal_stage: Optional[str] = None
    sort_order: str = 'activity'


@dataclass
class ContactPage:
    items: List[Contact] = field(default_factory=list)
    total_count: int = 0
