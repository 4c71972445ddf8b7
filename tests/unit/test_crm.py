"""
Unit tests for the Mutation Engine (jibacrm/engine/crm.py).

Runs against the in-memory store installed by conftest. Bus events are
verified by patching jibacrm.engine.crm.bus.emit.
"""

from unittest.mock import patch

import pytest

from jibacrm.bus.events import (
    EVENT_CONTACT_CREATED, EVENT_CONTACT_UPDATED, EVENT_CONTACT_DELETED,
    EVENT_CONTACTS_CLEARED, EVENT_CONTACTS_IMPORTED, EVENT_CONTACTS_REPLACED,
    EVENT_NOTE_ADDED, EVENT_SETTINGS_UPDATED,
)
from jibacrm.engine.crm import (
    add_note, create_contact, delete_all_contacts, delete_contact, get_contact,
    get_settings, import_contacts, list_all_contacts, replace_all_contacts,
    update_contact, update_settings,
)
from jibacrm.engine.followups import list_follow_ups, schedule_follow_up
from jibacrm.errors import ValidationError
from jibacrm.models import DealStage, Note, default_settings


# ---------------------------------------------------------------------------
# create_contact
# ---------------------------------------------------------------------------

class TestCreateContact:

    def test_assigns_id_and_activity(self, now):
        c = create_contact({'name': 'Jane Doe', 'phone': '555-0001'}, now=now)
        assert c.id
        assert c.last_activity == now
        assert c.notes == []
        assert c.company == ''

    def test_new_contact_goes_first(self, now):
        first = create_contact({'name': 'First'}, now=now)
        second = create_contact({'name': 'Second'}, now=now + 1)
        assert [c.id for c in list_all_contacts()] == [second.id, first.id]

    def test_blank_name_is_rejected(self):
        with pytest.raises(ValidationError, match='Name is required'):
            create_contact({'name': '   ', 'phone': '555'})
        assert list_all_contacts() == []

    def test_unknown_field_is_rejected(self):
        with pytest.raises(ValidationError, match='favourite_colour'):
            create_contact({'name': 'Jane', 'favourite_colour': 'blue'})

    def test_ids_are_unique(self):
        ids = {create_contact({'name': f'C{i}'}).id for i in range(25)}
        assert len(ids) == 25

    def test_emits_created(self):
        with patch('jibacrm.engine.crm.bus.emit') as emit:
            c = create_contact({'name': 'Jane'})
        emit.assert_called_once()
        assert emit.call_args[0][0] == EVENT_CONTACT_CREATED
        assert emit.call_args[0][1]['contact_id'] == c.id

    def test_returned_contact_is_a_copy(self):
        c = create_contact({'name': 'Jane'})
        c.name = 'Mutated'
        assert get_contact(c.id).name == 'Jane'


# ---------------------------------------------------------------------------
# get / update / delete
# ---------------------------------------------------------------------------

class TestGetUpdateDelete:

    def test_get_missing_returns_none(self):
        assert get_contact('nope') is None

    def test_update_patches_only_given_fields(self, now):
        c = create_contact({'name': 'Jane', 'company': 'Acme'}, now=now)
        updated = update_contact(c.id, {'company': 'Globex', 'requirements': '2k sq ft'})
        assert updated.company == 'Globex'
        assert updated.requirements == '2k sq ft'
        assert updated.name == 'Jane'

    def test_update_does_not_bump_activity_by_itself(self, now):
        c = create_contact({'name': 'Jane'}, now=now)
        assert update_contact(c.id, {'company': 'Globex'}).last_activity == now

    def test_update_with_explicit_activity(self, now):
        c = create_contact({'name': 'Jane'}, now=now)
        assert update_contact(c.id, {'last_activity': now + 5}).last_activity == now + 5

    def test_update_missing_contact_returns_none(self):
        assert update_contact('nope', {'company': 'x'}) is None

    def test_update_id_is_rejected(self):
        c = create_contact({'name': 'Jane'})
        with pytest.raises(ValidationError):
            update_contact(c.id, {'id': 'other'})
        assert get_contact(c.id) is not None

    def test_empty_update_changes_nothing(self, now):
        c = create_contact({'name': 'Jane'}, now=now)
        with patch('jibacrm.engine.crm.bus.emit') as emit:
            assert update_contact(c.id, {}) == c
        emit.assert_not_called()

    def test_update_emits_updated(self):
        c = create_contact({'name': 'Jane'})
        with patch('jibacrm.engine.crm.bus.emit') as emit:
            update_contact(c.id, {'email': 'j@x.com'})
        assert emit.call_args[0][0] == EVENT_CONTACT_UPDATED

    def test_delete(self):
        c = create_contact({'name': 'Jane'})
        with patch('jibacrm.engine.crm.bus.emit') as emit:
            assert delete_contact(c.id) is True
        assert emit.call_args[0][0] == EVENT_CONTACT_DELETED
        assert get_contact(c.id) is None

    def test_delete_missing_returns_false(self):
        assert delete_contact('nope') is False

    def test_delete_leaves_follow_ups_in_place(self, now):
        c = create_contact({'name': 'Jane'})
        schedule_follow_up(c.id, 3, now=now)
        delete_contact(c.id)
        assert [f.contact_id for f in list_follow_ups()] == [c.id]


# ---------------------------------------------------------------------------
# add_note
# ---------------------------------------------------------------------------

class TestAddNote:

    def test_prepends_and_bumps_activity(self, now):
        c = create_contact({'name': 'Jane'}, now=now)
        add_note(c.id, 'first', now=now + 10)
        updated = add_note(c.id, 'second', now=now + 20)
        assert [n.text for n in updated.notes] == ['second', 'first']
        assert updated.last_activity == now + 20
        assert updated.notes[0].timestamp == now + 20
        assert updated.notes[0].type == 'note'

    def test_note_ids_are_unique(self):
        c = create_contact({'name': 'Jane'})
        add_note(c.id, 'a')
        updated = add_note(c.id, 'b')
        assert updated.notes[0].id != updated.notes[1].id

    def test_other_note_types(self):
        c = create_contact({'name': 'Jane'})
        assert add_note(c.id, 'No Answer', 'outcome').notes[0].type == 'outcome'

    def test_unknown_type_is_rejected(self):
        c = create_contact({'name': 'Jane'})
        with pytest.raises(ValidationError):
            add_note(c.id, 'x', 'email')

    def test_blank_text_is_rejected(self):
        c = create_contact({'name': 'Jane'})
        with pytest.raises(ValidationError):
            add_note(c.id, '  ')

    def test_missing_contact_returns_none(self):
        assert add_note('nope', 'hello') is None

    def test_emits_note_added_with_note_and_contact(self):
        c = create_contact({'name': 'Jane'})
        with patch('jibacrm.engine.crm.bus.emit') as emit:
            add_note(c.id, 'Sent LOI today')
        name, data = emit.call_args[0]
        assert name == EVENT_NOTE_ADDED
        assert data['note'].text == 'Sent LOI today'
        assert data['contact'].id == c.id


# ---------------------------------------------------------------------------
# replace_all_contacts
# ---------------------------------------------------------------------------

class TestReplaceAll:

    def test_keeps_given_order(self):
        a = create_contact({'name': 'A'})
        b = create_contact({'name': 'B'})
        with patch('jibacrm.engine.crm.bus.emit') as emit:
            assert replace_all_contacts([a, b]) == 2
        assert emit.call_args[0][0] == EVENT_CONTACTS_REPLACED
        assert [c.id for c in list_all_contacts()] == [a.id, b.id]

    def test_duplicate_ids_are_rejected(self):
        a = create_contact({'name': 'A'})
        with pytest.raises(ValidationError, match='Duplicate'):
            replace_all_contacts([a, a])
        assert len(list_all_contacts()) == 1


# ---------------------------------------------------------------------------
# import_contacts
# ---------------------------------------------------------------------------

class TestImportContacts:

    def test_skips_records_without_name_or_phone(self, now):
        count = import_contacts([
            {'name': 'Jane', 'phone': '555-0001'},
            {'name': 'No Phone'},
            {'name': 'Bob', 'phone': '555-0002'},
        ], now=now)
        assert count == 2
        assert len(list_all_contacts()) == 2

    def test_batch_is_prepended_in_input_order(self, now):
        existing = create_contact({'name': 'Existing'}, now=now)
        import_contacts([
            {'name': 'One', 'phone': '1'},
            {'name': 'Two', 'phone': '2'},
        ], now=now + 1)
        assert [c.name for c in list_all_contacts()] == ['One', 'Two', existing.name]

    def test_no_deduplication(self):
        import_contacts([{'name': 'Jane', 'phone': '555'}])
        import_contacts([{'name': 'Jane', 'phone': '555'}])
        contacts = list_all_contacts()
        assert len(contacts) == 2
        assert contacts[0].id != contacts[1].id

    def test_fresh_ids_and_activity(self, now):
        import_contacts([{'name': 'Jane', 'phone': '555', 'notes': [
            {'id': 'old', 'text': 'imported history', 'timestamp': 5, 'type': 'note'},
        ]}], now=now)
        c = list_all_contacts()[0]
        assert c.last_activity == now
        assert c.notes[0].text == 'imported history'
        assert c.notes[0].timestamp == 5

    def test_notes_without_timestamp_get_now(self, now):
        import_contacts([{'name': 'Jane', 'phone': '555', 'notes': [Note(text='csv note')]}], now=now)
        note = list_all_contacts()[0].notes[0]
        assert note.timestamp == now
        assert note.id

    def test_nothing_valid_writes_nothing(self, repository):
        with patch('jibacrm.engine.crm.bus.emit') as emit:
            assert import_contacts([{'name': 'x'}]) == 0
        emit.assert_not_called()

    def test_emits_imported(self):
        with patch('jibacrm.engine.crm.bus.emit') as emit:
            import_contacts([{'name': 'Jane', 'phone': '555'}])
        assert emit.call_args[0][0] == EVENT_CONTACTS_IMPORTED
        assert emit.call_args[0][1]['count'] == 1


# ---------------------------------------------------------------------------
# delete_all_contacts / settings
# ---------------------------------------------------------------------------

def test_delete_all_clears_contacts_and_follow_ups_but_keeps_settings(now):
    c = create_contact({'name': 'Jane'})
    schedule_follow_up(c.id, 1, now=now)
    update_settings(default_settings())
    with patch('jibacrm.engine.crm.bus.emit') as emit:
        assert delete_all_contacts() == 1
    assert emit.call_args[0][0] == EVENT_CONTACTS_CLEARED
    assert list_all_contacts() == []
    assert list_follow_ups() == []
    assert len(get_settings().deal_stages) == 5


def test_update_settings_replaces_whole_record(repository):
    settings = get_settings()
    settings.deal_stages = [DealStage('x1', 'Prospect', 'blue')]
    with patch('jibacrm.engine.crm.bus.emit') as emit:
        saved = update_settings(settings)
    assert emit.call_args[0][0] == EVENT_SETTINGS_UPDATED
    assert [s.name for s in saved.deal_stages] == ['Prospect']
    assert repository.records['settings']['dealStages'][0]['name'] == 'Prospect'


def test_get_settings_returns_a_copy():
    settings = get_settings()
    settings.lead_types.clear()
    assert len(get_settings().lead_types) == 8


def test_stale_labels_are_tolerated():
    c = create_contact({'name': 'Jane', 'deal_stage': 'Retired Stage'})
    assert get_contact(c.id).deal_stage == 'Retired Stage'
