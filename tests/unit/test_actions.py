"""
Unit tests for the one-click contact actions (jibacrm/engine/actions.py).
"""

from jibacrm.engine.actions import (
    FOLLOWUP_CUSTOM_KEY, change_deal_stage, change_lead_type, complete_follow_up_action,
    log_outcome, outcome_action_key, schedule_follow_up_action,
)
from jibacrm.engine.crm import create_contact, get_contact
from jibacrm.engine.followups import get_open_follow_up, list_follow_ups

DAY = 24 * 60 * 60 * 1000


def test_outcome_action_key():
    assert outcome_action_key('No Answer') == 'outcome-No Answer'


def test_log_outcome_adds_outcome_note_once_per_day(now):
    c = create_contact({'name': 'Jane'}, now=now - DAY)
    updated = log_outcome(c.id, 'No Answer', now=now)
    assert updated.notes[0].text == 'No Answer'
    assert updated.notes[0].type == 'outcome'
    assert updated.last_activity == now
    assert updated.last_action_timestamps['outcome-No Answer'] == now

    assert log_outcome(c.id, 'No Answer', now=now + 1000) is None
    assert len(get_contact(c.id).notes) == 1

    assert log_outcome(c.id, 'Bad Number', now=now + 1000) is not None
    assert log_outcome(c.id, 'No Answer', now=now + DAY) is not None


def test_log_outcome_unknown_contact(now):
    assert log_outcome('nope', 'No Answer', now=now) is None


def test_schedule_follow_up_action_writes_system_note(now):
    c = create_contact({'name': 'Jane'})
    updated = schedule_follow_up_action(c.id, 7, now=now)
    assert updated.notes[0].text == 'Follow-up scheduled for 2026-03-17.'
    assert updated.notes[0].type == 'system'
    assert get_open_follow_up(c.id) is not None
    assert FOLLOWUP_CUSTOM_KEY in updated.last_action_timestamps


def test_schedule_follow_up_action_is_throttled_per_key(now):
    c = create_contact({'name': 'Jane'})
    schedule_follow_up_action(c.id, 7, now=now)
    assert schedule_follow_up_action(c.id, 3, now=now) is None
    assert schedule_follow_up_action(c.id, 3, action_key='followup-3', now=now) is not None


def test_dont_call_again(now):
    c = create_contact({'name': 'Jane'})
    schedule_follow_up_action(c.id, 7, action_key='followup-7', now=now)
    updated = schedule_follow_up_action(c.id, None, action_key='followup-never', now=now)
    assert updated.notes[0].text == "Marked as 'Don't call again'."
    assert get_open_follow_up(c.id) is None


def test_complete_follow_up_action(now):
    c = create_contact({'name': 'Jane'})
    schedule_follow_up_action(c.id, 1, now=now)
    updated = complete_follow_up_action(c.id, now=now)
    assert updated.notes[0].text == 'Follow-up marked as done.'
    assert [f.completed for f in list_follow_ups()] == [True]


def test_change_deal_stage(now):
    c = create_contact({'name': 'Jane'}, now=now - DAY)
    updated = change_deal_stage(c.id, 'Contract', now=now)
    assert updated.deal_stage == 'Contract'
    assert updated.last_activity == now
    assert updated.notes[0].text == 'Deal stage updated to: Contract'
    assert updated.notes[0].type == 'autotag'


def test_change_deal_stage_unknown_contact(now):
    assert change_deal_stage('nope', 'LOI', now=now) is None


def test_change_lead_type_counts_as_activity(now):
    c = create_contact({'name': 'Jane'}, now=now - DAY)
    updated = change_lead_type(c.id, 'Investor', now=now)
    assert updated.lead_type == 'Investor'
    assert updated.last_activity == now
    assert updated.notes == []
