"""
Shared fixtures and step definitions for BDD tests.

- runner, context: available to all scenario files in this directory
- autouse: a fresh in-memory store, a clean event bus, UTC, no AI calls,
  and no log file creation
- steps shared across feature files: the contact set-up steps and
  'the output contains'
"""

import pytest
from unittest.mock import patch
from click.testing import CliRunner
from pytest_bdd import given, then, parsers

from jibacrm.bus.events import bus
from jibacrm.config import config
from jibacrm.db.repository import MemoryRepository
from jibacrm.db.store import Store, set_store
from jibacrm.engine import autotag
from jibacrm.engine.crm import create_contact, list_all_contacts


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def context():
    """Mutable dict shared between Given/When/Then steps within a scenario."""
    return {}


@pytest.fixture(autouse=True)
def fresh_store():
    previous = set_store(Store(MemoryRepository()))
    yield
    set_store(previous)


@pytest.fixture(autouse=True)
def quiet_environment():
    bus.clear()
    with patch.object(config, 'TIMEZONE', 'UTC'), \
         patch.object(config, 'AUTOTAG_ENABLED', False):
        yield
    autotag.uninstall()
    bus.clear()


@pytest.fixture(autouse=True)
def no_logging():
    with patch("jibacrm.cli.main.configure_logging"):
        yield


@given("there are no contacts in the system")
def no_contacts():
    assert list_all_contacts() == []


@given(parsers.parse('a contact "{name}" with phone "{phone}" exists'))
def contact_exists(context, name, phone):
    context["contact"] = create_contact({'name': name, 'phone': phone})


@then(parsers.parse('the output contains "{text}"'))
def output_contains(context, text):
    assert text in context["result"].output, (
        f"Expected {text!r} in output:\n{context['result'].output}"
    )


@then(parsers.parse("there are {count:d} contacts in the system"))
def contact_count(count):
    assert len(list_all_contacts()) == count
