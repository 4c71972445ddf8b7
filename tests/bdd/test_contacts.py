from pytest_bdd import scenarios, when, then, parsers
from jibacrm.cli.main import cli
from jibacrm.engine.crm import get_contact

scenarios("features/contacts.feature")


@when("the broker lists contacts")
def list_contacts(runner, context):
    context["result"] = runner.invoke(cli, ["contacts", "list"])


@when("the broker views the contact")
def view_contact(runner, context):
    context["result"] = runner.invoke(cli, ["contacts", "show", context["contact"].id])


@when(parsers.parse('the broker logs the outcome "{outcome}"'))
def log_outcome(runner, context, outcome):
    context["result"] = runner.invoke(cli, ["contacts", "outcome", context["contact"].id, outcome])


@when(parsers.parse('the broker moves the contact to "{stage}"'))
def move_to_stage(runner, context, stage):
    context["result"] = runner.invoke(cli, ["contacts", "stage", context["contact"].id, stage])


@when("the broker merges duplicates")
def merge_duplicates(runner, context):
    context["result"] = runner.invoke(cli, ["merge"])


@then(parsers.parse("the contact has {count:d} entries in the note history"))
def note_count(context, count):
    assert len(get_contact(context["contact"].id).notes) == count


@then(parsers.parse('the contact is in deal stage "{stage}"'))
def in_stage(context, stage):
    assert get_contact(context["contact"].id).deal_stage == stage
