#!/usr/bin/env python3
"""
Jiba CRM Terminal CLI
Command-line interface for all CRM operations.
"""

import logging
from datetime import date
from pathlib import Path
from typing import Optional

import click

from jibacrm.config import config
from jibacrm.db.store import get_store
from jibacrm.engine import actions, autotag, crm, dedup, exporter, followups, query
from jibacrm.engine.clock import format_timestamp, local_date, now_ms
from jibacrm.errors import DecodeError, ValidationError
from jibacrm import importers
from jibacrm.logging_config import configure_logging, log_call
from jibacrm.models import Contact, ContactQuery, SORT_ORDERS, default_settings


def _short_id(contact_id: str) -> str:
    return contact_id[:8]


def _find_contact(contact_id: str, command: str) -> Optional[Contact]:
    """Resolve a full id or a unique id prefix. Echoes the error when nothing matches."""
    logger = logging.getLogger("jibacrm")
    contact = crm.get_contact(contact_id)
    if contact:
        return contact

    matches = [c for c in crm.list_all_contacts() if c.id.startswith(contact_id)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        click.echo(f"Contact ID {contact_id} is ambiguous ({len(matches)} matches).", err=True)
        return None

    logger.warning(f"{command} | contact_id={contact_id} not found")
    click.echo(f"Contact ID {contact_id} not found.", err=True)
    return None


def _parse_map_options(pairs) -> dict:
    """('Phone=Mobile', 'Notes=') -> {'Phone': 'Mobile', 'Notes': None}"""
    overrides = {}
    for pair in pairs:
        if '=' not in pair:
            raise click.BadParameter(f"expected FIELD=HEADER, got {pair!r}", param_hint="--map")
        label, header = pair.split('=', 1)
        overrides[label.strip()] = header.strip() or None
    return overrides


@click.group()
def cli():
    """Jiba CRM - Contact & Deal Tracking"""
    configure_logging()
    autotag.install()


# =============================================================================
# CONTACTS COMMANDS
# =============================================================================

@cli.group()
def contacts():
    """Manage contacts, notes and deal stages"""
    pass


@contacts.command('list')
@click.option('--search', help='Match name, company or phone')
@click.option('--lead-type', help='Filter by lead type')
@click.option('--deal-stage', help='Filter by deal stage')
@click.option('--sort', 'sort_order', type=click.Choice(SORT_ORDERS), default='activity',
              show_default=True, help='Sort order')
@click.option('--page', default=1, show_default=True, help='Page number')
@click.option('--page-size', default=None, type=int,
              help=f'Contacts per page (default: {config.DEFAULT_PAGE_SIZE}, 0 = all)')
@log_call
def contacts_list(search, lead_type, deal_stage, sort_order, page, page_size):
    """List contacts"""
    page_size = config.DEFAULT_PAGE_SIZE if page_size is None else page_size
    result = query.query_contacts(ContactQuery(
        page=page,
        page_size=page_size,
        search_term=search,
        lead_type=lead_type,
        deal_stage=deal_stage,
        sort_order=sort_order,
    ))

    if not result.items:
        click.echo("No contacts found.")
        return

    shown_from = (page - 1) * page_size + 1 if page_size > 0 else 1
    click.echo(f"\nShowing {shown_from}-{shown_from + len(result.items) - 1} of {result.total_count} contacts:\n")
    click.echo(f"{'ID':<10} {'Name':<26} {'Company':<20} {'Phone':<16} {'Lead Type':<11} {'Stage':<10}")
    click.echo("-" * 96)

    for c in result.items:
        click.echo(
            f"{_short_id(c.id):<10} {c.name[:24]:<26} {c.company[:18]:<20} "
            f"{c.phone[:14]:<16} {(c.lead_type or '')[:9]:<11} {(c.deal_stage or '')[:9]:<10}"
        )


@contacts.command('show')
@click.argument('contact_id')
@log_call
def contacts_show(contact_id):
    """Show full contact details"""
    contact = _find_contact(contact_id, 'contacts_show')
    if not contact:
        return

    click.echo(f"\n{'='*80}")
    click.echo(f"CONTACT {contact.id}: {contact.name}")
    click.echo(f"{'='*80}")
    click.echo(f"Company:     {contact.company or '(not set)'}")
    click.echo(f"Phone:       {contact.phone or '(not set)'}")
    click.echo(f"Email:       {contact.email or '(not set)'}")
    click.echo(f"Lead Type:   {contact.lead_type or '(not set)'}")
    click.echo(f"Deal Stage:  {contact.deal_stage or '(not set)'}")
    click.echo(f"Property:    {contact.subject_property or '(not set)'}")
    click.echo(f"Requirements: {contact.requirements or '(not set)'}")
    click.echo(f"Last Active: {format_timestamp(contact.last_activity)}")

    open_follow_up = followups.get_open_follow_up(contact.id)
    if open_follow_up:
        click.echo(f"Follow-up:   {local_date(open_follow_up.due_date).isoformat()}")

    if contact.contact_note:
        click.echo(f"\nContact Note:\n{contact.contact_note}")

    click.echo(f"\n{'='*80}")
    click.echo("NOTE HISTORY")
    click.echo(f"{'='*80}")

    if contact.notes:
        for n in contact.notes:
            click.echo(f"[{format_timestamp(n.timestamp)}] ({n.type}) {n.text}")
    else:
        click.echo("No notes yet.")

    click.echo()


@contacts.command('add')
@log_call
def contacts_add():
    """Add a new contact (interactive)"""
    click.echo("\n=== ADD NEW CONTACT ===\n")

    fields = {
        'name': click.prompt("Name", type=str),
        'company': click.prompt("Company", default="", show_default=False),
        'phone': click.prompt("Phone", default="", show_default=False),
        'email': click.prompt("Email", default="", show_default=False),
        'lead_type': click.prompt("Lead type", default="", show_default=False) or None,
        'deal_stage': click.prompt("Deal stage", default="", show_default=False) or None,
        'contact_note': click.prompt("Contact note", default="", show_default=False) or None,
    }

    try:
        contact = crm.create_contact(fields)
    except ValidationError as e:
        logging.getLogger("jibacrm").warning(f"contacts_add rejected: {e}")
        click.echo(f"Error: {e}", err=True)
        return

    click.echo(f"\n✓ Created contact {_short_id(contact.id)}: {contact.name}")


@contacts.command('edit')
@click.argument('contact_id')
@click.option('--name', help='Update name')
@click.option('--company', help='Update company')
@click.option('--phone', help='Update phone')
@click.option('--email', help='Update email')
@click.option('--contact-note', help='Update the contact note')
@click.option('--subject-property', help='Update subject property')
@click.option('--requirements', help='Update requirements')
@log_call
def contacts_edit(contact_id, name, company, phone, email, contact_note, subject_property, requirements):
    """Edit a contact (use options to set fields)"""
    options = {
        'name': name,
        'company': company,
        'phone': phone,
        'email': email,
        'contact_note': contact_note,
        'subject_property': subject_property,
        'requirements': requirements,
    }
    updates = {key: value for key, value in options.items() if value is not None}

    if not updates:
        click.echo("No updates specified. Use --name, --company, --phone, --email, "
                   "--contact-note, --subject-property or --requirements", err=True)
        return

    contact = _find_contact(contact_id, 'contacts_edit')
    if not contact:
        return

    updates['last_activity'] = now_ms()
    crm.update_contact(contact.id, updates)
    click.echo(f"✓ Updated contact {_short_id(contact.id)}")


@contacts.command('delete')
@click.argument('contact_id')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@log_call
def contacts_delete(contact_id, yes):
    """Delete a contact and its note history"""
    contact = _find_contact(contact_id, 'contacts_delete')
    if not contact:
        return
    if not yes and not click.confirm(f"Delete {contact.name}?"):
        click.echo("Cancelled.")
        return

    crm.delete_contact(contact.id)
    click.echo(f"✓ Deleted contact {_short_id(contact.id)}: {contact.name}")


@contacts.command('note')
@click.argument('contact_id')
@click.argument('text')
@click.option('--no-suggest', is_flag=True, help='Do not ask for a deal-stage suggestion')
@log_call
def contacts_note(contact_id, text, no_suggest):
    """Add a note to a contact's history"""
    contact = _find_contact(contact_id, 'contacts_note')
    if not contact:
        return

    try:
        crm.add_note(contact.id, text, suggest=not no_suggest)
    except ValidationError as e:
        click.echo(f"Error: {e}", err=True)
        return
    click.echo(f"✓ Note added to {contact.name}")

    if no_suggest or not config.AUTOTAG_ENABLED:
        return

    stage = autotag.wait_for_suggestion(contact.id)
    if not stage:
        return
    if config.AUTOTAG_AUTO_APPLY:
        click.echo(f"✓ Deal stage set to {stage} (suggested from note)")
    elif click.confirm(f"Suggested deal stage: {stage}. Apply?", default=False):
        autotag.apply_suggested_stage(contact.id, stage)
        click.echo(f"✓ Deal stage set to {stage}")


@contacts.command('outcome')
@click.argument('contact_id')
@click.argument('outcome')
@log_call
def contacts_outcome(contact_id, outcome):
    """Log a call outcome (once per outcome per day)"""
    contact = _find_contact(contact_id, 'contacts_outcome')
    if not contact:
        return

    names = [o.name for o in crm.get_settings().call_outcomes]
    if outcome not in names:
        click.echo(f"Unknown outcome '{outcome}'. Choose from: {', '.join(names)}", err=True)
        return

    if actions.log_outcome(contact.id, outcome) is None:
        click.echo(f"'{outcome}' was already logged for {contact.name} today.")
        return
    click.echo(f"✓ Logged '{outcome}' for {contact.name}")


@contacts.command('stage')
@click.argument('contact_id')
@click.argument('stage')
@log_call
def contacts_stage(contact_id, stage):
    """Move a contact to a deal stage"""
    contact = _find_contact(contact_id, 'contacts_stage')
    if not contact:
        return

    names = [s.name for s in crm.get_settings().deal_stages]
    if stage not in names:
        click.echo(f"Unknown deal stage '{stage}'. Choose from: {', '.join(names)}", err=True)
        return

    actions.change_deal_stage(contact.id, stage)
    click.echo(f"✓ {contact.name} moved to {stage}")


@contacts.command('lead-type')
@click.argument('contact_id')
@click.argument('lead_type')
@log_call
def contacts_lead_type(contact_id, lead_type):
    """Set a contact's lead type"""
    contact = _find_contact(contact_id, 'contacts_lead_type')
    if not contact:
        return

    names = [t.name for t in crm.get_settings().lead_types]
    if lead_type not in names:
        click.echo(f"Unknown lead type '{lead_type}'. Choose from: {', '.join(names)}", err=True)
        return

    actions.change_lead_type(contact.id, lead_type)
    click.echo(f"✓ {contact.name} is now {lead_type}")


@contacts.command('reorder')
@click.argument('contact_id')
@click.argument('position', type=click.IntRange(min=1))
@log_call
def contacts_reorder(contact_id, position):
    """Move a contact to POSITION (1 = first) in the stored order"""
    contact = _find_contact(contact_id, 'contacts_reorder')
    if not contact:
        return

    ordered = [c for c in crm.list_all_contacts() if c.id != contact.id]
    ordered.insert(min(position, len(ordered) + 1) - 1, contact)
    crm.replace_all_contacts(ordered)
    click.echo(f"✓ Moved {contact.name} to position {min(position, len(ordered))}")


# =============================================================================
# FOLLOW-UP COMMANDS
# =============================================================================

@cli.group('followups')
def follow_ups():
    """Schedule and review follow-ups"""
    pass


def _echo_bucket(title: str, entries) -> None:
    if not entries:
        return
    click.echo(f"\n{title} ({len(entries)}):")
    for entry in entries:
        due = local_date(entry.follow_up.due_date).isoformat()
        click.echo(f"  {due}  {_short_id(entry.contact.id):<10} {entry.contact.name[:28]:<30} "
                   f"{entry.contact.phone}")


@follow_ups.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Include completed follow-ups')
@log_call
def followups_list(show_all):
    """Show overdue and upcoming follow-ups"""
    buckets = followups.categorize_follow_ups(followups.list_follow_ups(), crm.list_all_contacts())

    if not buckets.overdue and not buckets.upcoming and not (show_all and buckets.completed):
        click.echo("No follow-ups scheduled. You're all caught up! ✓")
        return

    _echo_bucket("⚠️  Overdue", buckets.overdue)
    _echo_bucket("Upcoming", buckets.upcoming)
    if show_all:
        _echo_bucket("Completed", buckets.completed)
    click.echo()


@follow_ups.command('schedule')
@click.argument('contact_id')
@click.argument('days', type=click.IntRange(min=0), required=False)
@click.option('--never', is_flag=True, help="Mark as don't call again (clears the open follow-up)")
@log_call
def followups_schedule(contact_id, days, never):
    """Schedule a follow-up DAYS from today"""
    if days is None and not never:
        click.echo("Give a number of DAYS or --never.", err=True)
        return

    contact = _find_contact(contact_id, 'followups_schedule')
    if not contact:
        return

    result = actions.schedule_follow_up_action(contact.id, None if never else days)
    if result is None:
        click.echo(f"A follow-up was already scheduled for {contact.name} today.")
        return
    click.echo(f"✓ {result.notes[0].text}")


@follow_ups.command('done')
@click.argument('contact_id')
@log_call
def followups_done(contact_id):
    """Mark a contact's open follow-up as done"""
    contact = _find_contact(contact_id, 'followups_done')
    if not contact:
        return

    if followups.get_open_follow_up(contact.id) is None:
        click.echo(f"{contact.name} has no open follow-up.")
        return

    actions.complete_follow_up_action(contact.id)
    click.echo(f"✓ Follow-up for {contact.name} marked as done")


# =============================================================================
# IMPORT / EXPORT
# =============================================================================

@cli.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--map', 'map_pairs', multiple=True, metavar='FIELD=HEADER',
              help='Override a CSV column mapping (empty HEADER = skip the field)')
@click.option('--dry-run', is_flag=True, help='Decode and show the mapping without importing')
@log_call
def import_cmd(path, map_pairs, dry_run):
    """Import contacts from a CSV, VCF or JSON file"""
    logger = logging.getLogger("jibacrm")
    try:
        batch = importers.decode_file(path, _parse_map_options(map_pairs))
    except (DecodeError, ValidationError) as e:
        logger.warning(f"import of {path} failed: {e}")
        click.echo(f"Error: {e}", err=True)
        return

    if batch.mapping:
        click.echo("\nColumn mapping:")
        for label, header in batch.mapping.items():
            click.echo(f"  {label:<14} <- {header or '(unmapped)'}")

    click.echo(f"\n{len(batch.records)} valid contacts in {path.name}"
               + (f" ({batch.skipped} skipped: name and phone are required)" if batch.skipped else ""))

    if dry_run:
        click.echo("Dry run: nothing imported.")
        return

    count = crm.import_contacts(batch.records)
    click.echo(f"✓ Imported {count} contacts")


@cli.command('export')
@click.option('--format', 'fmt', type=click.Choice(['json', 'csv']), default='json', show_default=True)
@click.option('--output', type=click.Path(dir_okay=False, path_type=Path),
              help='Output file (default: jibacrm-export-<date>.<format>)')
@log_call
def export_cmd(fmt, output):
    """Export all data (JSON) or contacts (CSV)"""
    path = output or Path(f"jibacrm-export-{date.today().isoformat()}.{fmt}")
    try:
        count = exporter.export_json(path) if fmt == 'json' else exporter.export_csv(path)
    except OSError as e:
        logging.getLogger("jibacrm").error(f"export to {path} failed: {e}", exc_info=True)
        click.echo(f"Error: {e}", err=True)
        return
    click.echo(f"✓ Exported {count} contacts to {path}")


# =============================================================================
# MAINTENANCE
# =============================================================================

@cli.command('merge')
@log_call
def merge():
    """Merge contacts that share a phone number"""
    merged = dedup.merge_duplicates()
    if merged:
        click.echo(f"✓ Merged {merged} duplicate contacts")
    else:
        click.echo("No duplicates found.")


@cli.command('delete-all')
@click.confirmation_option(prompt='Delete ALL contacts and follow-ups? This cannot be undone.')
@log_call
def delete_all():
    """Delete every contact and follow-up (settings are kept)"""
    removed = crm.delete_all_contacts()
    click.echo(f"✓ Deleted {removed} contacts and all follow-ups")


@cli.group()
def settings():
    """Lead types, deal stages and call outcomes"""
    pass


@settings.command('show')
@log_call
def settings_show():
    """Show the label taxonomies"""
    current = crm.get_settings()
    click.echo("\nLead types:    " + ", ".join(t.name for t in current.lead_types))
    click.echo("Deal stages:   " + " > ".join(s.name for s in current.deal_stages))
    click.echo("Call outcomes: " + ", ".join(o.name for o in current.call_outcomes))
    click.echo()


@settings.command('reset')
@click.confirmation_option(prompt='Reset lead types, deal stages and call outcomes to the defaults?')
@log_call
def settings_reset():
    """Restore the default taxonomies"""
    crm.update_settings(default_settings())
    click.echo("✓ Settings reset to defaults")


@cli.command('status')
@log_call
def status():
    """Show where data is stored"""
    store = get_store()
    with store.read() as state:
        counts = (len(state.contacts), len(state.follow_ups))
    click.echo(f"Storage:   {store.repository.name}"
               + (" (DEGRADED: changes are not being saved)" if store.degraded else ""))
    click.echo(f"Contacts:  {counts[0]}")
    click.echo(f"Follow-ups: {counts[1]}")


# =============================================================================
# MAIN
# =============================================================================

if __name__ == '__main__':
    cli()
