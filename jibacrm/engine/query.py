"""
Contact Query Engine
Filter, sort and paginate the contact list. Read-only: nothing here mutates
the store, and every returned contact is a copy.
"""

import copy
import logging
from typing import List

from jibacrm.db.store import get_store
from jibacrm.errors import ValidationError
from jibacrm.models import Contact, ContactPage, ContactQuery, SORT_ORDERS

logger = logging.getLogger(__name__)


def last_name(name: str) -> str:
    """Last whitespace-delimited token of a name ('' for a blank name)."""
    tokens = name.split()
    return tokens[-1] if tokens else ''


def matches_search(contact: Contact, term: str) -> bool:
    """Case-insensitive substring match on name, company or raw phone."""
    needle = term.lower()
    return (
        needle in (contact.name or '').lower()
        or needle in (contact.company or '').lower()
        or needle in (contact.phone or '').lower()
    )


def filter_contacts(contacts: List[Contact], query: ContactQuery) -> List[Contact]:
    results = list(contacts)
    if query.lead_type:
        results = [c for c in results if c.lead_type == query.lead_type]
    if query.deal_stage:
        results = [c for c in results if c.deal_stage == query.deal_stage]
    if query.search_term:
        results = [c for c in results if matches_search(c, query.search_term)]
    return results


def sort_contacts(contacts: List[Contact], sort_order: str) -> List[Contact]:
    """Stable sort; ties keep the collection order."""
    if sort_order not in SORT_ORDERS:
        raise ValidationError(f"Unknown sort order {sort_order!r}. Choose from: {', '.join(SORT_ORDERS)}")

    if sort_order == 'firstName':
        return sorted(contacts, key=lambda c: c.name.casefold())
    if sort_order == 'lastName':
        return sorted(contacts, key=lambda c: last_name(c.name).casefold())
    return sorted(contacts, key=lambda c: c.last_activity, reverse=True)


def paginate(contacts: List[Contact], page: int, page_size: int) -> List[Contact]:
    if page_size <= 0:
        return contacts
    start = (max(page, 1) - 1) * page_size
    return contacts[start:start + page_size]


def apply_query(contacts: List[Contact], query: ContactQuery) -> ContactPage:
    """
    Pure query over an in-memory list. Filtering and sorting cover the whole
    matching set before the page is sliced, so total_count never depends on
    page / page_size.
    """
    matched = sort_contacts(filter_contacts(contacts, query), query.sort_order)
    return ContactPage(
        items=paginate(matched, query.page, query.page_size),
        total_count=len(matched),
    )


def query_contacts(query: ContactQuery = None) -> ContactPage:
    """Run a query against the store. Returns copies."""
    query = query or ContactQuery()
    with get_store().read() as state:
        page = apply_query(state.contacts, query)
        page.items = copy.deepcopy(page.items)

    logger.debug(f"query_contacts: {len(page.items)}/{page.total_count} "
                 f"(search={query.search_term!r}, lead_type={query.lead_type}, "
                 f"deal_stage={query.deal_stage}, sort={query.sort_order}, page={query.page})")
    return page
