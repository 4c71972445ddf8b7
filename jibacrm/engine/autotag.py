"""
Auto-tag - advisory deal-stage suggestion for new notes.

When a plain note is added, the note text and the configured deal stages are
sent to the AI backend on a background worker. The note save never waits for
it: a missing key, a timeout or an error just means no suggestion.

A suggestion is published as EVENT_STAGE_SUGGESTED. It is applied only when
AUTOTAG_AUTO_APPLY is on, or when the caller confirms it through
apply_suggested_stage(), which is safe to call more than once.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Dict, List, Optional

from jibacrm.bus.events import bus, EventBus, EVENT_NOTE_ADDED, EVENT_STAGE_SUGGESTED
from jibacrm.config import config
from jibacrm.engine import actions, crm
from jibacrm.engine.ai_client import call_ai, has_credentials
from jibacrm.models import Contact, DealStage

logger = logging.getLogger(__name__)

_REQUEST_TIMEOUT_SECONDS = 15.0

_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='jibacrm-autotag')
_pending: Dict[str, Future] = {}
_pending_lock = threading.Lock()
_warned: set = set()
_installed_on: List[EventBus] = []


def _warn_once(key: str, message: str) -> None:
    if key in _warned:
        logger.debug(message)
        return
    _warned.add(key)
    logger.warning(message)


def reset_warnings() -> None:
    _warned.clear()


# =============================================================================
# CLASSIFICATION
# =============================================================================

def build_prompt(note_text: str, stage_names: List[str]) -> str:
    """Stages are listed in taxonomy order; priority runs from the last stage back."""
    priority = list(reversed(stage_names))
    return f"""Analyze the following text from a real estate broker's call note.
Your task is to identify if the note implies a specific deal stage for the contact.
The possible deal stages are: {', '.join(stage_names)}.

RULES:
- Respond with ONLY the deal stage name if it is strongly implied.
- If no stage is clearly implied, respond with "None".
- Prioritize the stage based on this order (highest to lowest): {' > '.join(priority)}.
- "sent LOI" or "letter of intent" maps to "LOI".
- "under contract" or "signed contract" maps to "Contract".
- "CCO received" or "closing" maps to "CCO".
- "showings" or "touring" maps to "Showings".

Note Text: "{note_text}"

Suggested Deal Stage:"""


def parse_suggestion(reply: str, stage_names: List[str]) -> Optional[str]:
    """Only a reply that is exactly one of the stage names counts."""
    text = (reply or '').strip().strip('"').strip()
    return text if text in stage_names else None


def suggest_deal_stage(note_text: str, deal_stages: List[DealStage], model: Optional[str] = None) -> Optional[str]:
    """
    Ask the AI backend which stage the note implies.
    Returns a stage name or None; never raises.
    """
    if not config.AUTOTAG_ENABLED:
        return None
    stage_names = [s.name for s in deal_stages if s.name]
    if not stage_names or not (note_text or '').strip():
        return None

    model = model or config.AUTOTAG_MODEL
    if not has_credentials(model):
        _warn_once('credentials', f"No API key for '{model}'. Deal-stage suggestions are disabled.")
        return None

    try:
        reply = call_ai(build_prompt(note_text, stage_names), model=model,
                        max_tokens=20, timeout=_REQUEST_TIMEOUT_SECONDS)
    except (RuntimeError, ValueError) as e:
        _warn_once('call', f"Deal-stage suggestion failed: {e}")
        return None

    suggestion = parse_suggestion(reply, stage_names)
    logger.debug(f"suggest_deal_stage: reply={reply!r} → {suggestion!r}")
    return suggestion


# =============================================================================
# BACKGROUND FLOW
# =============================================================================

def _suggest_for_contact(contact_id: str, note_text: str, deal_stages: List[DealStage],
                         current_stage: Optional[str]) -> Optional[str]:
    stage = suggest_deal_stage(note_text, deal_stages)
    if not stage or stage == current_stage:
        return None

    logger.info(f"Suggested deal stage '{stage}' for contact {contact_id}")
    bus.emit(EVENT_STAGE_SUGGESTED, {'contact_id': contact_id, 'stage': stage})
    if config.AUTOTAG_AUTO_APPLY:
        apply_suggested_stage(contact_id, stage)
    return stage


def request_stage_suggestion(contact_id: str, note_text: str, deal_stages: List[DealStage],
                             current_stage: Optional[str] = None) -> Future:
    """Queue a suggestion on the background worker and return immediately."""
    future = _executor.submit(_suggest_for_contact, contact_id, note_text, list(deal_stages), current_stage)
    with _pending_lock:
        _pending[contact_id] = future
    return future


def wait_for_suggestion(contact_id: str, timeout: Optional[float] = None) -> Optional[str]:
    """
    Wait up to ``timeout`` seconds for the latest pending suggestion for a contact.
    Returns None if there is none, it found nothing, or it is still running.
    """
    with _pending_lock:
        future = _pending.pop(contact_id, None)
    if future is None:
        return None
    try:
        return future.result(timeout=timeout if timeout is not None else config.AUTOTAG_WAIT_SECONDS)
    except FutureTimeout:
        logger.debug(f"wait_for_suggestion: contact {contact_id} still pending after {timeout}s")
        return None
    except Exception as e:
        _warn_once('worker', f"Deal-stage suggestion worker failed: {e}")
        return None


def apply_suggested_stage(contact_id: str, stage: str) -> Optional[Contact]:
    """Move the contact to the suggested stage unless it is already there."""
    contact = crm.get_contact(contact_id)
    if contact is None:
        return None
    if contact.deal_stage == stage:
        return contact
    return actions.change_deal_stage(contact_id, stage)


def on_note_added(event_data: dict) -> None:
    """Bus handler: only plain notes are classified."""
    note = event_data.get('note')
    contact = event_data.get('contact')
    if note is None or contact is None or note.type != 'note':
        return
    if not event_data.get('suggest', True):
        return
    if not config.AUTOTAG_ENABLED:
        return
    settings = crm.get_settings()
    request_stage_suggestion(contact.id, note.text, settings.deal_stages, contact.deal_stage)


def install(event_bus: EventBus = bus) -> None:
    """Start classifying new notes on the given bus. Idempotent."""
    if event_bus in _installed_on:
        return
    event_bus.on(EVENT_NOTE_ADDED, on_note_added)
    _installed_on.append(event_bus)


def uninstall(event_bus: EventBus = bus) -> None:
    if event_bus in _installed_on:
        event_bus.off(EVENT_NOTE_ADDED, on_note_added)
        _installed_on.remove(event_bus)
