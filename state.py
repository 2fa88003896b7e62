"""
Application state for the invoice editor.

``AppState`` carries the three persisted slots (profile, draft, collection)
plus the active currency. Transitions are plain functions that take a state
and return a new one; ``Workspace`` applies them and mirrors the slots a
transition touched to the store.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from pydantic import TypeAdapter

import config
import repository
from schemas import ISSUER_FIELDS, CompanyProfile, Invoice, LineItem
from storage import COLLECTION_KEY, DRAFT_KEY, PROFILE_KEY, KeyValueStore
from remote import Remote, Unconfigured

logger = logging.getLogger(__name__)

DUE_IN_DAYS = 14
DEFAULT_TERMS = "Payment is due within 14 days of the invoice date."

PROFILE_SCHEMA = TypeAdapter(CompanyProfile)
DRAFT_SCHEMA = TypeAdapter(Invoice)
COLLECTION_SCHEMA = TypeAdapter(List[Invoice])


class InvoiceNotFound(LookupError):
    pass


@dataclass(frozen=True)
class AppState:
    profile: CompanyProfile
    draft: Invoice
    collection: List[Invoice]
    currency: str


def default_profile() -> CompanyProfile:
    return CompanyProfile(companyName="Your Company")


def generate_invoice_no(today: date) -> str:
    return f"INV-{today:%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


def reconcile(draft: Invoice, profile: CompanyProfile, currency: str) -> Invoice:
    """
    Copy issuer details from the profile onto the draft.

    Empty profile fields never overwrite what the draft already has, so
    hand-edited issuer details survive partial profile edits. Currency is
    always taken.
    """
    changes: Dict[str, Any] = {
        field: getattr(profile, field)
        for field in ISSUER_FIELDS
        if getattr(profile, field)
    }
    changes["currency"] = currency
    return draft.model_copy(update=changes)


def blank_invoice(profile: CompanyProfile, currency: str, today: Optional[date] = None) -> Invoice:
    today = today or date.today()
    draft = Invoice(
        items=[LineItem()],
        terms=DEFAULT_TERMS,
        invoiceNo=generate_invoice_no(today),
        invoiceDate=today.isoformat(),
        dueDate=(today + timedelta(days=DUE_IN_DAYS)).isoformat(),
        currency=currency,
    )
    return reconcile(draft, profile, currency)


def initial_state(today: Optional[date] = None) -> AppState:
    profile = default_profile()
    currency = config.DEFAULT_CURRENCY.strip().upper()
    return AppState(
        profile=profile,
        draft=blank_invoice(profile, currency, today),
        collection=[],
        currency=currency,
    )


def load_state(store: KeyValueStore) -> AppState:
    defaults = initial_state()
    profile = store.read(PROFILE_KEY, defaults.profile, PROFILE_SCHEMA)
    draft = store.read(DRAFT_KEY, defaults.draft, DRAFT_SCHEMA)
    collection = store.read(COLLECTION_KEY, defaults.collection, COLLECTION_SCHEMA)
    return AppState(
        profile=profile,
        draft=draft,
        collection=collection,
        currency=draft.currency or defaults.currency,
    )


# -------------------------------
# Transitions
# -------------------------------

def update_profile(state: AppState, profile: CompanyProfile) -> AppState:
    return replace(state, profile=profile, draft=reconcile(state.draft, profile, state.currency))


def set_logo(state: AppState, logo_url: str) -> AppState:
    return update_profile(state, state.profile.model_copy(update={"logoUrl": logo_url}))


def set_currency(state: AppState, currency: str) -> AppState:
    currency = currency.strip().upper()
    return replace(state, currency=currency, draft=reconcile(state.draft, state.profile, currency))


def update_draft(state: AppState, changes: Dict[str, Any]) -> AppState:
    # revalidate so numeric fields go through coercion
    data = state.draft.model_dump()
    data.update(changes)
    data["currency"] = state.currency
    return replace(state, draft=Invoice.model_validate(data))


def add_item(state: AppState, item: Optional[LineItem] = None) -> AppState:
    items = list(state.draft.items) + [item or LineItem()]
    return replace(state, draft=state.draft.model_copy(update={"items": items}))


def update_item(state: AppState, index: int, changes: Dict[str, Any]) -> AppState:
    items = [item.model_copy() for item in state.draft.items]
    if not 0 <= index < len(items):
        raise IndexError(f"No line item at position {index}")
    items[index] = LineItem.model_validate({**items[index].model_dump(), **changes})
    return replace(state, draft=state.draft.model_copy(update={"items": items}))


def remove_item(state: AppState, index: int) -> AppState:
    items = list(state.draft.items)
    if not 0 <= index < len(items):
        raise IndexError(f"No line item at position {index}")
    del items[index]
    return replace(state, draft=state.draft.model_copy(update={"items": items}))


def new_draft(state: AppState, today: Optional[date] = None) -> AppState:
    return replace(state, draft=blank_invoice(state.profile, state.currency, today))


def save_draft(state: AppState) -> AppState:
    record = state.draft.model_copy(deep=True)
    return replace(state, collection=repository.upsert(state.collection, record))


def delete_invoice(state: AppState, invoice_no: str) -> AppState:
    return replace(state, collection=repository.delete(state.collection, invoice_no))


def open_invoice(state: AppState, invoice_no: str) -> AppState:
    record = repository.find_by_key(state.collection, invoice_no)
    if record is None:
        raise InvoiceNotFound(invoice_no)
    return replace(state, draft=record, currency=record.currency or state.currency)


# -------------------------------
# Workspace: state bound to a store
# -------------------------------

class Workspace:
    def __init__(self, store: KeyValueStore, remote: Remote = Unconfigured()):
        self.store = store
        self.remote = remote
        self.state = load_state(store)
        # one event at a time: transition and slot writes happen together
        self._lock = threading.Lock()

    def apply(self, transition, *args, **kwargs) -> AppState:
        """Run a transition and persist every slot it changed."""
        with self._lock:
            before = self.state
            after = transition(before, *args, **kwargs)
            self.state = after

            if after.profile is not before.profile:
                self.store.write(PROFILE_KEY, after.profile)
            if after.draft is not before.draft:
                self.store.write(DRAFT_KEY, after.draft)
            if after.collection is not before.collection:
                self.store.write(COLLECTION_KEY, after.collection)
        return after
