from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from eventcraft.constants import ACTION_INQUIRY
from eventcraft.db import sqlite as db
from eventcraft.services.calculator import SelectionStore
from eventcraft.services.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


@dataclass
class InquiryForm:
    customer_name: str
    email: str = ""
    phone: str = ""
    event_date: str = ""
    event_location: str = ""
    notes: str = ""


@dataclass
class SubmitResult:
    ok: bool
    inquiry: Optional[Dict[str, Any]] = None
    error: str = ""
    rate_limited: bool = False
    retry_after: int = 0  # seconds
    notified: List[str] = field(default_factory=list)


CreateInquiry = Callable[..., Tuple[bool, Any]]
Notifier = Callable[[Dict[str, Any]], List[str]]


def build_payload(store: SelectionStore) -> Dict[str, Any]:
    """Selected lines plus the client-side total, as handed to storage."""
    return {
        "items": [
            {
                "item_id": r.id,
                "item_name": r.name,
                "quantity": r.quantity,
                "price_at_time": r.price,
            }
            for r in store.get_selected_items_list()
        ],
        "client_total": store.get_total(),
    }


def submit_inquiry(
    store: SelectionStore,
    limiter: RateLimiter,
    form: InquiryForm,
    create: CreateInquiry = db.create_inquiry,
    notify: Optional[Notifier] = None,
) -> SubmitResult:
    """
    Order matters:
    1) payload from the selection store (empty selection is refused)
    2) limiter gate (a denial never reaches storage)
    3) storage call; a failure here has already used one attempt
    4) notifications, best effort
    """
    payload = build_payload(store)
    if not payload["items"]:
        return SubmitResult(ok=False, error="no items selected")

    if not limiter.check_and_record(ACTION_INQUIRY):
        wait = limiter.remaining_time(ACTION_INQUIRY)
        return SubmitResult(
            ok=False,
            error=f"Too many requests. Try again in {wait} seconds.",
            rate_limited=True,
            retry_after=wait,
        )

    ok, res = create(
        customer_name=form.customer_name,
        items=payload["items"],
        client_total=payload["client_total"],
        email=form.email,
        phone=form.phone,
        event_date=form.event_date,
        event_location=form.event_location,
        notes=form.notes,
    )
    if not ok:
        logger.error("inquiry submission failed: %s", res)
        return SubmitResult(ok=False, error=str(res))

    inquiry: Dict[str, Any] = res
    notified: List[str] = []
    if notify is not None:
        try:
            notified = notify(inquiry)
        except Exception:
            logger.exception("inquiry notifications failed for %s", inquiry.get("id"))

    return SubmitResult(ok=True, inquiry=inquiry, notified=notified)
