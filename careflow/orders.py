"""
orders.py
=========
Order lifecycle for one patient.

    draft -> sent -> scheduled -> in_progress -> completed -> resulted
    draft | sent | scheduled | in_progress -> cancelled

Drafts (including every advisor-proposed order) are never transmitted
downstream until a clinician accepts or sends them.
"""

import copy
import datetime
import uuid
from typing import Iterable, List, Optional, Tuple

from .exceptions import FileNotSigned, IllegalTransition, ValidationError
from .models import OrderCategory, OrderStatus
from .schemas import (
    AIProvenance, ClinicalFile, Order, OrderAmendment, OrderHistoryEntry,
    OrderRequest, SuggestedOrder,
)

ALLOWED_TRANSITIONS = {
    OrderStatus.draft: {OrderStatus.sent, OrderStatus.cancelled},
    OrderStatus.sent: {OrderStatus.scheduled, OrderStatus.cancelled},
    OrderStatus.scheduled: {OrderStatus.in_progress, OrderStatus.cancelled},
    OrderStatus.in_progress: {OrderStatus.completed, OrderStatus.cancelled},
    OrderStatus.completed: {OrderStatus.resulted},
    OrderStatus.resulted: set(),
    OrderStatus.cancelled: set(),
}

TERMINAL_STATUSES = {OrderStatus.resulted, OrderStatus.cancelled}


def _new_order_id() -> str:
    return f"ORD-{uuid.uuid4().hex[:12]}"


def _history(order: Order, actor_id: str, at: datetime.datetime, action: str, **details) -> Tuple[OrderHistoryEntry, ...]:
    entry = OrderHistoryEntry(timestamp=at, actor_id=actor_id, action=action, details=details)
    return order.history + (entry,)


def create(
    file: ClinicalFile,
    request: OrderRequest,
    actor_id: str,
    at: datetime.datetime,
    provenance: Optional[AIProvenance] = None,
) -> Order:
    """New orders always start as drafts, and only on a signed file."""
    if not file.is_signed:
        raise FileNotSigned(detail={"patient_id": file.patient_id, "file_status": file.status.value})
    order = Order(
        id=_new_order_id(),
        patient_id=file.patient_id,
        category=request.category,
        sub_type=request.sub_type,
        label=request.label or request.sub_type,
        payload=copy.deepcopy(request.payload),
        priority=request.priority,
        status=OrderStatus.draft,
        created_by=actor_id,
        created_at=at,
        ai_provenance=provenance,
    )
    source = "ai_suggestion" if provenance else "manual"
    return order.model_copy(update={"history": _history(order, actor_id, at, "created", source=source)})


def from_suggestion(file: ClinicalFile, suggestion: SuggestedOrder, actor_id: str, at: datetime.datetime) -> Order:
    request = OrderRequest(
        category=suggestion.category,
        sub_type=suggestion.sub_type,
        label=suggestion.label,
        priority=suggestion.priority,
        payload=suggestion.payload,
    )
    provenance = AIProvenance(rationale=suggestion.rationale or None)
    return create(file, request, actor_id, at, provenance=provenance)


def can_transition(current: OrderStatus, new_status: OrderStatus) -> bool:
    return new_status in ALLOWED_TRANSITIONS.get(current, set())


def transition(
    order: Order,
    new_status: OrderStatus,
    actor_id: str,
    at: datetime.datetime,
    result_summary: Optional[str] = None,
) -> Order:
    new_status = OrderStatus(new_status)
    if order.status in TERMINAL_STATUSES:
        raise IllegalTransition(
            f"Order is already {order.status.value}",
            code="ORDER_CLOSED",
            detail={"order_id": order.id, "status": order.status.value},
        )
    if not can_transition(order.status, new_status):
        raise IllegalTransition(
            f"Order cannot move from {order.status.value} to {new_status.value}",
            detail={"order_id": order.id, "from": order.status.value, "to": new_status.value},
        )
    if result_summary is not None and new_status != OrderStatus.resulted:
        raise ValidationError("A result summary can only be attached when resulting an order")

    action = "cancelled" if new_status == OrderStatus.cancelled else "status_changed"
    update = {
        "status": new_status,
        "modified_by": actor_id,
        "modified_at": at,
        "history": _history(order, actor_id, at, action, **{"from": order.status.value, "to": new_status.value}),
    }
    if result_summary is not None:
        update["result_summary"] = result_summary
    return order.model_copy(update=update)


def amend(order: Order, changes: OrderAmendment, actor_id: str, at: datetime.datetime) -> Order:
    """Drafts can be edited freely; anything already sent is immutable."""
    if order.status != OrderStatus.draft:
        raise IllegalTransition(
            "Only draft orders can be amended",
            detail={"order_id": order.id, "status": order.status.value},
        )
    fields = changes.model_dump(exclude_none=True)
    if not fields:
        return order
    return order.model_copy(update={
        **fields,
        "modified_by": actor_id,
        "modified_at": at,
        "history": _history(order, actor_id, at, "amended", fields=sorted(fields)),
    })


# ---------------------------------------------------------------------------
# BULK OPERATIONS
# ---------------------------------------------------------------------------

def _send_matching(orders: Tuple[Order, ...], matches, actor_id: str, at: datetime.datetime):
    updated: List[Order] = []
    sent: List[Order] = []
    for order in orders:
        if order.status == OrderStatus.draft and matches(order):
            order = transition(order, OrderStatus.sent, actor_id, at)
            sent.append(order)
        updated.append(order)
    return tuple(updated), sent


def accept_suggested(
    orders: Tuple[Order, ...],
    order_ids: Iterable[str],
    actor_id: str,
    at: datetime.datetime,
) -> Tuple[Tuple[Order, ...], List[Order]]:
    """
    Send the advisor-proposed drafts named in `order_ids`.
    Anything not a draft, or not advisor-proposed, is skipped; calling twice
    is a no-op the second time. Returns (all orders, orders just sent).
    """
    wanted = set(order_ids)
    return _send_matching(
        orders,
        lambda o: o.id in wanted and o.ai_provenance is not None,
        actor_id,
        at,
    )


def send_all_drafts(
    orders: Tuple[Order, ...],
    category: OrderCategory,
    actor_id: str,
    at: datetime.datetime,
) -> Tuple[Tuple[Order, ...], List[Order]]:
    category = OrderCategory(category)
    return _send_matching(orders, lambda o: o.category == category, actor_id, at)


def replace(orders: Tuple[Order, ...], order: Order) -> Tuple[Order, ...]:
    return tuple(order if o.id == order.id else o for o in orders)
