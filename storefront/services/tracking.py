"""Append-only order timeline.

Rows are only ever inserted here. Status rows come from
``record_status_change``, which the order service calls at the single place
that mutates ``orders.status``; carrier updates come from
``add_manual_entry``.
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.models import Order, OrderStatus, OrderTracking

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    OrderStatus.pending.value: "Order placed and awaiting confirmation",
    OrderStatus.confirmed.value: "Order confirmed and being prepared",
    OrderStatus.processing.value: "Order is being processed",
    OrderStatus.shipped.value: "Order has been shipped",
    OrderStatus.delivered.value: "Order has been delivered",
    OrderStatus.cancelled.value: "Order has been cancelled",
    OrderStatus.refunded.value: "Order has been refunded",
}
DEFAULT_STATUS_MESSAGE = "Order status updated"


def status_message(status: str) -> str:
    return STATUS_MESSAGES.get(status, DEFAULT_STATUS_MESSAGE)


def record_status_change(db: Session, order: Order, created_by=None) -> OrderTracking:
    entry = OrderTracking(
        order_id=order.id,
        status=order.status,
        message=status_message(order.status),
        created_by=created_by,
    )
    db.add(entry)
    db.flush()
    return entry


def add_manual_entry(
    db: Session,
    order: Order,
    message: str,
    location: Optional[str] = None,
    metadata: Optional[dict] = None,
    created_by=None,
) -> OrderTracking:
    """Carrier/location update that leaves ``order.status`` untouched."""
    entry = OrderTracking(
        order_id=order.id,
        status=order.status,
        message=message,
        location=location,
        metadata_=metadata,
        created_by=created_by,
    )
    db.add(entry)
    db.flush()
    logger.info(
        "Manual tracking entry added",
        extra={"order_id": str(order.id), "location": location},
    )
    return entry


def get_timeline(db: Session, order_id) -> list[OrderTracking]:
    return list(
        db.scalars(
            select(OrderTracking)
            .where(OrderTracking.order_id == order_id)
            .order_by(OrderTracking.created_at.asc(), OrderTracking.id.asc())
        )
    )
