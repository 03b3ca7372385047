import uuid
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Header, Query, Response, status
from pydantic import Field
from sqlalchemy.orm import Session

from storefront.database import get_db, with_transaction
from storefront.dependencies import get_current_user, require_admin, require_staff
from storefront.models import Profile
from storefront.schemas import CamelModel
from storefront.serializers import (
    ok,
    serialize_order_detail,
    serialize_order_summary,
    serialize_tracking_entry,
)
from storefront.services import orders as order_service
from storefront.services import tracking
from storefront.services.orders import Checkout, OrderLine

router = APIRouter(prefix="/orders", tags=["orders"])


# =====================================================
# PYDANTIC SCHEMAS
# =====================================================

class OrderItemInput(CamelModel):
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    quantity: int = Field(1, ge=1)


class AddressInput(CamelModel):
    # Required fields are checked by the order service so the client
    # gets INVALID_ADDRESS with the full list of what is missing.
    full_name: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class CreateOrderPayload(CamelModel):
    items: List[OrderItemInput] = []
    shipping_address: Optional[AddressInput] = None
    address_id: Optional[uuid.UUID] = None
    billing_address: Optional[AddressInput] = None
    payment_method: Optional[str] = None
    coupon_code: Optional[str] = None
    notes: Optional[str] = None


class StatusUpdate(CamelModel):
    status: str


class PaymentStatusUpdate(CamelModel):
    payment_status: str


class TrackingUpdate(CamelModel):
    tracking_number: Optional[str] = None
    message: Optional[str] = None
    location: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


def _to_checkout(payload: CreateOrderPayload) -> Checkout:
    return Checkout(
        payment_method=payload.payment_method,
        items=[
            OrderLine(product_id=i.product_id, variant_id=i.variant_id, quantity=i.quantity)
            for i in payload.items
        ],
        shipping_address=payload.shipping_address.model_dump() if payload.shipping_address else None,
        address_id=payload.address_id,
        billing_address=payload.billing_address.model_dump() if payload.billing_address else None,
        coupon_code=payload.coupon_code,
        notes=payload.notes,
    )


def _detail(db: Session, order) -> dict:
    return serialize_order_detail(order, tracking.get_timeline(db, order.id))


# =====================================================
# USER: MY ORDERS
# =====================================================

@router.get("")
def list_my_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    orders = order_service.list_orders(db, user.id, status=status_filter)
    return ok([serialize_order_summary(o) for o in orders])


# =====================================================
# USER: CREATE ORDER
# =====================================================

@router.post("", status_code=status.HTTP_201_CREATED)
def create_order(
    payload: CreateOrderPayload,
    response: Response,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    """
    Places an order from the request items, or from the user's cart when
    no items are sent. Prices and stock are always re-read server-side.
    """
    checkout = _to_checkout(payload)
    order, created = with_transaction(
        lambda s: order_service.create_order(s, user.id, checkout, idempotency_key),
        db,
    )
    if not created:
        response.status_code = status.HTTP_200_OK

    return ok(
        _detail(db, order),
        message="Order created successfully" if created else "Order already exists",
    )


# =====================================================
# USER: ORDER DETAIL
# =====================================================

@router.get("/{order_id}")
def get_order(
    order_id: str,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    order = order_service.get_order(db, order_id, user)
    return ok(_detail(db, order))


@router.post("/{order_id}/cancel")
def cancel_order(
    order_id: str,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    order = with_transaction(lambda s: order_service.cancel_order(s, order_id, user), db)
    return ok(_detail(db, order), message="Order cancelled successfully")


# =====================================================
# TRACKING
# =====================================================

@router.get("/{order_id}/tracking")
def get_tracking(
    order_id: str,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    order = order_service.get_order(db, order_id, user)
    timeline = tracking.get_timeline(db, order.id)
    return ok({
        "orderId": str(order.id),
        "orderNumber": order.order_number,
        "status": order.status,
        "trackingNumber": order.tracking_number,
        "trackingHistory": [serialize_tracking_entry(t) for t in timeline],
    })


@router.patch("/{order_id}/tracking")
def update_tracking(
    order_id: str,
    payload: TrackingUpdate,
    db: Session = Depends(get_db),
    staff: Profile = Depends(require_staff),
):
    order = with_transaction(
        lambda s: order_service.set_tracking(
            s,
            order_id,
            staff,
            tracking_number=payload.tracking_number,
            message=payload.message,
            location=payload.location,
            metadata=payload.metadata,
        ),
        db,
    )
    return ok(_detail(db, order), message="Tracking updated")


# =====================================================
# STAFF: STATUS CHANGES
# =====================================================

@router.patch("/{order_id}/status")
def update_status(
    order_id: str,
    payload: StatusUpdate,
    db: Session = Depends(get_db),
    staff: Profile = Depends(require_staff),
):
    order = with_transaction(
        lambda s: order_service.change_status(s, order_id, payload.status, staff),
        db,
    )
    return ok(_detail(db, order), message="Order status updated successfully")


@router.patch("/{order_id}/payment-status")
def update_payment_status(
    order_id: str,
    payload: PaymentStatusUpdate,
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
):
    order = with_transaction(
        lambda s: order_service.update_payment_status(s, order_id, payload.payment_status, admin),
        db,
    )
    return ok(serialize_order_summary(order), message="Payment status updated successfully")
