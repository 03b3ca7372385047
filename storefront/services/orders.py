"""
Order workflow.

``create_order`` turns a cart (or an explicit item list) into an order in
one transaction. ``change_status`` is the only code path that writes
``orders.status`` after creation, and it appends exactly one tracking row
per real transition.

Functions here flush but never commit; callers wrap them in
``storefront.database.with_transaction``.
"""
import logging
import secrets
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from storefront.errors import (
    EmptyCart,
    Forbidden,
    InsufficientStock,
    InvalidStatusTransition,
    NotFound,
    ValidationError,
)
from storefront.models import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    Product,
    ProductVariant,
    Profile,
)
from storefront.services import cart as cart_service
from storefront.services import tracking
from storefront.services.addresses import get_address, address_snapshot, validate_address
from storefront.services.pricing import quote, redeem_coupon, validate_coupon

logger = logging.getLogger(__name__)


# =====================================================
# STATE MACHINE
# =====================================================

ALLOWED_TRANSITIONS = {
    OrderStatus.pending.value: {OrderStatus.confirmed.value, OrderStatus.cancelled.value},
    OrderStatus.confirmed.value: {OrderStatus.processing.value, OrderStatus.refunded.value},
    OrderStatus.processing.value: {OrderStatus.shipped.value, OrderStatus.refunded.value},
    OrderStatus.shipped.value: {OrderStatus.delivered.value, OrderStatus.refunded.value},
    OrderStatus.delivered.value: set(),
    OrderStatus.cancelled.value: set(),
    OrderStatus.refunded.value: set(),
}

RESTOCKING_STATUSES = {OrderStatus.cancelled.value, OrderStatus.refunded.value}


# =====================================================
# INPUT
# =====================================================

@dataclass
class OrderLine:
    product_id: uuid.UUID
    quantity: int
    variant_id: Optional[uuid.UUID] = None


@dataclass
class Checkout:
    payment_method: Optional[str] = None
    items: list[OrderLine] = field(default_factory=list)
    shipping_address: Optional[dict] = None
    address_id: Optional[uuid.UUID] = None
    billing_address: Optional[dict] = None
    coupon_code: Optional[str] = None
    notes: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_order_number(now: Optional[datetime] = None) -> str:
    now = now or _utcnow()
    return f"ORD-{now:%Y%m%d}-{secrets.token_hex(4).upper()}"


# =====================================================
# HELPERS
# =====================================================

def _parse_id(value) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _checkout_lines(db: Session, user_id, checkout: Checkout) -> list[OrderLine]:
    if checkout.items:
        lines = list(checkout.items)
    else:
        lines = [
            OrderLine(product_id=i.product_id, variant_id=i.variant_id, quantity=i.quantity)
            for i in cart_service.get_cart(db, user_id).items
        ]

    if not lines:
        raise EmptyCart()
    for line in lines:
        if line.quantity < 1:
            raise ValidationError("Quantity must be at least 1")
    return lines


def _shipping_address(db: Session, user_id, checkout: Checkout) -> dict:
    if checkout.shipping_address:
        return validate_address(checkout.shipping_address)
    if checkout.address_id:
        return address_snapshot(get_address(db, user_id, checkout.address_id))
    raise ValidationError("Shipping address is required")


def _lock_products(db: Session, product_ids) -> dict:
    # Sorted so concurrent checkouts acquire row locks in the same order
    rows = db.scalars(
        select(Product)
        .where(Product.id.in_(sorted(product_ids)))
        .order_by(Product.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {p.id: p for p in rows}


def _product_snapshot(product: Product, variant: Optional[ProductVariant], unit_price: float) -> dict:
    snapshot = {
        "id": str(product.id),
        "name": product.name,
        "description": product.short_description or product.description,
        "price": unit_price,
        "images": list(product.images or []),
        "sku": (variant.sku if variant and variant.sku else product.sku),
        "categoryId": str(product.category_id) if product.category_id else None,
        "sellerId": str(product.seller_id) if product.seller_id else None,
    }
    if variant is not None:
        snapshot["variantId"] = str(variant.id)
        snapshot["variantName"] = variant.name
    return snapshot


def _decrement_stock(db: Session, product_id, quantity: int) -> None:
    result = db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        available = db.scalar(select(Product.stock).where(Product.id == product_id)) or 0
        raise InsufficientStock([{
            "productId": str(product_id),
            "variantId": None,
            "requested": quantity,
            "available": available,
        }])


def _restock(db: Session, order: Order) -> None:
    quantities = defaultdict(int)
    for item in order.items:
        # Lines whose product has since been deleted have nothing to return to
        if item.product_id is not None:
            quantities[item.product_id] += item.quantity

    for product_id in sorted(quantities):
        db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantities[product_id], updated_at=_utcnow())
            .execution_options(synchronize_session=False)
        )


def _find_order(db: Session, order_id, for_update: bool = False) -> Optional[Order]:
    order_uuid = _parse_id(order_id)
    if order_uuid is None:
        return None
    stmt = select(Order).where(Order.id == order_uuid)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return db.scalar(stmt)


def _seller_order_ids(seller_id):
    return (
        select(OrderItem.order_id)
        .join(Product, Product.id == OrderItem.product_id)
        .where(Product.seller_id == seller_id)
    )


def _seller_owns_order(db: Session, order: Order, seller_id) -> bool:
    stmt = _seller_order_ids(seller_id).where(OrderItem.order_id == order.id).limit(1)
    return db.scalar(stmt) is not None


def _can_view(db: Session, order: Order, viewer: Profile) -> bool:
    if viewer.is_admin or order.user_id == viewer.id:
        return True
    return viewer.is_seller and _seller_owns_order(db, order, viewer.id)


def _authorize_staff(db: Session, order: Order, actor: Profile) -> None:
    if actor.is_admin:
        return
    if actor.is_seller and _seller_owns_order(db, order, actor.id):
        return
    raise Forbidden("Not allowed to manage this order")


# =====================================================
# CREATE
# =====================================================

def create_order(
    db: Session,
    user_id,
    checkout: Checkout,
    idempotency_key: Optional[str] = None,
) -> tuple[Order, bool]:
    """
    Place an order for ``user_id``.

    Returns ``(order, created)``. ``created`` is False when the
    idempotency key was already used by this user; the earlier order is
    returned unchanged.
    """
    if not idempotency_key:
        return _place_order(db, user_id, checkout, None), True

    existing = _find_by_idempotency_key(db, user_id, idempotency_key)
    if existing is None:
        # A concurrent request with the same key may insert first; its
        # unique key violation undoes this attempt's stock and cart writes.
        try:
            with db.begin_nested():
                return _place_order(db, user_id, checkout, idempotency_key), True
        except IntegrityError:
            existing = _find_by_idempotency_key(db, user_id, idempotency_key)
            if existing is None:
                raise

    logger.info(
        "Idempotent order replay",
        extra={"order_id": str(existing.id), "user_id": str(user_id)},
    )
    return existing, False


def _find_by_idempotency_key(db: Session, user_id, idempotency_key: str) -> Optional[Order]:
    return db.scalar(
        select(Order).where(Order.user_id == user_id, Order.idempotency_key == idempotency_key)
    )


def _place_order(db: Session, user_id, checkout: Checkout, idempotency_key: Optional[str]) -> Order:
    if not checkout.payment_method:
        raise ValidationError("Payment method is required")

    lines = _checkout_lines(db, user_id, checkout)
    shipping_address = _shipping_address(db, user_id, checkout)
    billing_address = (
        validate_address(checkout.billing_address) if checkout.billing_address else shipping_address
    )

    requested = defaultdict(int)
    for line in lines:
        requested[line.product_id] += line.quantity

    products = _lock_products(db, requested.keys())

    # Stock is checked against the aggregate of every line of a product
    shortages = []
    for line in lines:
        product = products.get(line.product_id)
        available = product.stock if product is not None and product.is_active else 0
        if requested[line.product_id] > available:
            shortages.append({
                "productId": str(line.product_id),
                "variantId": str(line.variant_id) if line.variant_id else None,
                "requested": line.quantity,
                "available": available,
            })
    if shortages:
        logger.warning(
            "Checkout rejected: insufficient stock",
            extra={"user_id": str(user_id), "lines": len(shortages)},
        )
        raise InsufficientStock(shortages)

    priced = []
    subtotal = 0.0
    for line in lines:
        product = products[line.product_id]
        variant = cart_service.get_product_variant(db, product, line.variant_id)
        unit_price = variant.effective_price if variant else product.price
        line_total = round(unit_price * line.quantity, 2)
        subtotal += line_total
        priced.append((line, product, variant, unit_price, line_total))

    coupon = None
    if checkout.coupon_code:
        coupon = validate_coupon(db, checkout.coupon_code, user_id, round(subtotal, 2))
    breakdown = quote(subtotal, shipping_address, coupon)

    for product_id in sorted(requested):
        _decrement_stock(db, product_id, requested[product_id])

    order = Order(
        id=uuid.uuid4(),
        order_number=generate_order_number(),
        user_id=user_id,
        subtotal=breakdown.subtotal,
        tax_amount=breakdown.tax,
        shipping_amount=breakdown.shipping,
        discount_amount=breakdown.discount,
        total_amount=breakdown.total,
        status=OrderStatus.pending.value,
        payment_status=PaymentStatus.pending.value,
        payment_method=checkout.payment_method,
        coupon_code=coupon.code if coupon else None,
        shipping_address=shipping_address,
        billing_address=billing_address,
        notes=checkout.notes,
        idempotency_key=idempotency_key,
    )
    for line, product, variant, unit_price, line_total in priced:
        order.items.append(OrderItem(
            product_id=product.id,
            variant_id=variant.id if variant else None,
            quantity=line.quantity,
            unit_price=unit_price,
            total_price=line_total,
            product_snapshot=_product_snapshot(product, variant, unit_price),
        ))
    db.add(order)
    db.flush()

    if coupon is not None:
        redeem_coupon(db, coupon, user_id, order.id, breakdown.discount)

    cart_service.clear(db, user_id)
    tracking.record_status_change(db, order, created_by=user_id)

    logger.info(
        "Order created",
        extra={
            "order_id": str(order.id),
            "order_number": order.order_number,
            "user_id": str(user_id),
            "total": order.total_amount,
            "lines": len(priced),
        },
    )
    return order


# =====================================================
# READ
# =====================================================

def list_orders(db: Session, user_id, status: Optional[str] = None) -> list[Order]:
    stmt = (
        select(Order)
        .options(selectinload(Order.items))
        .where(Order.user_id == user_id)
        .order_by(Order.created_at.desc())
    )
    if status:
        stmt = stmt.where(Order.status == status)
    return list(db.scalars(stmt))


def get_order(db: Session, order_id, viewer: Profile) -> Order:
    """Orders the viewer may not see are reported as missing."""
    order = _find_order(db, order_id)
    if order is None or not _can_view(db, order, viewer):
        raise NotFound("Order not found")
    return order


def list_all_orders(
    db: Session,
    actor: Profile,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    per_page: int = 50,
) -> dict:
    """Back-office listing: admins see everything, sellers their own orders."""
    scope = []
    if not actor.is_admin:
        if not actor.is_seller:
            raise Forbidden("Seller or admin access required")
        scope.append(Order.id.in_(_seller_order_ids(actor.id)))

    filters = list(scope)
    if status:
        filters.append(Order.status == status)
    if payment_status:
        filters.append(Order.payment_status == payment_status)
    if search:
        filters.append(Order.order_number.ilike(f"%{search.strip()}%"))

    total = db.scalar(select(func.count(Order.id)).where(*filters))
    orders = list(
        db.scalars(
            select(Order)
            .options(selectinload(Order.items))
            .where(*filters)
            .order_by(Order.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
    )
    stats = db.execute(
        select(Order.status, func.count(Order.id)).where(*scope).group_by(Order.status)
    ).all()

    return {
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": (total + per_page - 1) // per_page,
        "stats": {s: c for s, c in stats},
        "orders": orders,
    }


# =====================================================
# STATUS CHANGE GATEWAY
# =====================================================

def _apply_status(db: Session, order: Order, new_status: str, actor_id) -> Order:
    current = order.status
    if new_status == current:
        return order
    if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidStatusTransition(current, new_status)

    now = _utcnow()
    order.status = new_status
    order.updated_at = now
    if new_status == OrderStatus.shipped.value:
        order.shipped_at = now
    elif new_status == OrderStatus.delivered.value:
        order.delivered_at = now
    elif new_status == OrderStatus.refunded.value:
        order.payment_status = PaymentStatus.refunded.value

    if new_status in RESTOCKING_STATUSES:
        _restock(db, order)

    db.flush()
    tracking.record_status_change(db, order, created_by=actor_id)

    logger.info(
        "Order status changed",
        extra={"order_id": str(order.id), "from_status": current, "to_status": new_status},
    )
    return order


def _parse_status(value: str) -> str:
    try:
        return OrderStatus(value).value
    except ValueError:
        raise ValidationError(f"Invalid status: '{value}'")


def change_status(db: Session, order_id, new_status: str, actor: Profile) -> Order:
    new_status = _parse_status(new_status)
    order = _find_order(db, order_id, for_update=True)
    if order is None:
        raise NotFound("Order not found")
    _authorize_staff(db, order, actor)
    return _apply_status(db, order, new_status, actor.id)


def cancel_order(db: Session, order_id, user: Profile) -> Order:
    """Customer cancellation; only pending orders can move to cancelled."""
    order = _find_order(db, order_id, for_update=True)
    if order is None or order.user_id != user.id:
        raise NotFound("Order not found")
    return _apply_status(db, order, OrderStatus.cancelled.value, user.id)


# =====================================================
# TRACKING / PAYMENT
# =====================================================

def set_tracking(
    db: Session,
    order_id,
    actor: Profile,
    tracking_number: Optional[str] = None,
    message: Optional[str] = None,
    location: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> Order:
    if not tracking_number and not message:
        raise ValidationError("Provide a tracking number or a tracking message")

    order = _find_order(db, order_id, for_update=True)
    if order is None:
        raise NotFound("Order not found")
    _authorize_staff(db, order, actor)

    if tracking_number:
        order.tracking_number = tracking_number
        order.updated_at = _utcnow()
        db.flush()

    if message:
        entry_metadata = dict(metadata or {})
        if tracking_number:
            entry_metadata.setdefault("trackingNumber", tracking_number)
        tracking.add_manual_entry(
            db,
            order,
            message=message,
            location=location,
            metadata=entry_metadata or None,
            created_by=actor.id,
        )
    return order


def update_payment_status(db: Session, order_id, payment_status: str, actor: Profile) -> Order:
    if not actor.is_admin:
        raise Forbidden("Admin access required")
    try:
        payment_status = PaymentStatus(payment_status).value
    except ValueError:
        raise ValidationError(f"Invalid payment status: '{payment_status}'")

    order = _find_order(db, order_id, for_update=True)
    if order is None:
        raise NotFound("Order not found")

    previous = order.payment_status
    order.payment_status = payment_status
    order.updated_at = _utcnow()
    db.flush()

    logger.info(
        "Payment status changed",
        extra={"order_id": str(order.id), "from_status": previous, "to_status": payment_status},
    )
    return order
