"""Server-side cart of authenticated users.

Stock policy: quantities are checked against current stock when they are
added or changed (``OutOfStock``) and checked again, under row locks, at
checkout.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, joinedload

from storefront.errors import NotFound, OutOfStock, ValidationError
from storefront.models import CartItem, Product, ProductVariant

logger = logging.getLogger(__name__)


@dataclass
class CartView:
    items: list[CartItem] = field(default_factory=list)
    subtotal: float = 0.0
    item_count: int = 0


# =====================================================
# HELPERS
# =====================================================

def _line_key(product_id, variant_id) -> tuple[str, Optional[str]]:
    return str(product_id), (str(variant_id) if variant_id else None)


def _as_uuid(value) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def get_active_product(db: Session, product_id) -> Product:
    product = db.get(Product, _as_uuid(product_id)) if _as_uuid(product_id) else None
    if not product or not product.is_active:
        raise NotFound("Product not found or inactive")
    return product


def get_product_variant(db: Session, product: Product, variant_id) -> Optional[ProductVariant]:
    if not variant_id:
        return None
    variant = db.get(ProductVariant, _as_uuid(variant_id)) if _as_uuid(variant_id) else None
    if not variant or variant.product_id != product.id:
        raise NotFound("Variant not found")
    return variant


def _find_line(db: Session, user_id, product_id, variant_id) -> Optional[CartItem]:
    stmt = select(CartItem).where(
        CartItem.user_id == user_id,
        CartItem.product_id == product_id,
    )
    if variant_id:
        stmt = stmt.where(CartItem.variant_id == variant_id)
    else:
        stmt = stmt.where(CartItem.variant_id.is_(None))
    return db.scalar(stmt)


def _quantity_in_cart(db: Session, user_id, product_id, exclude_item_id=None) -> int:
    # Variants share their product's stock, so every line of the product counts
    stmt = select(func.coalesce(func.sum(CartItem.quantity), 0)).where(
        CartItem.user_id == user_id,
        CartItem.product_id == product_id,
    )
    if exclude_item_id is not None:
        stmt = stmt.where(CartItem.id != exclude_item_id)
    return db.scalar(stmt)


def _get_owned_item(db: Session, user_id, item_id) -> CartItem:
    item = db.scalar(
        select(CartItem)
        .options(joinedload(CartItem.product))
        .where(CartItem.id == _as_uuid(item_id), CartItem.user_id == user_id)
    ) if _as_uuid(item_id) else None
    if not item:
        raise NotFound("Cart item not found")
    return item


# =====================================================
# READ
# =====================================================

def get_cart(db: Session, user_id) -> CartView:
    items = list(
        db.scalars(
            select(CartItem)
            .options(joinedload(CartItem.product), joinedload(CartItem.variant))
            .where(CartItem.user_id == user_id)
            .order_by(CartItem.created_at.desc())
        )
    )
    subtotal = round(sum(item.unit_price * item.quantity for item in items), 2)
    item_count = sum(item.quantity for item in items)
    return CartView(items=items, subtotal=subtotal, item_count=item_count)


# =====================================================
# WRITE
# =====================================================

def add_item(
    db: Session,
    user_id,
    product_id,
    variant_id=None,
    quantity: int = 1,
) -> CartItem:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")

    product = get_active_product(db, product_id)
    variant = get_product_variant(db, product, variant_id)

    item = _find_line(db, user_id, product.id, variant.id if variant else None)
    new_quantity = (item.quantity if item else 0) + quantity
    in_cart = _quantity_in_cart(db, user_id, product.id) + quantity
    if in_cart > product.stock:
        raise OutOfStock(product.id, available=product.stock, requested=in_cart)

    if item:
        item.quantity = new_quantity
    else:
        item = CartItem(
            user_id=user_id,
            product_id=product.id,
            variant_id=variant.id if variant else None,
            quantity=new_quantity,
        )
        db.add(item)

    db.flush()
    return item


def update_quantity(db: Session, user_id, item_id, quantity: int) -> Optional[CartItem]:
    """Set a line's quantity. Zero or less removes the line and returns None."""
    item = _get_owned_item(db, user_id, item_id)

    if quantity <= 0:
        db.delete(item)
        db.flush()
        return None

    in_cart = _quantity_in_cart(db, user_id, item.product_id, exclude_item_id=item.id) + quantity
    if in_cart > item.product.stock:
        raise OutOfStock(item.product_id, available=item.product.stock, requested=in_cart)

    item.quantity = quantity
    db.flush()
    return item


def remove_item(db: Session, user_id, item_id) -> None:
    item = _get_owned_item(db, user_id, item_id)
    db.delete(item)
    db.flush()


def clear(db: Session, user_id) -> int:
    result = db.execute(
        delete(CartItem)
        .where(CartItem.user_id == user_id)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


# =====================================================
# GUEST CART MERGE
# =====================================================

def merge_cart(
    server_items: Iterable[Mapping],
    guest_items: Iterable[Mapping],
) -> list[dict]:
    """
    Combine the stored cart with a guest cart.

    Pure function. Lines are keyed by (product_id, variant_id); quantities
    of matching lines are summed and non-positive quantities are dropped.
    Order of first appearance is preserved.
    """
    merged: dict[tuple[str, Optional[str]], dict] = {}
    for line in [*server_items, *guest_items]:
        quantity = int(line.get("quantity", 1) or 0)
        if quantity <= 0:
            continue
        key = _line_key(line["product_id"], line.get("variant_id"))
        if key in merged:
            merged[key]["quantity"] += quantity
        else:
            merged[key] = {"product_id": key[0], "variant_id": key[1], "quantity": quantity}
    return list(merged.values())


def merge_guest_cart(db: Session, user_id, guest_items: Iterable[Mapping]) -> list[str]:
    """
    Fold a guest cart into the user's stored cart at login.

    Quantities are clamped to current stock. Returns human-readable notes
    for the lines that could not be merged.
    """
    current = list(db.scalars(select(CartItem).where(CartItem.user_id == user_id)))
    existing = {_line_key(i.product_id, i.variant_id): i for i in current}
    merged = merge_cart(
        [
            {"product_id": i.product_id, "variant_id": i.variant_id, "quantity": i.quantity}
            for i in current
        ],
        guest_items,
    )

    errors = []
    for line in merged:
        key = (line["product_id"], line["variant_id"])
        item = existing.get(key)
        try:
            product = get_active_product(db, line["product_id"])
            variant = get_product_variant(db, product, line["variant_id"])
        except NotFound as exc:
            errors.append(f"{line['product_id']}: {exc.message}")
            continue

        quantity = min(line["quantity"], product.stock)
        if quantity <= 0:
            errors.append(f"{product.name}: out of stock")
            if item:
                db.delete(item)
            continue
        if quantity < line["quantity"]:
            errors.append(f"{product.name}: only {product.stock} available")

        if item:
            item.quantity = quantity
        else:
            db.add(CartItem(
                user_id=user_id,
                product_id=product.id,
                variant_id=variant.id if variant else None,
                quantity=quantity,
            ))

    db.flush()
    logger.info("Guest cart merged", extra={"user_id": str(user_id), "lines": len(merged)})
    return errors
