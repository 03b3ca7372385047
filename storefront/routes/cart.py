import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import Field
from sqlalchemy.orm import Session

from storefront.database import get_db, with_transaction
from storefront.dependencies import get_current_user
from storefront.models import Profile
from storefront.schemas import CamelModel
from storefront.serializers import ok, serialize_cart
from storefront.services import cart as cart_service

router = APIRouter(prefix="/cart", tags=["cart"])


# =====================================================
# PYDANTIC SCHEMAS
# =====================================================

class AddToCartPayload(CamelModel):
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    quantity: int = Field(1, ge=1)


class UpdateCartItemPayload(CamelModel):
    quantity: int


class GuestCartItem(CamelModel):
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    quantity: int = 1


class MergeCartPayload(CamelModel):
    items: List[GuestCartItem] = []


def _cart(db: Session, user: Profile) -> dict:
    return serialize_cart(cart_service.get_cart(db, user.id))


# =====================================================
# USER: GET CART
# =====================================================

@router.get("")
def get_cart(
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    return ok(_cart(db, user))


# =====================================================
# USER: ADD / UPDATE / REMOVE ITEMS
# =====================================================

@router.post("/items", status_code=status.HTTP_201_CREATED)
def add_to_cart(
    payload: AddToCartPayload,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    """Adds a product, or increases the quantity of an existing line."""
    with_transaction(
        lambda s: cart_service.add_item(
            s, user.id, payload.product_id, payload.variant_id, payload.quantity
        ),
        db,
    )
    return ok(_cart(db, user), message="Item added to cart")


@router.patch("/items/{item_id}")
def update_cart_item(
    item_id: str,
    payload: UpdateCartItemPayload,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    item = with_transaction(
        lambda s: cart_service.update_quantity(s, user.id, item_id, payload.quantity),
        db,
    )
    if item is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return ok(_cart(db, user))


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_cart_item(
    item_id: str,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    with_transaction(lambda s: cart_service.remove_item(s, user.id, item_id), db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def clear_cart(
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    with_transaction(lambda s: cart_service.clear(s, user.id), db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =====================================================
# USER: MERGE GUEST CART (on login)
# =====================================================

@router.post("/merge")
def merge_cart(
    payload: MergeCartPayload,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    guest_items = [item.model_dump() for item in payload.items]
    warnings = with_transaction(
        lambda s: cart_service.merge_guest_cart(s, user.id, guest_items),
        db,
    )
    return ok(_cart(db, user), warnings=warnings)
