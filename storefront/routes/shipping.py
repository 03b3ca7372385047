import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.dependencies import get_current_user
from storefront.errors import EmptyCart, ValidationError
from storefront.models import Profile
from storefront.schemas import CamelModel
from storefront.serializers import ok, serialize_quote, serialize_zone
from storefront.services import addresses as address_service
from storefront.services import cart as cart_service
from storefront.services import pricing

router = APIRouter(prefix="/shipping", tags=["shipping"])


# =====================================================
# PYDANTIC SCHEMAS
# =====================================================

class QuoteAddress(CamelModel):
    country: str = Field(..., min_length=1)
    state: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None


class QuotePayload(CamelModel):
    subtotal: Optional[float] = Field(None, ge=0)
    shipping_address: Optional[QuoteAddress] = None
    address_id: Optional[uuid.UUID] = None
    coupon_code: Optional[str] = None


# =====================================================
# PUBLIC: ZONES
# =====================================================

@router.get("/zones")
def list_zones():
    return ok([serialize_zone(zone) for zone in pricing.SHIPPING_ZONES])


# =====================================================
# USER: QUOTE
# =====================================================

@router.post("/quote")
def quote_order(
    payload: QuotePayload,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    """
    Prices a prospective order the way checkout will: discount, GST on the
    discounted subtotal, then zone shipping. Without a subtotal the user's
    cart is priced.
    """
    if payload.shipping_address:
        address = payload.shipping_address.model_dump()
    elif payload.address_id:
        address = address_service.address_snapshot(
            address_service.get_address(db, user.id, payload.address_id)
        )
    else:
        raise ValidationError("Shipping address is required")

    subtotal = payload.subtotal
    if subtotal is None:
        cart = cart_service.get_cart(db, user.id)
        if not cart.items:
            raise EmptyCart("Cart is empty")
        subtotal = cart.subtotal

    coupon = None
    if payload.coupon_code:
        coupon = pricing.validate_coupon(db, payload.coupon_code, user.id, round(subtotal, 2))

    breakdown = pricing.quote(subtotal, address, coupon)
    zone = pricing.resolve_zone(address)
    return ok(serialize_quote(breakdown, zone, coupon.code if coupon else None))
