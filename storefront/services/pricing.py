"""Checkout pricing: coupons, GST and zone-based shipping."""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from storefront import config
from storefront.errors import InvalidCoupon
from storefront.models import Coupon, CouponUsage


# =====================================================
# SHIPPING ZONES
# =====================================================

@dataclass(frozen=True)
class ShippingZone:
    id: str
    name: str
    countries: tuple[str, ...]
    base_rate: float
    free_shipping_threshold: float
    delivery_days: tuple[int, int]
    states: tuple[str, ...] = ()


SHIPPING_ZONES = (
    ShippingZone(
        id="kashmir",
        name="Kashmir & J&K",
        countries=("IN",),
        states=("jammu and kashmir", "jammu & kashmir", "j&k", "kashmir", "ladakh"),
        base_rate=50,
        free_shipping_threshold=2000,
        delivery_days=(2, 3),
    ),
    ShippingZone(
        id="india-metro",
        name="India - Metro Cities",
        countries=("IN",),
        states=(
            "delhi", "ncr", "haryana", "chandigarh", "maharashtra",
            "karnataka", "tamil nadu", "west bengal", "telangana",
        ),
        base_rate=100,
        free_shipping_threshold=2000,
        delivery_days=(3, 5),
    ),
    ShippingZone(
        id="india-rest",
        name="Rest of India",
        countries=("IN",),
        base_rate=100,
        free_shipping_threshold=2000,
        delivery_days=(5, 7),
    ),
    ShippingZone(
        id="international-gcc",
        name="GCC Countries",
        countries=("AE", "SA", "QA", "KW", "BH", "OM"),
        base_rate=500,
        free_shipping_threshold=5000,
        delivery_days=(7, 10),
    ),
    ShippingZone(
        id="international-us-uk",
        name="USA & UK",
        countries=("US", "GB"),
        base_rate=800,
        free_shipping_threshold=8000,
        delivery_days=(10, 14),
    ),
    ShippingZone(
        id="international-other",
        name="Other International",
        countries=(),
        base_rate=1000,
        free_shipping_threshold=10000,
        delivery_days=(10, 14),
    ),
)

_ZONES_BY_ID = {zone.id: zone for zone in SHIPPING_ZONES}

COUNTRY_CODES = {
    "india": "IN",
    "united arab emirates": "AE",
    "uae": "AE",
    "saudi arabia": "SA",
    "qatar": "QA",
    "kuwait": "KW",
    "bahrain": "BH",
    "oman": "OM",
    "united states": "US",
    "usa": "US",
    "united kingdom": "GB",
    "uk": "GB",
}


def _country_code(country: Optional[str]) -> str:
    value = (country or "").strip()
    if len(value) == 2:
        return value.upper()
    return COUNTRY_CODES.get(value.lower(), value.upper())


def resolve_zone(address: dict) -> ShippingZone:
    country = _country_code(address.get("country"))
    if country == "IN":
        state = (address.get("state") or "").strip().lower()
        for zone_id in ("kashmir", "india-metro"):
            zone = _ZONES_BY_ID[zone_id]
            if state and any(s in state for s in zone.states):
                return zone
        return _ZONES_BY_ID["india-rest"]

    for zone in SHIPPING_ZONES:
        if country in zone.countries:
            return zone
    return _ZONES_BY_ID["international-other"]


def shipping_cost(subtotal: float, address: dict) -> float:
    zone = resolve_zone(address)
    if subtotal >= zone.free_shipping_threshold:
        return 0.0
    return float(zone.base_rate)


# =====================================================
# COUPONS
# =====================================================

def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _user_usage(db: Session, coupon_id, user_id) -> int:
    return db.scalar(
        select(func.count(CouponUsage.id)).where(
            CouponUsage.coupon_id == coupon_id,
            CouponUsage.user_id == user_id,
        )
    )


def validate_coupon(
    db: Session,
    code: str,
    user_id,
    subtotal: float,
    now: Optional[datetime] = None,
) -> Coupon:
    coupon = db.scalar(
        select(Coupon).where(func.upper(Coupon.code) == code.strip().upper())
    )
    if not coupon or not coupon.is_active:
        raise InvalidCoupon("Coupon not found or inactive")

    now = now or datetime.now(timezone.utc)
    if now < _as_utc(coupon.valid_from) or now > _as_utc(coupon.valid_until):
        raise InvalidCoupon("Coupon expired or not yet valid")
    if coupon.usage_limit and coupon.times_used >= coupon.usage_limit:
        raise InvalidCoupon("Coupon usage limit reached")

    if coupon.usage_per_user and _user_usage(db, coupon.id, user_id) >= coupon.usage_per_user:
        raise InvalidCoupon("You have already used this coupon")
    if subtotal < (coupon.min_purchase or 0):
        raise InvalidCoupon(f"Minimum purchase of {coupon.min_purchase} required")

    return coupon


def redeem_coupon(db: Session, coupon: Coupon, user_id, order_id, discount: float) -> CouponUsage:
    """
    Record one use of ``coupon`` for an order.

    The usage counter is bumped with a guarded UPDATE, so the global limit
    holds under concurrent checkouts. The per-user count is read after that
    write, once the coupon row is held by this transaction.
    """
    result = db.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon.id,
            or_(
                Coupon.usage_limit.is_(None),
                Coupon.usage_limit == 0,
                Coupon.times_used < Coupon.usage_limit,
            ),
        )
        .values(times_used=Coupon.times_used + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise InvalidCoupon("Coupon usage limit reached")
    if coupon.usage_per_user and _user_usage(db, coupon.id, user_id) >= coupon.usage_per_user:
        raise InvalidCoupon("You have already used this coupon")

    usage = CouponUsage(
        coupon_id=coupon.id,
        user_id=user_id,
        order_id=order_id,
        discount_amount=discount,
    )
    db.add(usage)
    db.flush()
    return usage


def coupon_discount(coupon: Optional[Coupon], subtotal: float) -> float:
    if coupon is None:
        return 0.0
    discount = 0.0
    if coupon.discount_type == "percentage":
        discount = subtotal * (coupon.discount_value / 100)
        if coupon.max_discount:
            discount = min(discount, coupon.max_discount)
    elif coupon.discount_type == "fixed":
        discount = coupon.discount_value
    return round(min(discount, subtotal), 2)


# =====================================================
# QUOTE
# =====================================================

@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: float
    discount: float
    tax: float
    shipping: float

    @property
    def total(self) -> float:
        return round(self.subtotal - self.discount + self.tax + self.shipping, 2)


def quote(
    subtotal: float,
    address: dict,
    coupon: Optional[Coupon] = None,
    tax_rate: Optional[float] = None,
) -> PriceBreakdown:
    subtotal = round(subtotal, 2)
    discount = coupon_discount(coupon, subtotal)
    rate = config.TAX_RATE if tax_rate is None else tax_rate
    tax = round((subtotal - discount) * rate, 2)

    if coupon is not None and coupon.discount_type == "free_shipping":
        shipping = 0.0
    else:
        shipping = shipping_cost(subtotal, address)

    return PriceBreakdown(subtotal=subtotal, discount=discount, tax=tax, shipping=shipping)
