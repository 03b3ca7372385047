import uuid
import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Numeric,
    Float,
    Boolean,
    DateTime,
    JSON,
    Uuid,
    ForeignKey,
    Index,
    CheckConstraint,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from storefront.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def Money(**kwargs):
    return Column(Numeric(10, 2, asdecimal=False), **kwargs)


# =========================
# ENUMS
# =========================

class Role(str, enum.Enum):
    customer = "customer"
    seller = "seller"
    admin = "admin"


class OrderStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"
    refunded = "refunded"


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    paid = "paid"
    failed = "failed"
    refunded = "refunded"


class AddressType(str, enum.Enum):
    shipping = "shipping"
    billing = "billing"


# =========================
# PROFILE (USER)
# =========================

class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    email = Column(String, nullable=False, unique=True, index=True)
    full_name = Column(String)
    phone = Column(String)

    role = Column(String, default=Role.customer.value, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("role IN ('customer', 'seller', 'admin')", name="ck_profiles_role"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin.value

    @property
    def is_seller(self) -> bool:
        return self.role == Role.seller.value


# =========================
# CATALOG
# =========================

class Category(Base):
    __tablename__ = "categories"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True, index=True)
    description = Column(Text)
    image_url = Column(String)
    parent_id = Column(Uuid, ForeignKey("categories.id", ondelete="SET NULL"))
    sort_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Product(Base):
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True)
    description = Column(Text)
    short_description = Column(Text)

    sku = Column(String, unique=True)

    price = Money(nullable=False)
    original_price = Money()

    stock = Column(Integer, default=0, nullable=False)
    images = Column(JSON, default=list)  # ordered list of URLs

    category_id = Column(Uuid, ForeignKey("categories.id", ondelete="SET NULL"), index=True)
    seller_id = Column(Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), index=True)

    rating = Column(Float, default=0)
    review_count = Column(Integer, default=0)

    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=_utcnow)

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_nonnegative"),
    )

    category = relationship("Category")
    variants = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


Index("idx_products_is_active", Product.is_active)


class ProductVariant(Base):
    """Size/concentration option; carries its own price, stock stays on the product."""
    __tablename__ = "product_variants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id = Column(
        Uuid,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String, nullable=False)
    sku = Column(String, unique=True)
    price = Money()  # NULL means "same as product"
    attributes = Column(JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    product = relationship("Product", back_populates="variants")

    @property
    def effective_price(self) -> float:
        return self.price if self.price is not None else self.product.price


# =========================
# CART
# =========================

class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    variant_id = Column(Uuid, ForeignKey("product_variants.id", ondelete="CASCADE"))
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", "variant_id", name="uq_cart_items_line"),
        CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),
    )

    product = relationship("Product")
    variant = relationship("ProductVariant")

    @property
    def unit_price(self) -> float:
        if self.variant is not None:
            return self.variant.effective_price
        return self.product.price


# =========================
# ADDRESS
# =========================

class Address(Base):
    __tablename__ = "addresses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    address_type = Column(String, default=AddressType.shipping.value, nullable=False)
    label = Column(String)  # "Home", "Work", etc.
    full_name = Column(String, nullable=False)
    phone = Column(String)
    address_line1 = Column(String, nullable=False)
    address_line2 = Column(String)
    city = Column(String, nullable=False)
    state = Column(String)
    postal_code = Column(String, nullable=False)
    country = Column(String, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=_utcnow)

    __table_args__ = (
        CheckConstraint("address_type IN ('shipping', 'billing')", name="ck_addresses_type"),
    )


# At most one default address of each type per user
Index(
    "uq_addresses_default_per_type",
    Address.user_id,
    Address.address_type,
    unique=True,
    postgresql_where=Address.is_default.is_(True),
    sqlite_where=Address.is_default.is_(True),
)


# =========================
# ORDER
# =========================

class Order(Base):
    __tablename__ = "orders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number = Column(String, nullable=False, unique=True)

    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), index=True)

    subtotal = Money(nullable=False)
    tax_amount = Money(default=0, nullable=False)
    shipping_amount = Money(default=0, nullable=False)
    discount_amount = Money(default=0, nullable=False)
    total_amount = Money(nullable=False)

    status = Column(String, default=OrderStatus.pending.value, nullable=False, index=True)
    payment_status = Column(String, default=PaymentStatus.pending.value, nullable=False)
    payment_method = Column(String)
    coupon_code = Column(String)

    shipping_address = Column(JSON)
    billing_address = Column(JSON)

    tracking_number = Column(String)
    notes = Column(Text)
    idempotency_key = Column(String)

    shipped_at = Column(DateTime(timezone=True))
    delivered_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "idempotency_key", name="uq_orders_idempotency_key"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'processing', 'shipped', "
            "'delivered', 'cancelled', 'refunded')",
            name="ck_orders_status",
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed', 'refunded')",
            name="ck_orders_payment_status",
        ),
    )

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.created_at",
    )
    user = relationship("Profile")


Index("idx_orders_created_at", Order.created_at)


class OrderItem(Base):
    """Immutable order line; ``product_snapshot`` is the source of truth for history."""
    __tablename__ = "order_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="SET NULL"))
    variant_id = Column(Uuid, ForeignKey("product_variants.id", ondelete="SET NULL"))
    quantity = Column(Integer, nullable=False)
    unit_price = Money(nullable=False)
    total_price = Money(nullable=False)
    product_snapshot = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    order = relationship("Order", back_populates="items")


class OrderTracking(Base):
    """Append-only status/location history of an order."""
    __tablename__ = "order_tracking"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String, nullable=False)
    message = Column(Text)
    location = Column(String)
    metadata_ = Column("metadata", JSON)
    created_by = Column(Uuid, ForeignKey("profiles.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


Index("idx_order_tracking_created_at", OrderTracking.order_id, OrderTracking.created_at)


# =========================
# PAYMENT METHODS
# =========================

class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String, nullable=False)  # visa/mastercard/upi/cod/...
    last_four = Column(String)
    expiry_month = Column(String)
    expiry_year = Column(String)
    cardholder_name = Column(String)
    is_default = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


# =========================
# COUPONS
# =========================

class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(String, nullable=False, unique=True, index=True)
    description = Column(Text)
    discount_type = Column(String, nullable=False)  # percentage/fixed/free_shipping
    discount_value = Column(Float, nullable=False, default=0)
    min_purchase = Column(Float, default=0)
    max_discount = Column(Float)  # For percentage discounts
    usage_limit = Column(Integer)  # Total times it can be used
    usage_per_user = Column(Integer, default=1)
    times_used = Column(Integer, default=0, nullable=False)
    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CouponUsage(Base):
    __tablename__ = "coupon_usages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    coupon_id = Column(Uuid, ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="SET NULL"))
    discount_amount = Money(nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
