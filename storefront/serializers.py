"""
Response shapes.

Models and services use snake_case throughout; this module is where the
camelCase field names clients see are produced.
"""
from datetime import datetime, timezone
from typing import Optional

from pydantic.alias_generators import to_camel

from storefront.models import Address, Order, OrderItem, OrderTracking, Product
from storefront.services.cart import CartView
from storefront.services.pricing import PriceBreakdown, ShippingZone


def ok(data, **extra) -> dict:
    return {"success": True, "data": data, **extra}


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _id(value) -> Optional[str]:
    return str(value) if value is not None else None


def camelize(data: Optional[dict]) -> Optional[dict]:
    if data is None:
        return None
    return {to_camel(key): value for key, value in data.items()}


# =====================================================
# ORDERS
# =====================================================

def serialize_order_summary(order: Order) -> dict:
    return {
        "id": str(order.id),
        "orderNumber": order.order_number,
        "userId": _id(order.user_id),
        "total": order.total_amount,
        "subtotal": order.subtotal,
        "taxAmount": order.tax_amount,
        "shippingAmount": order.shipping_amount,
        "discountAmount": order.discount_amount,
        "status": order.status,
        "paymentStatus": order.payment_status,
        "paymentMethod": order.payment_method,
        "trackingNumber": order.tracking_number,
        "itemCount": len(order.items),
        "createdAt": _iso(order.created_at),
        "updatedAt": _iso(order.updated_at),
    }


def serialize_order_item(item: OrderItem) -> dict:
    # Display fields come from the snapshot so history survives catalog edits
    snapshot = item.product_snapshot or {}
    return {
        "id": str(item.id),
        "productId": _id(item.product_id),
        "variantId": _id(item.variant_id),
        "quantity": item.quantity,
        "price": item.unit_price,
        "unitPrice": item.unit_price,
        "totalPrice": item.total_price,
        "productSnapshot": snapshot,
        "product": {
            "id": snapshot.get("id"),
            "name": snapshot.get("name"),
            "images": snapshot.get("images") or [],
            "variantName": snapshot.get("variantName"),
        },
    }


def serialize_tracking_entry(entry: OrderTracking) -> dict:
    return {
        "id": entry.id,
        "status": entry.status,
        "message": entry.message,
        "location": entry.location,
        "metadata": entry.metadata_,
        "createdBy": _id(entry.created_by),
        "createdAt": _iso(entry.created_at),
    }


def serialize_order_detail(order: Order, timeline: list[OrderTracking]) -> dict:
    data = serialize_order_summary(order)
    data.update({
        "couponCode": order.coupon_code,
        "shippingAddress": camelize(order.shipping_address),
        "billingAddress": camelize(order.billing_address),
        "notes": order.notes,
        "shippedAt": _iso(order.shipped_at),
        "deliveredAt": _iso(order.delivered_at),
        "items": [serialize_order_item(i) for i in order.items],
        "trackingHistory": [serialize_tracking_entry(t) for t in timeline],
    })
    return data


# =====================================================
# CART
# =====================================================

def serialize_cart(view: CartView) -> dict:
    return {
        "items": [
            {
                "id": str(item.id),
                "productId": str(item.product_id),
                "variantId": _id(item.variant_id),
                "quantity": item.quantity,
                "unitPrice": item.unit_price,
                "lineTotal": round(item.unit_price * item.quantity, 2),
                "product": {
                    "id": str(item.product.id),
                    "name": item.product.name,
                    "slug": item.product.slug,
                    "price": item.product.price,
                    "images": item.product.images or [],
                    "stock": item.product.stock,
                },
                "variant": {
                    "id": str(item.variant.id),
                    "name": item.variant.name,
                    "price": item.variant.effective_price,
                } if item.variant else None,
            }
            for item in view.items
        ],
        "subtotal": view.subtotal,
        "itemCount": view.item_count,
    }


# =====================================================
# ADDRESSES / CATALOG
# =====================================================

def serialize_address(address: Address) -> dict:
    return {
        "id": str(address.id),
        "addressType": address.address_type,
        "label": address.label,
        "fullName": address.full_name,
        "phone": address.phone,
        "addressLine1": address.address_line1,
        "addressLine2": address.address_line2,
        "city": address.city,
        "state": address.state,
        "postalCode": address.postal_code,
        "country": address.country,
        "isDefault": address.is_default,
        "createdAt": _iso(address.created_at),
    }


def serialize_product(product: Product, include_variants: bool = False) -> dict:
    data = {
        "id": str(product.id),
        "name": product.name,
        "slug": product.slug,
        "shortDescription": product.short_description,
        "price": product.price,
        "originalPrice": product.original_price,
        "stock": product.stock,
        "inStock": product.stock > 0,
        "images": product.images or [],
        "sku": product.sku,
        "categoryId": _id(product.category_id),
        "rating": product.rating,
        "reviewCount": product.review_count,
    }
    if include_variants:
        data["description"] = product.description
        data["variants"] = [
            {
                "id": str(v.id),
                "name": v.name,
                "sku": v.sku,
                "price": v.effective_price,
                "attributes": v.attributes or {},
            }
            for v in product.variants
        ]
    return data


# =====================================================
# SHIPPING
# =====================================================

def serialize_zone(zone: ShippingZone) -> dict:
    return {
        "id": zone.id,
        "name": zone.name,
        "countries": list(zone.countries),
        "baseRate": zone.base_rate,
        "freeShippingThreshold": zone.free_shipping_threshold,
        "estimatedDeliveryDays": {"min": zone.delivery_days[0], "max": zone.delivery_days[1]},
    }


def serialize_quote(
    breakdown: PriceBreakdown,
    zone: ShippingZone,
    coupon_code: Optional[str] = None,
) -> dict:
    return {
        "subtotal": breakdown.subtotal,
        "discount": breakdown.discount,
        "tax": breakdown.tax,
        "shipping": breakdown.shipping,
        "total": breakdown.total,
        "isFreeShipping": breakdown.shipping == 0,
        "amountToFreeShipping": round(max(0.0, zone.free_shipping_threshold - breakdown.subtotal), 2),
        "couponCode": coupon_code,
        "zone": serialize_zone(zone),
    }
