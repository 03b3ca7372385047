"""Tests for the shipping zone and price quote routes."""

import uuid
from datetime import datetime, timedelta, timezone

from storefront.database import with_transaction
from storefront.models import Coupon
from storefront.services import cart


def _quote(client, user, auth_headers, **body):
    return client.post("/api/shipping/quote", json=body, headers=auth_headers(user))


class TestZones:
    def test_lists_every_zone(self, client):
        response = client.get("/api/shipping/zones")

        assert response.status_code == 200
        zones = response.json()["data"]
        assert [z["id"] for z in zones] == [
            "kashmir",
            "india-metro",
            "india-rest",
            "international-gcc",
            "international-us-uk",
            "international-other",
        ]
        assert zones[0]["baseRate"] == 50
        assert zones[0]["freeShippingThreshold"] == 2000
        assert zones[0]["estimatedDeliveryDays"] == {"min": 2, "max": 3}


class TestQuote:
    def test_explicit_subtotal(self, client, customer, auth_headers, shipping_address):
        response = _quote(client, customer, auth_headers, subtotal=100, shippingAddress=shipping_address)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["subtotal"] == 100
        assert data["tax"] == 18.0
        assert data["shipping"] == 50
        assert data["total"] == 168.0
        assert data["isFreeShipping"] is False
        assert data["amountToFreeShipping"] == 1900
        assert data["zone"]["id"] == "kashmir"

    def test_prices_the_cart(self, client, customer, auth_headers, make_product):
        product = make_product(price=1000.0, stock=5)
        with_transaction(lambda s: cart.add_item(s, customer.id, product.id, None, 2))

        response = _quote(client, customer, auth_headers, shippingAddress={"country": "India", "state": "Goa"})

        data = response.json()["data"]
        assert data["subtotal"] == 2000
        assert data["shipping"] == 0
        assert data["isFreeShipping"] is True
        assert data["zone"]["id"] == "india-rest"

    def test_matches_checkout_total(self, client, customer, auth_headers, make_product, shipping_address):
        product = make_product(price=250.0, stock=5)
        with_transaction(lambda s: cart.add_item(s, customer.id, product.id, None, 1))

        quoted = _quote(client, customer, auth_headers, shippingAddress=shipping_address).json()["data"]
        order = client.post(
            "/api/orders",
            json={"shippingAddress": shipping_address, "paymentMethod": "cod"},
            headers=auth_headers(customer),
        ).json()["data"]

        assert order["total"] == quoted["total"]
        assert order["taxAmount"] == quoted["tax"]
        assert order["shippingAmount"] == quoted["shipping"]

    def test_saved_address(self, client, customer, auth_headers, shipping_address):
        headers = auth_headers(customer)
        created = client.post("/api/addresses", json=shipping_address, headers=headers).json()["data"]

        response = _quote(client, customer, auth_headers, subtotal=500, addressId=created["id"])

        assert response.json()["data"]["zone"]["id"] == "kashmir"

    def test_coupon_is_applied(self, client, db, customer, auth_headers, shipping_address):
        now = datetime.now(timezone.utc)
        db.add(Coupon(
            id=uuid.uuid4(),
            code="WELCOME10",
            discount_type="percentage",
            discount_value=10,
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=1),
        ))
        db.commit()

        response = _quote(
            client, customer, auth_headers,
            subtotal=1000, shippingAddress=shipping_address, couponCode="welcome10",
        )

        data = response.json()["data"]
        assert data["discount"] == 100
        assert data["tax"] == 162.0
        assert data["couponCode"] == "WELCOME10"

    def test_unknown_coupon(self, client, customer, auth_headers, shipping_address):
        response = _quote(
            client, customer, auth_headers,
            subtotal=1000, shippingAddress=shipping_address, couponCode="NOPE",
        )

        assert response.status_code == 400
        assert response.json()["errorCode"] == "INVALID_COUPON"

    def test_empty_cart_without_subtotal(self, client, customer, auth_headers, shipping_address):
        response = _quote(client, customer, auth_headers, shippingAddress=shipping_address)

        assert response.status_code == 400
        assert response.json()["errorCode"] == "EMPTY_CART"

    def test_address_required(self, client, customer, auth_headers):
        response = _quote(client, customer, auth_headers, subtotal=100)

        assert response.status_code == 400
        assert response.json()["errorCode"] == "VALIDATION_ERROR"

    def test_requires_authentication(self, client, shipping_address):
        response = client.post(
            "/api/shipping/quote", json={"subtotal": 100, "shippingAddress": shipping_address}
        )
        assert response.status_code == 401
