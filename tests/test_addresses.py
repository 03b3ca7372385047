"""Tests for the address book."""

import uuid

import pytest

from storefront.errors import InvalidAddress
from storefront.services.addresses import validate_address


def _create(client, headers, address, **extra):
    return client.post("/api/addresses", json={**address, **extra}, headers=headers)


class TestValidateAddress:
    def test_normalises_whitespace(self):
        address = validate_address({
            "full_name": "  Aisha Khan ",
            "address_line1": "12 Residency Road",
            "city": "Srinagar",
            "postal_code": "190001",
            "country": "India",
            "phone": "",
        })
        assert address["full_name"] == "Aisha Khan"
        assert address["phone"] is None
        assert address["state"] is None

    def test_reports_every_missing_field(self):
        with pytest.raises(InvalidAddress) as exc_info:
            validate_address({"full_name": "Aisha Khan"})
        assert exc_info.value.missing == ["address_line1", "city", "postal_code", "country"]


class TestAddressBook:
    def test_first_address_becomes_default(self, client, customer, auth_headers, shipping_address):
        response = _create(client, auth_headers(customer), shipping_address, label="Home")

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["isDefault"] is True
        assert data["label"] == "Home"
        assert data["addressType"] == "shipping"

    def test_new_default_unsets_previous(self, client, customer, auth_headers, shipping_address):
        headers = auth_headers(customer)
        home = _create(client, headers, shipping_address, label="Home").json()["data"]
        work = _create(client, headers, shipping_address, label="Work", isDefault=True).json()["data"]

        listing = client.get("/api/addresses", headers=headers).json()["data"]

        defaults = {a["id"]: a["isDefault"] for a in listing}
        assert defaults == {home["id"]: False, work["id"]: True}
        assert listing[0]["id"] == work["id"]

    def test_set_default(self, client, customer, auth_headers, shipping_address):
        headers = auth_headers(customer)
        home = _create(client, headers, shipping_address, label="Home").json()["data"]
        work = _create(client, headers, shipping_address, label="Work").json()["data"]
        assert work["isDefault"] is False

        response = client.post(f"/api/addresses/{work['id']}/default", headers=headers)

        assert response.status_code == 200
        assert response.json()["data"]["isDefault"] is True
        refreshed = client.get(f"/api/addresses/{home['id']}", headers=headers).json()["data"]
        assert refreshed["isDefault"] is False

    def test_defaults_are_per_type(self, client, customer, auth_headers, shipping_address):
        headers = auth_headers(customer)
        shipping = _create(client, headers, shipping_address).json()["data"]
        billing = _create(client, headers, shipping_address, addressType="billing").json()["data"]

        assert shipping["isDefault"] is True
        assert billing["isDefault"] is True

    def test_invalid_type(self, client, customer, auth_headers, shipping_address):
        response = _create(client, auth_headers(customer), shipping_address, addressType="pickup")
        assert response.status_code == 400

    def test_missing_fields(self, client, customer, auth_headers):
        response = _create(client, auth_headers(customer), {"fullName": "Aisha Khan"})

        assert response.status_code == 400
        body = response.json()
        assert body["errorCode"] == "INVALID_ADDRESS"
        assert "city" in body["missingFields"]

    def test_update(self, client, customer, auth_headers, shipping_address):
        headers = auth_headers(customer)
        created = _create(client, headers, shipping_address).json()["data"]

        response = client.patch(
            f"/api/addresses/{created['id']}",
            json={"city": "Baramulla", "postalCode": "193101"},
            headers=headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["city"] == "Baramulla"
        assert data["postalCode"] == "193101"
        assert data["fullName"] == "Aisha Khan"

    def test_update_cannot_blank_required_field(self, client, customer, auth_headers, shipping_address):
        headers = auth_headers(customer)
        created = _create(client, headers, shipping_address).json()["data"]

        response = client.patch(f"/api/addresses/{created['id']}", json={"city": ""}, headers=headers)

        assert response.status_code == 400
        assert response.json()["errorCode"] == "INVALID_ADDRESS"

    def test_delete_default_promotes_another(self, client, customer, auth_headers, shipping_address):
        headers = auth_headers(customer)
        home = _create(client, headers, shipping_address, label="Home").json()["data"]
        work = _create(client, headers, shipping_address, label="Work").json()["data"]

        response = client.delete(f"/api/addresses/{home['id']}", headers=headers)

        assert response.status_code == 204
        listing = client.get("/api/addresses", headers=headers).json()["data"]
        assert [(a["id"], a["isDefault"]) for a in listing] == [(work["id"], True)]

    def test_other_users_address_not_found(self, client, customer, make_user, auth_headers, shipping_address):
        created = _create(client, auth_headers(customer), shipping_address).json()["data"]

        response = client.get(f"/api/addresses/{created['id']}", headers=auth_headers(make_user()))

        assert response.status_code == 404

    def test_unknown_address(self, client, customer, auth_headers):
        response = client.delete(f"/api/addresses/{uuid.uuid4()}", headers=auth_headers(customer))
        assert response.status_code == 404
