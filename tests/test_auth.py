"""Tests for token handling and role guards."""

from datetime import timedelta

from storefront import config
from storefront.security import create_token, decode_token


class TestTokens:
    def test_round_trip(self, customer):
        payload = decode_token(create_token(customer.id, customer.role))
        assert payload["sub"] == str(customer.id)
        assert payload["role"] == "customer"

    def test_expired_token(self, customer):
        token = create_token(customer.id, customer.role, expires_in=timedelta(seconds=-1))
        assert decode_token(token) is None

    def test_garbage_token(self):
        assert decode_token("not-a-jwt") is None


class TestCurrentUser:
    def test_bearer_token(self, client, customer, auth_headers):
        assert client.get("/api/orders", headers=auth_headers(customer)).status_code == 200

    def test_cookie_token(self, client, customer):
        client.cookies.set("access_token", create_token(customer.id, customer.role))
        assert client.get("/api/orders").status_code == 200

    def test_invalid_token(self, client):
        response = client.get("/api/orders", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.json()["errorCode"] == "UNAUTHORIZED"

    def test_inactive_user(self, client, make_user, auth_headers):
        user = make_user(is_active=False)
        assert client.get("/api/orders", headers=auth_headers(user)).status_code == 401

    def test_token_for_deleted_user(self, client, db, customer, auth_headers):
        headers = auth_headers(customer)
        db.delete(customer)
        db.commit()
        assert client.get("/api/orders", headers=headers).status_code == 401

    def test_direct_login_header(self, client, customer):
        assert config.DIRECT_LOGIN_ENABLED is True
        response = client.get("/api/orders", headers={config.DIRECT_LOGIN_HEADER: str(customer.id)})
        assert response.status_code == 200

    def test_direct_login_with_bad_id(self, client):
        response = client.get("/api/orders", headers={config.DIRECT_LOGIN_HEADER: "admin"})
        assert response.status_code == 401
