"""Pytest fixtures for storefront tests."""

import os
import tempfile
import uuid

# The engine is built at import time, so the database has to be chosen
# before anything from storefront is imported.
_DB_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'storefront.db')}"
os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DIRECT_LOGIN_ENABLED"] = "true"

import pytest
from fastapi.testclient import TestClient

from storefront.database import Base, SessionLocal, engine, init_database
from storefront.models import Category, Product, ProductVariant, Profile
from storefront.security import create_token


@pytest.fixture(autouse=True)
def schema():
    """Fresh tables for every test."""
    init_database()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    """Session for arranging data and checking results."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def client():
    from storefront.main import app

    return TestClient(app)


@pytest.fixture
def make_user(db):
    def _make(role="customer", **kwargs):
        user = Profile(
            id=uuid.uuid4(),
            email=kwargs.pop("email", f"{uuid.uuid4().hex[:10]}@example.com"),
            full_name=kwargs.pop("full_name", "Test User"),
            role=role,
            **kwargs,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def customer(make_user):
    return make_user(full_name="Aisha Khan")


@pytest.fixture
def admin(make_user):
    return make_user(role="admin", full_name="Store Admin")


@pytest.fixture
def seller(make_user):
    return make_user(role="seller", full_name="Attar House")


@pytest.fixture
def category(db):
    category = Category(id=uuid.uuid4(), name="Attars", slug="attars")
    db.add(category)
    db.commit()
    return category


@pytest.fixture
def make_product(db):
    def _make(price=100.0, stock=5, seller=None, **kwargs):
        suffix = uuid.uuid4().hex[:8]
        product = Product(
            id=uuid.uuid4(),
            name=kwargs.pop("name", f"Oud Attar {suffix}"),
            slug=kwargs.pop("slug", f"oud-attar-{suffix}"),
            sku=kwargs.pop("sku", f"SKU-{suffix}"),
            short_description=kwargs.pop("short_description", "Aged oud oil"),
            price=price,
            stock=stock,
            images=kwargs.pop("images", [f"https://cdn.example.com/{suffix}.jpg"]),
            seller_id=seller.id if seller else None,
            **kwargs,
        )
        db.add(product)
        db.commit()
        return product

    return _make


@pytest.fixture
def make_variant(db):
    def _make(product, name="12ml", price=None):
        variant = ProductVariant(
            id=uuid.uuid4(),
            product_id=product.id,
            name=name,
            sku=f"VAR-{uuid.uuid4().hex[:8]}",
            price=price,
        )
        db.add(variant)
        db.commit()
        return variant

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_token(user.id, user.role)}"}

    return _headers


@pytest.fixture
def shipping_address():
    """Kashmir address in the camelCase shape clients send."""
    return {
        "fullName": "Aisha Khan",
        "phone": "9876543210",
        "addressLine1": "12 Residency Road",
        "city": "Srinagar",
        "state": "Jammu and Kashmir",
        "postalCode": "190001",
        "country": "India",
    }
