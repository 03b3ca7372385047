"""Tests for the query/transaction interface and the connection pool."""

import uuid

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.pool import QueuePool

from storefront.database import (
    SessionLocal,
    check_connection,
    engine,
    query,
    transaction,
    with_transaction,
)
from storefront.errors import DatabaseError, NotFound, PoolTimeoutError
from storefront.models import Profile


def _profile(email="buyer@example.com"):
    return Profile(id=uuid.uuid4(), email=email, full_name="Buyer")


def _profile_count(db):
    db.expire_all()
    return db.scalar(select(func.count(Profile.id)))


class TestQuery:
    def test_returns_rows_as_dicts(self):
        rows = query("SELECT 1 AS one, 'attar' AS label")
        assert rows == [{"one": 1, "label": "attar"}]

    def test_bound_parameters(self, make_product):
        make_product(name="Rose Attar", slug="rose-attar")

        rows = query("SELECT name FROM products WHERE slug = :slug", {"slug": "rose-attar"})

        assert rows == [{"name": "Rose Attar"}]

    def test_parameter_values_are_not_interpolated(self, make_product):
        make_product(slug="rose-attar")

        rows = query(
            "SELECT name FROM products WHERE slug = :slug",
            {"slug": "rose-attar' OR '1'='1"},
        )

        assert rows == []

    def test_statement_without_rows(self, make_product):
        make_product(slug="musk", stock=3)

        rows = query("UPDATE products SET stock = stock - 1 WHERE slug = :slug", {"slug": "musk"})

        assert rows == []
        assert query("SELECT stock FROM products WHERE slug = 'musk'") == [{"stock": 2}]

    def test_rejects_positional_parameters(self):
        with pytest.raises(TypeError):
            query("SELECT :a AS a", ["x"])

    def test_unknown_table_raises_database_error(self):
        with pytest.raises(DatabaseError):
            query("SELECT * FROM no_such_table")

    def test_constraint_violation_raises_database_error(self, make_product):
        make_product(slug="amber", stock=1)

        with pytest.raises(DatabaseError):
            query("UPDATE products SET stock = -1 WHERE slug = 'amber'")


class TestTransaction:
    def test_commits_on_success(self, db):
        with_transaction(lambda s: s.add(_profile()))
        assert _profile_count(db) == 1

    def test_returns_callable_result(self):
        assert with_transaction(lambda s: "done") == "done"

    def test_rolls_back_on_exception(self, db):
        def work(session):
            session.add(_profile())
            session.flush()
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            with_transaction(work)

        assert _profile_count(db) == 0

    def test_store_errors_propagate_unchanged(self, db):
        def work(session):
            session.add(_profile())
            session.flush()
            raise NotFound("Order not found")

        with pytest.raises(NotFound):
            with_transaction(work)

        assert _profile_count(db) == 0

    def test_integrity_error_is_translated(self, db):
        def work(session):
            session.add(_profile("same@example.com"))
            session.add(_profile("same@example.com"))
            session.flush()

        with pytest.raises(DatabaseError):
            with_transaction(work)

        assert _profile_count(db) == 0

    def test_uses_given_session(self, db):
        with_transaction(lambda s: s.add(_profile()), db)
        assert _profile_count(db) == 1

    def test_context_manager(self, db):
        with pytest.raises(ValueError):
            with transaction(db) as session:
                session.add(_profile())
                session.flush()
                raise ValueError("nope")

        assert _profile_count(db) == 0


class TestPool:
    def test_exhausted_pool_times_out(self, tmp_path):
        bounded = create_engine(
            f"sqlite:///{tmp_path / 'pool.db'}",
            poolclass=QueuePool,
            pool_size=1,
            max_overflow=0,
            pool_timeout=0.1,
            connect_args={"check_same_thread": False},
        )
        held = bounded.connect()
        try:
            with pytest.raises(PoolTimeoutError):
                query("SELECT 1", bind=bounded)
        finally:
            held.close()
            bounded.dispose()

    def test_pool_timeout_maps_to_503(self):
        assert PoolTimeoutError("x").status_code == 503
        assert PoolTimeoutError("x").error_code == "POOL_TIMEOUT"

    def test_check_connection(self):
        assert check_connection() is True


class TestHealth:
    def test_health_reports_database(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"

    def test_health_is_the_only_root_route(self, client):
        assert client.get("/ping").status_code == 404

class TestErrorsOverHttp:
    def test_exhausted_pool_renders_pool_timeout(self, client, customer, auth_headers, tmp_path):
        bounded = create_engine(
            f"sqlite:///{tmp_path / 'pool.db'}",
            poolclass=QueuePool,
            pool_size=1,
            max_overflow=0,
            pool_timeout=0.1,
            connect_args={"check_same_thread": False},
        )
        headers = auth_headers(customer)
        held = bounded.connect()
        SessionLocal.configure(bind=bounded)
        try:
            response = client.get("/api/orders", headers=headers)
        finally:
            SessionLocal.configure(bind=engine)
            held.close()
            bounded.dispose()

        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert body["errorCode"] == "POOL_TIMEOUT"

    def test_failed_read_renders_database_error(self, client, customer, auth_headers):
        query("DROP TABLE orders")

        response = client.get("/api/orders", headers=auth_headers(customer))

        assert response.status_code == 500
        assert response.json()["errorCode"] == "DATABASE_ERROR"
