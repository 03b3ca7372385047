"""Tests for the public catalog routes."""

import uuid


class TestListProducts:
    def test_only_active_products(self, client, make_product):
        visible = make_product(name="Shamama")
        make_product(name="Retired", is_active=False)

        response = client.get("/api/products")

        assert response.status_code == 200
        body = response.json()
        assert [p["id"] for p in body["data"]] == [str(visible.id)]
        assert body["pagination"]["total"] == 1

    def test_category_filter_by_slug(self, client, category, make_product):
        attar = make_product(category_id=category.id)
        make_product()

        response = client.get("/api/products?category=attars")

        assert [p["id"] for p in response.json()["data"]] == [str(attar.id)]

    def test_search(self, client, make_product):
        make_product(name="Rose Attar")
        make_product(name="White Musk")

        response = client.get("/api/products?search=rose")

        assert [p["name"] for p in response.json()["data"]] == ["Rose Attar"]

    def test_in_stock_filter(self, client, make_product):
        make_product(stock=0)
        available = make_product(stock=2)

        response = client.get("/api/products?inStock=true")

        assert [p["id"] for p in response.json()["data"]] == [str(available.id)]

    def test_pagination(self, client, make_product):
        for _ in range(3):
            make_product()

        body = client.get("/api/products?perPage=2&page=2").json()

        assert len(body["data"]) == 1
        assert body["pagination"]["pages"] == 2


class TestProductDetail:
    def test_by_slug_with_variants(self, client, make_product, make_variant):
        product = make_product(slug="jannat-ul-firdous", price=100.0)
        make_variant(product, name="12ml", price=180.0)

        response = client.get("/api/products/jannat-ul-firdous")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == str(product.id)
        assert data["variants"][0]["price"] == 180.0

    def test_by_id(self, client, make_product):
        product = make_product()
        assert client.get(f"/api/products/{product.id}").json()["data"]["slug"] == product.slug

    def test_unknown(self, client):
        assert client.get(f"/api/products/{uuid.uuid4()}").status_code == 404
