"""
Tests para el catálogo de productos

Cubren:
- Validación de precio en alta y edición
- Endpoints REST
"""

import pytest
from pydantic import ValidationError

from app.modules.products.schemas import ProductCreate, ProductUpdate


class TestProductSchemas:

    @pytest.mark.parametrize("price", [0, -100])
    def test_price_must_be_positive(self, price):
        with pytest.raises(ValidationError):
            ProductCreate(name="Muestra", price=price)

    def test_update_price_must_be_positive(self):
        with pytest.raises(ValidationError):
            ProductUpdate(price=0)
        assert ProductUpdate(price=990).price == 990

    def test_text_fields_are_trimmed(self):
        product = ProductCreate(name="  Pan amasado ", price=1000, barcode="  ")
        assert product.name == "Pan amasado"
        assert product.barcode is None


class TestProductEndpoints:

    def test_create_rejects_zero_price(self, api_client):
        response = api_client.post("/api/v1/products/", json={"name": "Muestra", "price": 0, "stock": 5})
        assert response.status_code == 422

    def test_update_rejects_zero_price(self, api_client):
        response = api_client.post("/api/v1/products/", json={"name": "Bebida", "price": 1500, "stock": 5})
        assert response.status_code == 201
        product_id = response.json()["id"]

        response = api_client.patch(f"/api/v1/products/{product_id}", json={"price": 0})
        assert response.status_code == 422
        assert api_client.get(f"/api/v1/products/{product_id}").json()["price"] == 1500
