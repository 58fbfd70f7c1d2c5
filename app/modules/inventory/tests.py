"""
Tests para el libro de stock

Cubren:
- Descuento todo o nada en ventas
- Reposición en devoluciones
- Agrupación de líneas repetidas
- Señal de stock bajo
"""

from uuid import uuid4

import pytest

from app.common.exceptions import InsufficientStock, InvalidSale, NotFound
from app.modules.inventory.schemas import StockDirection, StockLine
from app.modules.inventory.service import StockLedger, merge_lines
from app.modules.products.models import Product


def stock_of(db, product_id):
    db.expire_all()
    return db.query(Product).filter(Product.id == product_id).one().stock


class TestMergeLines:

    def test_repeated_products_are_summed_in_order(self):
        first, second = uuid4(), uuid4()
        merged = merge_lines([StockLine(first, 2), StockLine(second, 1), StockLine(first, 3)])
        assert list(merged.items()) == [(first, 5), (second, 1)]

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_non_positive_quantity(self, quantity):
        with pytest.raises(InvalidSale):
            merge_lines([StockLine(uuid4(), quantity)])


class TestReserveAndApply:

    def test_sale_decrements_every_line(self, db_session, make_product):
        rice = make_product(name="Arroz", stock=10)
        oil = make_product(name="Aceite", stock=4)

        StockLedger(db_session).reserve_and_apply(
            [StockLine(rice.id, 3), StockLine(oil.id, 4)], StockDirection.SALE
        )

        assert stock_of(db_session, rice.id) == 7
        assert stock_of(db_session, oil.id) == 0

    def test_shortage_applies_nothing(self, db_session, make_product):
        rice = make_product(name="Arroz", stock=10)
        oil = make_product(name="Aceite", stock=1)

        with pytest.raises(InsufficientStock) as exc_info:
            StockLedger(db_session).reserve_and_apply(
                [StockLine(rice.id, 3), StockLine(oil.id, 2)], StockDirection.SALE
            )

        shortage = exc_info.value.context["lines"]
        assert shortage == [{"product_id": str(oil.id), "name": "Aceite", "available": 1, "requested": 2}]
        assert stock_of(db_session, rice.id) == 10
        assert stock_of(db_session, oil.id) == 1

    def test_duplicate_lines_checked_as_one(self, db_session, make_product):
        product = make_product(stock=4)

        with pytest.raises(InsufficientStock):
            StockLedger(db_session).reserve_and_apply(
                [StockLine(product.id, 3), StockLine(product.id, 2)], StockDirection.SALE
            )

        assert stock_of(db_session, product.id) == 4

    def test_return_restocks_without_limit(self, db_session, make_product):
        product = make_product(stock=0)

        StockLedger(db_session).reserve_and_apply([StockLine(product.id, 6)], StockDirection.RETURN)

        assert stock_of(db_session, product.id) == 6

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFound):
            StockLedger(db_session).reserve_and_apply([StockLine(uuid4(), 1)], StockDirection.SALE)

    def test_empty_list_is_noop(self, db_session):
        assert StockLedger(db_session).reserve_and_apply([], StockDirection.SALE) == []


class TestLowStock:

    def test_threshold_is_inclusive(self, db_session, make_product):
        product = make_product(stock=3, min_stock=2)
        ledger = StockLedger(db_session)

        assert ledger.is_low_stock(product.id) is False
        ledger.reserve_and_apply([StockLine(product.id, 1)], StockDirection.SALE)
        assert ledger.is_low_stock(product.id) is True

    def test_low_stock_listing_skips_inactive(self, db_session, make_product):
        make_product(name="Fideos", stock=1, min_stock=5)
        make_product(name="Sal", stock=20, min_stock=5)
        retired = make_product(name="Descontinuado", stock=0, min_stock=5)
        retired.is_active = False
        db_session.commit()

        result = StockLedger(db_session).low_stock_products()

        assert result.total_count == 1
        assert result.products[0].name == "Fideos"

    def test_stock_endpoints(self, api_client, make_product):
        product = make_product(name="Azúcar", stock=1, min_stock=1)

        status = api_client.get(f"/api/v1/stock/product/{product.id}").json()
        assert status["stock"] == 1
        assert status["is_low_stock"] is True

        low = api_client.get("/api/v1/stock/low").json()
        assert [p["name"] for p in low["products"]] == ["Azúcar"]
