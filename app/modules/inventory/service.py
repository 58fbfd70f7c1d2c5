from collections import OrderedDict
from typing import Dict, Iterable, List
from uuid import UUID
from sqlalchemy.orm import Session
import logging

from app.common.exceptions import InsufficientStock, InvalidSale, NotFound
from app.common.locking import product_key, resource_locks
from app.database.database import unit_of_work
from app.modules.products.models import Product
from app.modules.inventory.schemas import StockDirection, StockLine, LowStockProduct, LowStockResponse, StockStatus

logger = logging.getLogger(__name__)


def merge_lines(items: Iterable[StockLine]) -> "OrderedDict[UUID, int]":
    """Agrupa líneas repetidas del mismo producto sumando cantidades."""
    merged: "OrderedDict[UUID, int]" = OrderedDict()
    for item in items:
        if item.quantity <= 0:
            raise InvalidSale("La cantidad debe ser mayor a cero", product_id=item.product_id, quantity=item.quantity)
        merged[item.product_id] = merged.get(item.product_id, 0) + item.quantity
    return merged


class StockLedger:
    """
    Dueño exclusivo de ``Product.stock``.

    Proyección de estado actual sin historial: las ventas descuentan y las
    devoluciones reponen. Una venta se aplica completa o no se aplica.
    """

    def __init__(self, db: Session):
        self.db = db

    def lock_products(self, product_ids: Iterable[UUID]) -> Dict[UUID, Product]:
        """Carga los productos con bloqueo de fila, en orden de id."""
        ids = sorted(set(product_ids), key=str)
        products = self.db.query(Product).filter(
            Product.id.in_(ids)
        ).order_by(Product.id).with_for_update().all()

        found = {product.id: product for product in products}
        for product_id in ids:
            if product_id not in found:
                raise NotFound("Producto no encontrado", product_id=product_id)
        return found

    def reserve_and_apply(self, items: List[StockLine], direction: StockDirection) -> List[Product]:
        """
        Aplica las líneas al stock.

        Venta: descuenta cada producto; si alguna línea dejaría stock negativo
        falla con InsufficientStock y no se aplica ninguna.
        Devolución: repone sin validar límites.
        """
        merged = merge_lines(items)
        if not merged:
            return []

        with resource_locks.acquire(*(product_key(pid) for pid in merged)):
            with unit_of_work(self.db):
                products = self.lock_products(merged.keys())

                if direction == StockDirection.SALE:
                    shortages = [
                        {
                            "product_id": str(pid),
                            "name": products[pid].name,
                            "available": products[pid].stock,
                            "requested": qty,
                        }
                        for pid, qty in merged.items()
                        if products[pid].stock < qty
                    ]
                    if shortages:
                        first = shortages[0]
                        raise InsufficientStock(
                            f"Stock insuficiente para el producto '{first['name']}'. "
                            f"Disponible: {first['available']}, Solicitado: {first['requested']}",
                            lines=shortages,
                        )
                    sign = -1
                else:
                    sign = 1

                for pid, qty in merged.items():
                    products[pid].stock += sign * qty
                self.db.flush()

        applied = [products[pid] for pid in merged]
        for product in applied:
            if product.is_low_stock:
                logger.info(f"Stock bajo: {product.name} ({product.stock} <= {product.min_stock})")
        return applied

    def is_low_stock(self, product_id: UUID) -> bool:
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFound("Producto no encontrado", product_id=product_id)
        return product.stock <= product.min_stock

    def get_stock_status(self, product_id: UUID) -> StockStatus:
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFound("Producto no encontrado", product_id=product_id)
        return StockStatus(
            product_id=product.id,
            stock=product.stock,
            min_stock=product.min_stock,
            is_low_stock=product.is_low_stock
        )

    def low_stock_products(self) -> LowStockResponse:
        """Productos activos con stock en o bajo su umbral."""
        products = self.db.query(Product).filter(
            Product.is_active == True,
            Product.stock <= Product.min_stock
        ).order_by(Product.stock, Product.name).all()

        items = [
            LowStockProduct(
                id=product.id,
                name=product.name,
                category=product.category,
                current_stock=product.stock,
                min_stock=product.min_stock
            )
            for product in products
        ]
        return LowStockResponse(products=items, total_count=len(items))
