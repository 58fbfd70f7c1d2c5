from fastapi import APIRouter
from uuid import UUID

from app.dependencies.dbDependecies import db_dependency
from app.modules.inventory.service import StockLedger
from app.modules.inventory.schemas import LowStockResponse, StockStatus

stock_router = APIRouter(prefix="/stock", tags=["Stock Management"])


@stock_router.get("/low", response_model=LowStockResponse)
def get_low_stock(db: db_dependency):
    """Productos con stock en o bajo el mínimo."""
    return StockLedger(db).low_stock_products()


@stock_router.get("/product/{product_id}", response_model=StockStatus)
def get_product_stock(product_id: UUID, db: db_dependency):
    """Stock actual de un producto y su señal de stock bajo."""
    return StockLedger(db).get_stock_status(product_id)
