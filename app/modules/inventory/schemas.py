from pydantic import BaseModel, Field
from typing import List
from uuid import UUID
from dataclasses import dataclass
from enum import Enum


class StockDirection(str, Enum):
    SALE = "sale"      # Descuenta stock
    RETURN = "return"  # Repone stock


@dataclass(frozen=True)
class StockLine:
    """Línea de stock a aplicar: producto y cantidad positiva"""
    product_id: UUID
    quantity: int


class LowStockProduct(BaseModel):
    id: UUID
    name: str
    category: str
    current_stock: int
    min_stock: int

    model_config = {"from_attributes": True}


class LowStockResponse(BaseModel):
    products: List[LowStockProduct]
    total_count: int


class StockStatus(BaseModel):
    product_id: UUID
    stock: int = Field(description="Cantidad disponible")
    min_stock: int = Field(description="Umbral de alerta")
    is_low_stock: bool
