from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime

from app.common.money import Amount, PositiveAmount


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Nombre del producto")
    barcode: Optional[str] = Field(None, max_length=50, description="Código de barras")
    category: str = Field("General", min_length=1, max_length=100, description="Categoría")
    price: PositiveAmount = Field(..., description="Precio unitario")
    stock: int = Field(0, ge=0, description="Stock inicial")
    min_stock: int = Field(0, ge=0, description="Stock mínimo para alertas")

    @field_validator('name', 'category')
    @classmethod
    def validate_text(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError('El campo no puede estar vacío')
        return cleaned

    @field_validator('barcode')
    @classmethod
    def validate_barcode(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v.strip() == "":
            return None
        return v.strip()


class ProductUpdate(BaseModel):
    """El stock no se edita aquí: solo lo mueven ventas y devoluciones"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    barcode: Optional[str] = Field(None, max_length=50)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    price: Optional[PositiveAmount] = None
    min_stock: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class ProductOut(BaseModel):
    id: UUID
    name: str
    barcode: Optional[str] = None
    category: str
    price: Amount
    stock: int
    min_stock: int
    is_active: bool
    is_low_stock: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProductList(BaseModel):
    products: List[ProductOut]
    total: int
    limit: int
    offset: int
