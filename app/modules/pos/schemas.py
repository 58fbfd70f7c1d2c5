"""
Esquemas Pydantic para el módulo POS (Point of Sale)

Define la validación de datos de entrada y salida para:
- Shift: apertura, cierre y resumen del turno
- ShiftExpense: gastos del turno
- Sale: ventas y devoluciones
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Dict, Any
from uuid import UUID
from datetime import datetime

from app.common.money import Amount, PositiveAmount, NonNegativeAmount
from app.modules.pos.models import ShiftStatus, ShiftType, PaymentMethod, SaleType, ExpenseType


# ===== SHIFT SCHEMAS =====

class ShiftOpen(BaseModel):
    """Esquema para abrir turno"""
    seller: str = Field(..., min_length=1, max_length=100, description="Vendedor a cargo")
    type: ShiftType = Field(ShiftType.DIA, description="Turno día o noche")
    initial_cash: NonNegativeAmount = Field(0, description="Efectivo inicial en caja")
    opening_notes: Optional[str] = Field(None, max_length=500, description="Notas de apertura")

    @field_validator('seller')
    @classmethod
    def validate_seller(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError('El vendedor no puede estar vacío')
        return cleaned


class ShiftClose(BaseModel):
    """Esquema para cerrar turno con arqueo"""
    cash_counted: Amount = Field(..., description="Efectivo contado al cierre")
    closing_notes: Optional[str] = Field(None, max_length=500, description="Notas de cierre")


class ShiftSummaryOut(BaseModel):
    total: Amount
    tickets: int
    by_payment: Dict[str, Amount]


class ShiftExpenseCreate(BaseModel):
    type: ExpenseType = Field(..., description="Tipo de gasto")
    amount: PositiveAmount
    supplier: Optional[str] = Field(None, max_length=200, description="Proveedor (si aplica)")
    description: Optional[str] = Field(None, max_length=255)
    paid_from_cash: bool = Field(True, description="Si el gasto sale de la caja")


class ShiftExpenseOut(BaseModel):
    id: UUID
    shift_id: UUID
    type: ExpenseType
    amount: Amount
    supplier: Optional[str] = None
    description: Optional[str] = None
    paid_from_cash: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ShiftOut(BaseModel):
    id: UUID
    seller: str
    type: ShiftType
    status: ShiftStatus
    initial_cash: Amount
    opened_at: datetime
    closed_at: Optional[datetime] = None

    # Arqueo (solo en turnos cerrados)
    cash_expected: Optional[Amount] = None
    cash_counted: Optional[Amount] = None
    difference: Optional[Amount] = None
    total_sales: Optional[Amount] = None
    tickets: Optional[int] = None
    payments_breakdown: Optional[Dict[str, Amount]] = None
    total_expenses: Optional[Amount] = None

    opening_notes: Optional[str] = None
    closing_notes: Optional[str] = None

    model_config = {"from_attributes": True}


class ShiftDetail(ShiftOut):
    """Turno con resumen vigente y gastos"""
    summary: ShiftSummaryOut
    expenses: List[ShiftExpenseOut] = []


class ShiftList(BaseModel):
    shifts: List[ShiftOut]
    total: int
    limit: int
    offset: int


class ShiftCheckOut(BaseModel):
    """Acumulados del turno contra lo recalculado desde ventas y gastos"""
    shift_id: UUID
    status: ShiftStatus
    stored: ShiftSummaryOut
    computed: ShiftSummaryOut
    consistent: bool
    issues: List[str] = Field(default_factory=list)


# ===== SALE SCHEMAS =====

class CartLine(BaseModel):
    """Línea del carro: producto y cantidad"""
    product_id: UUID
    quantity: int = Field(..., gt=0, description="Cantidad a vender")


class SaleCreate(BaseModel):
    """
    Esquema para registrar una venta.

    - cash: ``cash_received`` por defecto es el total y no puede ser menor
    - fiado: requiere ``client_id``
    """
    shift_id: UUID
    seller: str = Field(..., min_length=1, max_length=100)
    items: List[CartLine] = Field(..., min_length=1, description="Productos del carro")
    payment_method: PaymentMethod
    client_id: Optional[UUID] = None
    cash_received: Optional[NonNegativeAmount] = None
    notes: Optional[Dict[str, Any]] = None

    @model_validator(mode='after')
    def validate_payment(self):
        if self.payment_method == PaymentMethod.FIADO and self.client_id is None:
            raise ValueError('La venta fiada requiere un cliente')
        return self


class ReturnCreate(BaseModel):
    """
    Devolución de una venta existente.

    Sin ``items`` se devuelve todo lo que queda por devolver. El reembolso
    por defecto usa el medio de pago de la venta original.
    """
    original_sale_id: UUID
    shift_id: UUID
    seller: str = Field(..., min_length=1, max_length=100)
    items: Optional[List[CartLine]] = None
    refund_method: Optional[PaymentMethod] = None
    notes: Optional[Dict[str, Any]] = None


class SaleItemOut(BaseModel):
    product_id: UUID
    name: str
    unit_price: Amount
    quantity: int
    subtotal: Amount

    model_config = {"from_attributes": True}


class SaleOut(BaseModel):
    id: UUID
    ticket: str
    type: SaleType
    total: Amount
    payment_method: PaymentMethod
    payment_method_label: str
    cash_received: Optional[Amount] = None
    change: Optional[Amount] = None
    client_id: Optional[UUID] = None
    shift_id: UUID
    seller: str
    original_sale_id: Optional[UUID] = None
    notes: Optional[Dict[str, Any]] = None
    created_at: datetime
    items: List[SaleItemOut]

    model_config = {"from_attributes": True}


class SaleList(BaseModel):
    sales: List[SaleOut]
    total: int
    limit: int
    offset: int
