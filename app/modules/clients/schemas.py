"""
Esquemas Pydantic para el módulo de Clientes (fiado)
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime

from app.common.money import Amount, PositiveAmount, NonNegativeAmount
from app.modules.clients.models import MovementType, PaymentSchedule


# ===== CLIENT SCHEMAS =====

class ClientCreate(BaseModel):
    """Esquema para crear cliente"""
    name: str = Field(..., min_length=1, max_length=200, description="Nombre del cliente")
    phone: Optional[str] = Field(None, max_length=50, description="Teléfono")
    credit_limit: NonNegativeAmount = Field(0, description="Cupo de crédito")
    payment_schedule: PaymentSchedule = Field(PaymentSchedule.IMMEDIATE, description="Modalidad de pago")
    authorized: bool = Field(True, description="Autorizado para comprar fiado")
    opening_balance: NonNegativeAmount = Field(0, description="Deuda previa, se registra como primer movimiento")
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError('El nombre no puede estar vacío')
        return cleaned


class ClientUpdate(BaseModel):
    """Saldo y autorización no se editan aquí"""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    phone: Optional[str] = Field(None, max_length=50)
    credit_limit: Optional[NonNegativeAmount] = None
    payment_schedule: Optional[PaymentSchedule] = None
    notes: Optional[str] = Field(None, max_length=500)


class ClientOut(BaseModel):
    id: UUID
    name: str
    phone: Optional[str] = None
    authorized: bool
    balance: Amount
    credit_limit: Amount
    available_credit: Amount
    payment_schedule: PaymentSchedule
    payment_schedule_label: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ClientList(BaseModel):
    clients: List[ClientOut]
    total: int
    limit: int
    offset: int


class AuthorizationUpdate(BaseModel):
    authorized: bool = Field(..., description="Habilitar o bloquear el fiado")


# ===== MOVEMENT SCHEMAS =====

class ClientPaymentCreate(BaseModel):
    """
    Pago de un cliente. Las compras a crédito solo entran por ventas.
    En pago-total el monto se ignora: el saldo queda exactamente en cero.
    """
    type: MovementType = Field(..., description="abono o pago-total")
    amount: Optional[PositiveAmount] = Field(None, description="Monto del abono")
    description: str = Field("", max_length=255)

    @model_validator(mode='after')
    def validate_amount(self):
        if self.type == MovementType.FIADO:
            raise ValueError("Las compras a crédito se registran mediante ventas")
        if self.type == MovementType.ABONO and self.amount is None:
            raise ValueError('El abono requiere un monto')
        return self


class ClientMovementOut(BaseModel):
    id: UUID
    client_id: UUID
    sequence: int
    type: MovementType
    type_label: str
    amount: Amount
    signed_amount: Amount
    balance_after: Amount
    description: str
    sale_id: Optional[UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ClientMovementList(BaseModel):
    movements: List[ClientMovementOut]
    total: int


class CreditCheckOut(BaseModel):
    """Resultado de autorizar un fiado adicional"""
    client_id: UUID
    authorized: bool = Field(description="Si el fiado sería aceptado")
    client_authorized: bool
    balance: Amount
    credit_limit: Amount
    requested: Amount
    available_credit: Amount


class LedgerCheckOut(BaseModel):
    """Verificación del saldo cacheado contra el historial"""
    client_id: UUID
    cached_balance: Amount
    computed_balance: Amount
    movements: int
    consistent: bool
    issues: List[str] = Field(default_factory=list)
