"""
Pydantic schemas for Reports module

Response models for the read-only report endpoints.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.common.money import Amount


class ReportRange(str, Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    CUSTOM = "custom"


class ReportPeriod(BaseModel):
    range: ReportRange
    start: datetime
    end: datetime


# Client statement
class StatementClient(BaseModel):
    id: UUID
    name: str
    phone: Optional[str] = None
    authorized: bool
    balance: Amount
    credit_limit: Amount
    available_credit: Amount
    payment_schedule_label: str

    model_config = {"from_attributes": True}


class StatementMovement(BaseModel):
    sequence: int
    type: str
    type_label: str
    description: str
    amount: Amount
    signed_amount: Amount
    balance_after: Amount
    sale_id: Optional[UUID] = None
    created_at: datetime


class StatementTotals(BaseModel):
    fiado: Amount = Field(description="Total comprado a crédito en el período")
    abono: Amount = Field(description="Total abonado en el período")
    pago_total: Amount = Field(description="Total liquidado en el período")
    net: Amount = Field(description="Variación de saldo en el período")
    movements: int


class ClientStatementResponse(BaseModel):
    """Estado de cuenta de un cliente fiado"""
    store_name: str
    generated_at: datetime
    period: ReportPeriod
    client: StatementClient
    opening_balance: Amount = Field(description="Saldo al inicio del período")
    closing_balance: Amount = Field(description="Saldo al final del período")
    totals: StatementTotals
    movements: List[StatementMovement]


# Clients summary
class ClientSummaryItem(BaseModel):
    id: UUID
    name: str
    authorized: bool
    payment_schedule: str
    payment_schedule_label: str
    credit_limit: Amount
    balance: Amount


class ClientsSummaryResponse(BaseModel):
    """Resumen general de clientes fiados"""
    store_name: str
    generated_at: datetime
    total_clients: int
    authorized_count: int
    blocked_count: int
    total_debt: Amount
    clients_with_debt: List[ClientSummaryItem] = Field(description="Con saldo pendiente, mayor deuda primero")
    clients: List[ClientSummaryItem]


# Closed shifts
class ClosedShiftItem(BaseModel):
    id: UUID
    seller: str
    type: str
    opened_at: datetime
    closed_at: datetime
    initial_cash: Amount
    tickets: int
    total_sales: Amount
    payments_breakdown: Dict[str, Amount]
    total_expenses: Amount
    cash_expected: Amount
    cash_counted: Amount
    difference: Amount


class ClosedShiftsTotals(BaseModel):
    shifts: int
    tickets: int
    total_sales: Amount
    total_expenses: Amount
    difference: Amount
    payments_breakdown: Dict[str, Amount]


class ClosedShiftsResponse(BaseModel):
    store_name: str
    generated_at: datetime
    period: ReportPeriod
    seller: Optional[str] = None
    totals: ClosedShiftsTotals
    shifts: List[ClosedShiftItem]
