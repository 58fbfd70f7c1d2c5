"""
Modelos SQLAlchemy para el módulo POS (Point of Sale)

Este módulo maneja las operaciones de punto de venta:
- Shift: turno de un vendedor con apertura/cierre y arqueo
- ShiftExpense: gastos pagados durante el turno
- Sale / SaleItem: ventas y devoluciones con sus líneas
- TicketSequence: numeración correlativa de tickets

Integración con otros módulos:
- Ventas → descuentan stock (StockLedger)
- Ventas fiadas → movimiento en la cuenta del cliente (CreditLedger)
"""

from app.database.database import Base
from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey, BigInteger, Integer, Enum, Text, JSON,
    UniqueConstraint, CheckConstraint, Index, Uuid, text
)
from sqlalchemy.orm import relationship
from datetime import datetime
from uuid import uuid4
from app.common.mixins import TimestampMixin
import enum


# ===== ENUMS =====

class ShiftStatus(str, enum.Enum):
    """Estados del turno"""
    OPEN = "open"       # Turno abierto
    CLOSED = "closed"   # Turno cerrado (terminal)


class ShiftType(str, enum.Enum):
    DIA = "dia"
    NOCHE = "noche"


class PaymentMethod(str, enum.Enum):
    """Medios de pago aceptados en caja"""
    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"
    FIADO = "fiado"     # Crédito en tienda (requiere cliente)
    STAFF = "staff"     # Consumo del personal


class SaleType(str, enum.Enum):
    SALE = "sale"
    RETURN = "return"


class ExpenseType(str, enum.Enum):
    """Tipos de gasto del turno"""
    SUELDO = "sueldo"
    FLETE = "flete"
    PROVEEDOR = "proveedor"
    OTRO = "otro"
    OPERACION = "operacion"


PAYMENT_METHOD_LABELS = {
    PaymentMethod.CASH: "Efectivo",
    PaymentMethod.CARD: "Tarjeta",
    PaymentMethod.TRANSFER: "Transferencia",
    PaymentMethod.FIADO: "Fiado",
    PaymentMethod.STAFF: "Personal",
}


# ===== MODELOS =====

class Shift(Base, TimestampMixin):
    """
    Turno de trabajo de un vendedor.

    Mientras está abierto solo se mueven los acumuladores ``running_*``;
    los campos de arqueo quedan en NULL hasta el cierre. Solo puede
    existir un turno abierto por vendedor.
    """
    __tablename__ = "shifts"

    id = Column(Uuid, primary_key=True, default=uuid4)
    seller = Column(String(100), nullable=False, index=True)
    type = Column(Enum(ShiftType), nullable=False, default=ShiftType.DIA)
    status = Column(Enum(ShiftStatus), nullable=False, default=ShiftStatus.OPEN, index=True)
    initial_cash = Column(BigInteger, nullable=False, default=0)

    opened_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    closed_at = Column(DateTime, nullable=True, index=True)

    # Acumuladores mientras el turno está abierto
    running_total_sales = Column(BigInteger, nullable=False, default=0)
    running_tickets = Column(Integer, nullable=False, default=0)
    running_breakdown = Column(JSON, nullable=False, default=dict)  # {"cash": 5000, "card": 3000}
    running_cash_expenses = Column(BigInteger, nullable=False, default=0)

    # Arqueo (solo al cerrar)
    cash_expected = Column(BigInteger, nullable=True)
    cash_counted = Column(BigInteger, nullable=True)
    difference = Column(BigInteger, nullable=True)  # Negativo = faltante
    total_sales = Column(BigInteger, nullable=True)
    tickets = Column(Integer, nullable=True)
    payments_breakdown = Column(JSON, nullable=True)
    total_expenses = Column(BigInteger, nullable=True)

    opening_notes = Column(Text, nullable=True)
    closing_notes = Column(Text, nullable=True)

    # Relationships
    expenses = relationship(
        "ShiftExpense",
        back_populates="shift",
        order_by="ShiftExpense.created_at",
        cascade="all, delete-orphan"
    )
    sales = relationship("Sale", back_populates="shift", order_by="Sale.created_at", viewonly=True)

    __table_args__ = (
        Index(
            "uq_shift_open_seller", "seller",
            unique=True,
            postgresql_where=text("status = 'OPEN'"),
            sqlite_where=text("status = 'OPEN'")
        ),
        CheckConstraint("initial_cash >= 0", name="ck_shift_initial_cash_non_negative"),
    )

    @property
    def is_open(self) -> bool:
        return self.status == ShiftStatus.OPEN


class ShiftExpense(Base):
    """Gasto registrado durante un turno. Inmutable."""
    __tablename__ = "shift_expenses"

    id = Column(Uuid, primary_key=True, default=uuid4)
    shift_id = Column(Uuid, ForeignKey("shifts.id"), nullable=False, index=True)
    type = Column(Enum(ExpenseType), nullable=False)
    amount = Column(BigInteger, nullable=False)
    supplier = Column(String(200), nullable=True)
    description = Column(String(255), nullable=True)
    paid_from_cash = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    shift = relationship("Shift", back_populates="expenses")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_shift_expense_amount_positive"),
    )


class Sale(Base):
    """
    Venta o devolución.

    ``total`` es siempre positivo; el tipo define el signo en el turno.
    Inmutable una vez creada: una devolución es otra Sale que apunta a la
    venta original.
    """
    __tablename__ = "sales"

    id = Column(Uuid, primary_key=True, default=uuid4)
    ticket = Column(String(30), nullable=False, unique=True, index=True)
    type = Column(Enum(SaleType), nullable=False, default=SaleType.SALE, index=True)
    total = Column(BigInteger, nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False, index=True)
    cash_received = Column(BigInteger, nullable=True)  # Solo efectivo
    change = Column(BigInteger, nullable=True)         # Solo efectivo
    client_id = Column(Uuid, ForeignKey("clients.id"), nullable=True, index=True)  # Solo fiado
    shift_id = Column(Uuid, ForeignKey("shifts.id"), nullable=False, index=True)
    seller = Column(String(100), nullable=False)
    original_sale_id = Column(Uuid, ForeignKey("sales.id"), nullable=True, index=True)  # Solo devoluciones
    notes = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    # Relationships
    items = relationship(
        "SaleItem",
        back_populates="sale",
        order_by="SaleItem.position",
        cascade="all, delete-orphan"
    )
    shift = relationship("Shift", back_populates="sales")
    client = relationship("Client")
    original_sale = relationship("Sale", remote_side=[id])

    __table_args__ = (
        CheckConstraint("total >= 0", name="ck_sale_total_non_negative"),
    )

    @property
    def signed_total(self) -> int:
        return -self.total if self.type == SaleType.RETURN else self.total

    @property
    def payment_method_label(self) -> str:
        return PAYMENT_METHOD_LABELS[self.payment_method]


class SaleItem(Base):
    """Línea de venta con el precio vigente al momento de vender"""
    __tablename__ = "sale_items"

    id = Column(Uuid, primary_key=True, default=uuid4)
    sale_id = Column(Uuid, ForeignKey("sales.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    unit_price = Column(BigInteger, nullable=False)
    quantity = Column(Integer, nullable=False)
    subtotal = Column(BigInteger, nullable=False)

    sale = relationship("Sale", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_sale_item_quantity_positive"),
    )


class TicketSequence(Base):
    """
    Secuencia de numeración de tickets.

    Una fila por serie; el incremento se hace con la fila bloqueada.
    """
    __tablename__ = "ticket_sequences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False)
    prefix = Column(String(10), nullable=False)
    current_number = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("name", name="uq_ticket_sequence_name"),
    )
