"""
Modelos SQLAlchemy para el módulo de Clientes (fiado)

- Client: cliente con crédito en tienda, saldo y cupo
- ClientMovement: historial append-only de compras a crédito y pagos

El saldo del cliente es una proyección cacheada del historial: cada
movimiento guarda ``balance_after`` y el saldo se actualiza en el mismo
paso, nunca recalculando el historial completo.
"""

from app.database.database import Base
from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey, BigInteger, Integer, Enum, Text,
    UniqueConstraint, CheckConstraint, Uuid
)
from sqlalchemy.orm import relationship
from datetime import datetime
from uuid import uuid4
from app.common.mixins import TimestampMixin
import enum


# ===== ENUMS =====

class MovementType(str, enum.Enum):
    """Tipos de movimiento de cuenta corriente"""
    FIADO = "fiado"            # Compra a crédito (aumenta saldo)
    ABONO = "abono"            # Pago parcial (disminuye saldo)
    PAGO_TOTAL = "pago-total"  # Liquidación total (saldo a cero)


class PaymentSchedule(str, enum.Enum):
    """Modalidad de pago acordada; solo informativa"""
    IMMEDIATE = "immediate"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


PAYMENT_SCHEDULE_LABELS = {
    PaymentSchedule.IMMEDIATE: "Inmediato",
    PaymentSchedule.BIWEEKLY: "Quincenal",
    PaymentSchedule.MONTHLY: "Fin de Mes",
}

MOVEMENT_TYPE_LABELS = {
    MovementType.FIADO: "Compra a crédito",
    MovementType.ABONO: "Abono",
    MovementType.PAGO_TOTAL: "Pago total",
}


# ===== MODELOS =====

class Client(Base, TimestampMixin):
    """
    Cliente con cuenta corriente en la tienda.

    Nunca se elimina: se bloquea con ``authorized = False``.
    ``balance`` y ``last_sequence`` solo los modifica CreditLedger.
    """
    __tablename__ = "clients"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False, index=True)
    phone = Column(String(50), nullable=True)
    authorized = Column(Boolean, nullable=False, default=True, index=True)
    balance = Column(BigInteger, nullable=False, default=0)  # Positivo = debe dinero
    credit_limit = Column(BigInteger, nullable=False, default=0)
    payment_schedule = Column(Enum(PaymentSchedule), nullable=False, default=PaymentSchedule.IMMEDIATE)
    last_sequence = Column(Integer, nullable=False, default=0)  # Secuencia del último movimiento
    notes = Column(Text, nullable=True)

    movements = relationship(
        "ClientMovement",
        back_populates="client",
        order_by="ClientMovement.sequence",
        viewonly=True
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_client_balance_non_negative"),
        CheckConstraint("credit_limit >= 0", name="ck_client_credit_limit_non_negative"),
    )

    @property
    def available_credit(self) -> int:
        return max(self.credit_limit - self.balance, 0)

    @property
    def payment_schedule_label(self) -> str:
        return PAYMENT_SCHEDULE_LABELS.get(self.payment_schedule, "Inmediato")


class ClientMovement(Base):
    """
    Movimiento de cuenta corriente. Inmutable una vez escrito: las
    correcciones se registran como movimientos compensatorios.
    """
    __tablename__ = "client_movements"

    id = Column(Uuid, primary_key=True, default=uuid4)
    client_id = Column(Uuid, ForeignKey("clients.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)  # 1..n por cliente, sin huecos
    type = Column(Enum(MovementType), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)  # Siempre el valor absoluto
    balance_after = Column(BigInteger, nullable=False)
    description = Column(String(255), nullable=False, default="")
    sale_id = Column(Uuid, nullable=True, index=True)  # Venta o devolución que lo originó
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    client = relationship("Client", back_populates="movements")

    __table_args__ = (
        UniqueConstraint("client_id", "sequence", name="uq_client_movement_sequence"),
        CheckConstraint("amount > 0", name="ck_client_movement_amount_positive"),
    )

    @property
    def signed_amount(self) -> int:
        """Monto con signo según el tipo de movimiento"""
        if self.type == MovementType.FIADO:
            return abs(self.amount)
        return -abs(self.amount)

    @property
    def type_label(self) -> str:
        return MOVEMENT_TYPE_LABELS[self.type]
