"""
Módulo POS (Point of Sale)

ENTIDADES PRINCIPALES:
- Shift: turno de un vendedor con apertura, gastos y cierre con arqueo
- ShiftExpense: gastos del turno (sueldo, flete, proveedor, operación, otro)
- Sale / SaleItem: ventas y devoluciones con ticket correlativo

FUNCIONALIDADES:
- Ventas atómicas: stock, fiado, ticket y acumulado del turno juntos
- Devoluciones ligadas a la venta original, con abono si fue fiada
- Arqueo: esperado = inicial + efectivo - gastos de caja

REGLAS DE NEGOCIO:
- Solo un turno abierto por vendedor
- Ventas y gastos requieren turno abierto
- Un turno cerrado no se vuelve a cerrar ni se modifica
"""

from .models import (
    Shift, ShiftExpense, Sale, SaleItem, TicketSequence,
    ShiftStatus, ShiftType, PaymentMethod, SaleType, ExpenseType
)
from .reconciliation import ReconciliationCalculator, Reconciliation, ShiftSummary
from .shift_session import ShiftSession
from .services import ShiftService, SaleProcessor

__all__ = [
    # Models
    "Shift", "ShiftExpense", "Sale", "SaleItem", "TicketSequence",
    "ShiftStatus", "ShiftType", "PaymentMethod", "SaleType", "ExpenseType",

    # Core
    "ReconciliationCalculator", "Reconciliation", "ShiftSummary", "ShiftSession",

    # Services
    "ShiftService", "SaleProcessor",
]
