"""
Máquina de estados del turno: abierto -> cerrado (terminal).

Envuelve un ``Shift`` y es la única que toca sus acumuladores. No abre
transacciones ni bloqueos: quien la usa (ShiftService, SaleProcessor) ya
tiene el turno bloqueado dentro de su unidad de trabajo.
"""
from datetime import datetime
from typing import Optional
import logging

from app.common.exceptions import AlreadyClosed, InvalidCount, ShiftClosed
from app.common.money import to_amount
from app.modules.pos.models import Shift, ShiftExpense, ShiftStatus, Sale, SaleType, PaymentMethod
from app.modules.pos.reconciliation import Reconciliation, ReconciliationCalculator, ShiftSummary

logger = logging.getLogger(__name__)


class ShiftSession:

    def __init__(self, shift: Shift):
        self.shift = shift

    @property
    def is_open(self) -> bool:
        return self.shift.status == ShiftStatus.OPEN

    def _ensure_open(self) -> None:
        if not self.is_open:
            raise ShiftClosed("El turno está cerrado", shift_id=self.shift.id)

    def record_sale(self, sale: Sale) -> None:
        """Suma la venta (o resta la devolución) a los acumulados del turno."""
        self._ensure_open()

        shift = self.shift
        method = PaymentMethod(sale.payment_method).value
        signed = -sale.total if sale.type == SaleType.RETURN else sale.total

        breakdown = dict(shift.running_breakdown or {})
        breakdown[method] = breakdown.get(method, 0) + signed

        # JSON mutable: se reasigna para que el ORM detecte el cambio
        shift.running_breakdown = breakdown
        shift.running_total_sales = (shift.running_total_sales or 0) + signed
        shift.running_tickets = (shift.running_tickets or 0) + 1

        if shift.running_total_sales < 0 or breakdown[method] < 0:
            logger.warning(
                f"Turno {shift.id}: acumulado negativo tras el ticket {sale.ticket} "
                f"(total {shift.running_total_sales}, {method} {breakdown[method]})"
            )

    def record_expense(self, expense: ShiftExpense) -> None:
        self._ensure_open()

        self.shift.expenses.append(expense)
        if expense.paid_from_cash:
            self.shift.running_cash_expenses = (self.shift.running_cash_expenses or 0) + expense.amount

    def summary(self) -> ShiftSummary:
        shift = self.shift
        if self.is_open:
            return ShiftSummary(
                total=shift.running_total_sales or 0,
                tickets=shift.running_tickets or 0,
                by_payment=dict(shift.running_breakdown or {})
            )
        return ShiftSummary(
            total=shift.total_sales,
            tickets=shift.tickets,
            by_payment=dict(shift.payments_breakdown or {})
        )

    def close(self, cash_counted: int, closed_at: Optional[datetime] = None) -> Reconciliation:
        """
        Cierra el turno con el conteo de caja.

        Raises:
            AlreadyClosed: el turno ya estaba cerrado (no se altera nada)
            InvalidCount: conteo negativo o no entero
        """
        shift = self.shift
        if not self.is_open:
            raise AlreadyClosed("El turno ya está cerrado", shift_id=shift.id)

        try:
            counted = to_amount(cash_counted)
        except (TypeError, ValueError):
            raise InvalidCount(f"Conteo de caja inválido: {cash_counted!r}", shift_id=shift.id)
        if counted < 0:
            raise InvalidCount("El conteo de caja no puede ser negativo", shift_id=shift.id, cash_counted=counted)

        result = ReconciliationCalculator.calculate(
            initial_cash=shift.initial_cash,
            summary=self.summary(),
            expenses=shift.expenses,
            cash_counted=counted
        )

        if result.cash_expenses != (shift.running_cash_expenses or 0):
            logger.warning(
                f"Turno {shift.id}: gastos en efectivo acumulados {shift.running_cash_expenses} "
                f"!= {result.cash_expenses} registrados"
            )

        shift.total_sales = result.total_sales
        shift.tickets = result.tickets
        shift.payments_breakdown = result.payments_breakdown
        shift.total_expenses = result.total_expenses
        shift.cash_expected = result.cash_expected
        shift.cash_counted = result.cash_counted
        shift.difference = result.difference
        shift.closed_at = closed_at or datetime.utcnow()
        shift.status = ShiftStatus.CLOSED

        return result
