"""
Arqueo de turno.

Cálculo puro, sin base de datos: recibe los acumulados del turno y sus
gastos y devuelve el resumen de cierre.

    cash_expected = initial_cash + ventas en efectivo - gastos pagados de caja
    difference    = cash_counted - cash_expected   (negativo = faltante)

Una venta en efectivo aporta ``cash_received - change``, que es su total;
tarjeta, transferencia, fiado y personal no pasan por la caja.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, Tuple

from app.modules.pos.models import PaymentMethod, SaleType


@dataclass(frozen=True)
class ShiftSummary:
    """Resumen de ventas de un turno"""
    total: int
    tickets: int
    by_payment: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Reconciliation:
    total_sales: int
    tickets: int
    payments_breakdown: Dict[str, int]
    total_expenses: int
    cash_expenses: int
    cash_expected: int
    cash_counted: int
    difference: int


class ReconciliationCalculator:

    @staticmethod
    def summarize_sales(sales: Iterable) -> ShiftSummary:
        """Recalcula el resumen desde las ventas; las devoluciones restan."""
        total = 0
        tickets = 0
        by_payment: Dict[str, int] = {}
        for sale in sales:
            signed = -sale.total if SaleType(sale.type) == SaleType.RETURN else sale.total
            method = PaymentMethod(sale.payment_method).value
            total += signed
            tickets += 1
            by_payment[method] = by_payment.get(method, 0) + signed
        return ShiftSummary(total=total, tickets=tickets, by_payment=by_payment)

    @staticmethod
    def sum_expenses(expenses: Iterable) -> Tuple[int, int]:
        """(total de gastos, gastos pagados desde la caja)"""
        total = 0
        from_cash = 0
        for expense in expenses:
            total += expense.amount
            if expense.paid_from_cash:
                from_cash += expense.amount
        return total, from_cash

    @classmethod
    def calculate(
        cls,
        initial_cash: int,
        summary: ShiftSummary,
        expenses: Iterable,
        cash_counted: int
    ) -> Reconciliation:
        total_expenses, cash_expenses = cls.sum_expenses(expenses)
        cash_sales = summary.by_payment.get(PaymentMethod.CASH.value, 0)
        cash_expected = initial_cash + cash_sales - cash_expenses

        return Reconciliation(
            total_sales=summary.total,
            tickets=summary.tickets,
            payments_breakdown=dict(summary.by_payment),
            total_expenses=total_expenses,
            cash_expenses=cash_expenses,
            cash_expected=cash_expected,
            cash_counted=cash_counted,
            difference=cash_counted - cash_expected
        )
