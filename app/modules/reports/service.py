"""
Report service

Read-only projections over finalized data: client statements, the clients
summary and closed shifts. Nothing here writes to the database.
"""

from datetime import date, datetime
from typing import Any, Dict, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from app.core.config import settings
from app.modules.clients.models import Client, ClientMovement, MovementType
from app.modules.clients.service import CreditLedger
from app.modules.pos.models import Shift, ShiftStatus
from app.modules.reports.schemas import ReportRange, StatementClient
from app.modules.reports.utils import resolve_range

logger = logging.getLogger(__name__)


class ReportService:

    def __init__(self, db: Session):
        self.db = db

    def client_statement(
        self,
        client_id: UUID,
        range: ReportRange = ReportRange.MONTH,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        today: Optional[date] = None
    ) -> Dict[str, Any]:
        """
        Estado de cuenta del cliente en el período.

        Incluye el saldo al inicio y al final del período (tomados del
        ``balance_after`` del historial), los totales por tipo de
        movimiento y el detalle en orden de inserción.
        """
        start, end = resolve_range(range, date_from, date_to, today)
        ledger = CreditLedger(self.db)
        client = ledger.get_client(client_id)

        before = self.db.query(ClientMovement).filter(
            ClientMovement.client_id == client_id,
            ClientMovement.created_at < start
        ).order_by(ClientMovement.sequence.desc()).first()
        opening_balance = before.balance_after if before else 0

        movements = ledger.get_history(client_id, start, end)

        totals = {MovementType.FIADO: 0, MovementType.ABONO: 0, MovementType.PAGO_TOTAL: 0}
        for movement in movements:
            totals[movement.type] += movement.amount

        closing_balance = movements[-1].balance_after if movements else opening_balance

        return {
            "store_name": settings.STORE_NAME,
            "generated_at": datetime.utcnow(),
            "period": {"range": ReportRange(range), "start": start, "end": end},
            "client": StatementClient.model_validate(client),
            "opening_balance": opening_balance,
            "closing_balance": closing_balance,
            "totals": {
                "fiado": totals[MovementType.FIADO],
                "abono": totals[MovementType.ABONO],
                "pago_total": totals[MovementType.PAGO_TOTAL],
                "net": closing_balance - opening_balance,
                "movements": len(movements),
            },
            "movements": [
                {
                    "sequence": movement.sequence,
                    "type": movement.type.value,
                    "type_label": movement.type_label,
                    "description": movement.description,
                    "amount": movement.amount,
                    "signed_amount": movement.signed_amount,
                    "balance_after": movement.balance_after,
                    "sale_id": movement.sale_id,
                    "created_at": movement.created_at,
                }
                for movement in movements
            ],
        }

    def clients_summary(self) -> Dict[str, Any]:
        clients = self.db.query(Client).order_by(Client.name).all()

        items = [
            {
                "id": client.id,
                "name": client.name,
                "authorized": client.authorized,
                "payment_schedule": client.payment_schedule.value,
                "payment_schedule_label": client.payment_schedule_label,
                "credit_limit": client.credit_limit,
                "balance": client.balance,
            }
            for client in clients
        ]
        with_debt = sorted(
            (item for item in items if item["balance"] > 0),
            key=lambda item: item["balance"],
            reverse=True
        )
        authorized_count = sum(1 for item in items if item["authorized"])

        return {
            "store_name": settings.STORE_NAME,
            "generated_at": datetime.utcnow(),
            "total_clients": len(items),
            "authorized_count": authorized_count,
            "blocked_count": len(items) - authorized_count,
            "total_debt": sum(item["balance"] for item in items),
            "clients_with_debt": with_debt,
            "clients": items,
        }

    def closed_shifts(
        self,
        range: ReportRange = ReportRange.TODAY,
        seller: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        today: Optional[date] = None
    ) -> Dict[str, Any]:
        """Turnos cerrados dentro del período (por fecha de cierre)."""
        start, end = resolve_range(range, date_from, date_to, today)

        query = self.db.query(Shift).filter(
            Shift.status == ShiftStatus.CLOSED,
            Shift.closed_at >= start,
            Shift.closed_at <= end
        )
        if seller:
            query = query.filter(Shift.seller == seller)
        shifts = query.order_by(Shift.closed_at).all()
        logger.debug(f"Reporte de turnos cerrados {start} - {end}: {len(shifts)} turnos")

        breakdown: Dict[str, int] = {}
        for shift in shifts:
            for method, amount in (shift.payments_breakdown or {}).items():
                breakdown[method] = breakdown.get(method, 0) + amount

        return {
            "store_name": settings.STORE_NAME,
            "generated_at": datetime.utcnow(),
            "period": {"range": ReportRange(range), "start": start, "end": end},
            "seller": seller,
            "totals": {
                "shifts": len(shifts),
                "tickets": sum(shift.tickets for shift in shifts),
                "total_sales": sum(shift.total_sales for shift in shifts),
                "total_expenses": sum(shift.total_expenses for shift in shifts),
                "difference": sum(shift.difference for shift in shifts),
                "payments_breakdown": breakdown,
            },
            "shifts": [
                {
                    "id": shift.id,
                    "seller": shift.seller,
                    "type": shift.type.value,
                    "opened_at": shift.opened_at,
                    "closed_at": shift.closed_at,
                    "initial_cash": shift.initial_cash,
                    "tickets": shift.tickets,
                    "total_sales": shift.total_sales,
                    "payments_breakdown": dict(shift.payments_breakdown or {}),
                    "total_expenses": shift.total_expenses,
                    "cash_expected": shift.cash_expected,
                    "cash_counted": shift.cash_counted,
                    "difference": shift.difference,
                }
                for shift in shifts
            ],
        }
