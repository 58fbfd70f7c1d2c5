"""
Reports Router

Read-only report endpoints: client statement, clients summary and closed
shifts. Every endpoint accepts ``export=csv``.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.reports.service import ReportService
from app.modules.reports.schemas import (
    ReportRange,
    ClientStatementResponse,
    ClientsSummaryResponse,
    ClosedShiftsResponse
)
from app.modules.reports.utils import (
    create_csv_response,
    prepare_client_statement_csv,
    prepare_clients_summary_csv,
    prepare_closed_shifts_csv,
    CSV_HEADERS
)


router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/clients/summary", response_model=None)
def get_clients_summary(
    export: Optional[str] = Query(None, pattern="^(csv)$", description="Export format: csv"),
    db: Session = Depends(get_db)
):
    """Resumen general de clientes fiados: conteos, deuda total y detalle."""
    report_data = ReportService(db).clients_summary()

    if export == "csv":
        csv_data = prepare_clients_summary_csv(report_data)
        filename = f"resumen_clientes_{datetime.utcnow().date().isoformat()}.csv"
        return create_csv_response(csv_data, filename, CSV_HEADERS["clients_summary"])

    return ClientsSummaryResponse(**report_data)


@router.get("/clients/{client_id}/statement", response_model=None)
def get_client_statement(
    client_id: UUID,
    range: ReportRange = Query(ReportRange.MONTH, description="today, week, month o custom"),
    date_from: Optional[date] = Query(None, description="Inicio (solo custom)"),
    date_to: Optional[date] = Query(None, description="Fin inclusive (solo custom)"),
    export: Optional[str] = Query(None, pattern="^(csv)$", description="Export format: csv"),
    db: Session = Depends(get_db)
):
    """Estado de cuenta de un cliente en el período."""
    report_data = ReportService(db).client_statement(client_id, range, date_from, date_to)

    if export == "csv":
        csv_data = prepare_client_statement_csv(report_data)
        period = report_data["period"]
        filename = f"estado_cuenta_{client_id}_{period['start'].date()}_{period['end'].date()}.csv"
        return create_csv_response(csv_data, filename, CSV_HEADERS["client_statement"])

    return ClientStatementResponse(**report_data)


@router.get("/shifts/closed", response_model=None)
def get_closed_shifts(
    range: ReportRange = Query(ReportRange.TODAY, description="today, week, month o custom"),
    seller: Optional[str] = Query(None, description="Filtrar por vendedor"),
    date_from: Optional[date] = Query(None, description="Inicio (solo custom)"),
    date_to: Optional[date] = Query(None, description="Fin inclusive (solo custom)"),
    export: Optional[str] = Query(None, pattern="^(csv)$", description="Export format: csv"),
    db: Session = Depends(get_db)
):
    """Turnos cerrados en el período con sus arqueos y totales."""
    report_data = ReportService(db).closed_shifts(range, seller, date_from, date_to)

    if export == "csv":
        csv_data = prepare_closed_shifts_csv(report_data)
        period = report_data["period"]
        filename = f"turnos_cerrados_{period['start'].date()}_{period['end'].date()}.csv"
        return create_csv_response(csv_data, filename, CSV_HEADERS["closed_shifts"])

    return ClosedShiftsResponse(**report_data)
