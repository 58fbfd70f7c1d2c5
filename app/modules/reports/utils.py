"""
Utilities for Reports module

CSV export and date range resolution for report generation.
"""

import csv
import io
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Response

from app.common.exceptions import InvalidRange
from app.modules.reports.schemas import ReportRange


def resolve_range(
    range: ReportRange,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    today: Optional[date] = None
) -> Tuple[datetime, datetime]:
    """
    Convierte un rango de reporte en límites [inicio, fin] de fecha y hora.

    - today: el día actual
    - week: desde el lunes de la semana actual
    - month: desde el primer día del mes actual
    - custom: ``date_from`` y ``date_to`` inclusive; sin ``date_to`` hasta hoy
    """
    today = today or datetime.utcnow().date()
    range = ReportRange(range)

    if range == ReportRange.TODAY:
        start, end = today, today
    elif range == ReportRange.WEEK:
        start, end = today - timedelta(days=today.weekday()), today
    elif range == ReportRange.MONTH:
        start, end = today.replace(day=1), today
    else:
        if date_from is None:
            raise InvalidRange("El rango personalizado requiere fecha de inicio")
        start, end = date_from, date_to or today
        if end < start:
            raise InvalidRange(
                "La fecha final debe ser mayor o igual a la inicial",
                date_from=start.isoformat(), date_to=end.isoformat()
            )

    return datetime.combine(start, time.min), datetime.combine(end, time.max)


def create_csv_response(
    data: List[Dict[str, Any]],
    filename: str,
    headers: Dict[str, str] = None
) -> Response:
    """
    Create a CSV response from a list of dictionaries.

    Args:
        data: List of dictionaries with report data
        filename: Name for the CSV file
        headers: Optional mapping of field names to CSV headers
    """
    fieldnames = list(headers.keys()) if headers else (list(data[0].keys()) if data else [])
    csv_headers = list(headers.values()) if headers else fieldnames

    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=fieldnames, extrasaction="ignore")
    writer.writerow(dict(zip(fieldnames, csv_headers)))
    for row in data:
        writer.writerow({key: format_csv_value(value) for key, value in row.items() if key in fieldnames})

    csv_content = output.getvalue()
    output.close()

    return Response(
        content=csv_content,
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename={filename}",
            "Content-Type": "text/csv; charset=utf-8"
        }
    )


def format_csv_value(value: Any) -> str:
    if value is None:
        return ""
    elif isinstance(value, bool):
        return "Sí" if value else "No"
    elif isinstance(value, (date, datetime)):
        return value.isoformat()
    elif hasattr(value, "value"):
        return str(value.value)
    return str(value)


def prepare_client_statement_csv(report_data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Prepare client statement movements for CSV export"""
    return [
        {
            "created_at": movement["created_at"],
            "sequence": movement["sequence"],
            "type_label": movement["type_label"],
            "description": movement["description"],
            "signed_amount": movement["signed_amount"],
            "balance_after": movement["balance_after"],
        }
        for movement in report_data["movements"]
    ]


def prepare_clients_summary_csv(report_data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Prepare clients summary for CSV export"""
    return [
        {
            "name": client["name"],
            "status": "Autorizado" if client["authorized"] else "Bloqueado",
            "payment_schedule_label": client["payment_schedule_label"],
            "credit_limit": client["credit_limit"],
            "balance": client["balance"],
        }
        for client in report_data["clients"]
    ]


def prepare_closed_shifts_csv(report_data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Prepare closed shifts for CSV export"""
    return [
        {
            "seller": shift["seller"],
            "type": shift["type"],
            "opened_at": shift["opened_at"],
            "closed_at": shift["closed_at"],
            "tickets": shift["tickets"],
            "total_sales": shift["total_sales"],
            "total_expenses": shift["total_expenses"],
            "cash_expected": shift["cash_expected"],
            "cash_counted": shift["cash_counted"],
            "difference": shift["difference"],
        }
        for shift in report_data["shifts"]
    ]


CSV_HEADERS = {
    "client_statement": {
        "created_at": "Fecha y Hora",
        "sequence": "N°",
        "type_label": "Tipo",
        "description": "Descripción",
        "signed_amount": "Monto",
        "balance_after": "Saldo"
    },
    "clients_summary": {
        "name": "Cliente",
        "status": "Estado",
        "payment_schedule_label": "Modalidad Pago",
        "credit_limit": "Límite",
        "balance": "Saldo Pendiente"
    },
    "closed_shifts": {
        "seller": "Vendedor",
        "type": "Turno",
        "opened_at": "Apertura",
        "closed_at": "Cierre",
        "tickets": "Tickets",
        "total_sales": "Ventas",
        "total_expenses": "Gastos",
        "cash_expected": "Efectivo Esperado",
        "cash_counted": "Efectivo Contado",
        "difference": "Diferencia"
    }
}
