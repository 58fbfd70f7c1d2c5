"""
Routers FastAPI para el módulo POS (Point of Sale)

Define todos los endpoints REST para:
- Shifts: apertura, turno vigente por vendedor, gastos, resumen y cierre
- Sales: ventas, devoluciones y consulta de tickets
"""

from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from dataclasses import asdict

from app.core.config import settings
from app.common.exceptions import NotFound
from app.database.database import get_db
from app.modules.pos.models import Shift, ShiftStatus, SaleType
from app.modules.pos.services import ShiftService, SaleProcessor
from app.modules.pos.shift_session import ShiftSession
from app.modules.pos.schemas import (
    # Shift schemas
    ShiftOpen, ShiftClose, ShiftOut, ShiftDetail, ShiftList,
    ShiftSummaryOut, ShiftCheckOut,

    # Expense schemas
    ShiftExpenseCreate, ShiftExpenseOut,

    # Sale schemas
    SaleCreate, ReturnCreate, SaleOut, SaleList
)
from app.modules.pos.tasks import verify_shift_accumulators


shifts_router = APIRouter(prefix="/shifts", tags=["POS - Shifts"])
sales_router = APIRouter(prefix="/sales", tags=["POS - Sales"])


def _shift_detail(shift: Shift) -> ShiftDetail:
    return ShiftDetail(
        **ShiftOut.model_validate(shift).model_dump(),
        summary=asdict(ShiftSession(shift).summary()),
        expenses=[ShiftExpenseOut.model_validate(expense) for expense in shift.expenses]
    )


# ===== SHIFTS =====

@shifts_router.post("/open", response_model=ShiftOut, status_code=status.HTTP_201_CREATED)
def open_shift(shift_data: ShiftOpen, db: Session = Depends(get_db)):
    """
    Abrir turno

    - **seller**: Vendedor a cargo (uno abierto por vendedor)
    - **type**: dia o noche
    - **initial_cash**: Efectivo inicial en caja
    """
    return ShiftService(db).open_shift(shift_data)


@shifts_router.get("/current", response_model=ShiftDetail)
def get_current_shift(
    seller: str = Query(..., description="Vendedor"),
    db: Session = Depends(get_db)
):
    """Turno abierto del vendedor con su resumen vigente."""
    shift = ShiftService(db).get_active_shift(seller)
    if not shift:
        raise NotFound(f"No hay turno abierto para '{seller}'", seller=seller)
    return _shift_detail(shift)


@shifts_router.get("/", response_model=ShiftList)
def list_shifts(
    seller: Optional[str] = Query(None),
    status: Optional[ShiftStatus] = Query(None, description="open o closed"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    return ShiftService(db).list_shifts(seller=seller, status=status, limit=limit, offset=offset)


@shifts_router.get("/{shift_id}", response_model=ShiftDetail)
def get_shift(shift_id: UUID, db: Session = Depends(get_db)):
    return _shift_detail(ShiftService(db).get_shift(shift_id))


@shifts_router.get("/{shift_id}/summary", response_model=ShiftSummaryOut)
def get_shift_summary(shift_id: UUID, db: Session = Depends(get_db)):
    """Total, tickets y desglose por medio de pago."""
    return asdict(ShiftService(db).summary(shift_id))


@shifts_router.post("/{shift_id}/expenses", response_model=ShiftExpenseOut, status_code=status.HTTP_201_CREATED)
def record_expense(shift_id: UUID, expense_data: ShiftExpenseCreate, db: Session = Depends(get_db)):
    """
    Registrar gasto del turno

    - **paid_from_cash**: si es true se descuenta del efectivo esperado
    """
    return ShiftService(db).record_expense(shift_id, expense_data)


@shifts_router.post("/{shift_id}/close", response_model=ShiftOut)
def close_shift(shift_id: UUID, close_data: ShiftClose, db: Session = Depends(get_db)):
    """
    Cerrar turno con arqueo

    diferencia = contado - esperado (negativo = faltante)
    """
    return ShiftService(db).close_shift(shift_id, close_data)


@shifts_router.get("/{shift_id}/verify", response_model=ShiftCheckOut)
def verify_shift(shift_id: UUID, db: Session = Depends(get_db)):
    return ShiftService(db).verify_shift(shift_id)


@shifts_router.post("/{shift_id}/verify", status_code=status.HTTP_202_ACCEPTED)
def enqueue_shift_verification(shift_id: UUID, db: Session = Depends(get_db)):
    """Encola la verificación de los acumulados del turno."""
    ShiftService(db).get_shift(shift_id)
    task = verify_shift_accumulators.delay(str(shift_id))
    return {"task_id": task.id, "status": "queued"}


# ===== SALES =====

@sales_router.post("/", response_model=SaleOut, status_code=status.HTTP_201_CREATED)
def create_sale(sale_data: SaleCreate, db: Session = Depends(get_db)):
    """
    Registrar venta

    - **cash**: `cash_received` opcional, por defecto el total
    - **fiado**: requiere `client_id` con cupo disponible
    """
    return SaleProcessor(db).process(
        sale_data.items,
        sale_data.payment_method,
        shift_id=sale_data.shift_id,
        seller=sale_data.seller,
        client_id=sale_data.client_id,
        cash_received=sale_data.cash_received,
        notes=sale_data.notes
    )


@sales_router.post("/returns", response_model=SaleOut, status_code=status.HTTP_201_CREATED)
def create_return(return_data: ReturnCreate, db: Session = Depends(get_db)):
    """
    Registrar devolución de una venta

    - Sin `items` se devuelve todo lo pendiente
    - `refund_method` por defecto es el de la venta original
    """
    return SaleProcessor(db).process_return(
        return_data.original_sale_id,
        shift_id=return_data.shift_id,
        seller=return_data.seller,
        lines=return_data.items,
        refund_method=return_data.refund_method,
        notes=return_data.notes
    )


@sales_router.get("/", response_model=SaleList)
def list_sales(
    shift_id: Optional[UUID] = Query(None, description="Filtrar por turno"),
    type: Optional[SaleType] = Query(None, description="sale o return"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    return SaleProcessor(db).list_sales(shift_id=shift_id, type=type, limit=limit, offset=offset)


@sales_router.get("/{sale_id}", response_model=SaleOut)
def get_sale(sale_id: UUID, db: Session = Depends(get_db)):
    return SaleProcessor(db).get_sale(sale_id)
