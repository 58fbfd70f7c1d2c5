"""
Router para el módulo de Clientes (fiado)

- Directorio: alta, listado, detalle, edición
- Cuenta corriente: historial, pagos (abono / pago-total)
- Autorización: consulta de cupo y bloqueo/desbloqueo
- Verificación del saldo contra el historial

Las compras a crédito no se registran aquí: entran por /sales.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from datetime import datetime

from app.core.config import settings
from app.database.database import get_db
from app.modules.clients.service import ClientService, CreditLedger
from app.modules.clients.schemas import (
    ClientCreate, ClientUpdate, ClientOut, ClientList, AuthorizationUpdate,
    ClientPaymentCreate, ClientMovementOut, ClientMovementList,
    CreditCheckOut, LedgerCheckOut
)
from app.modules.clients.tasks import verify_client_balances

router = APIRouter(
    prefix="/clients",
    tags=["Clients"],
    responses={404: {"description": "Not found"}}
)


# ===== DIRECTORIO =====

@router.post("/", response_model=ClientOut, status_code=status.HTTP_201_CREATED)
def create_client(client_data: ClientCreate, db: Session = Depends(get_db)):
    """
    Crear cliente fiado

    - **credit_limit**: Cupo máximo de deuda
    - **opening_balance**: Deuda previa (queda como primer movimiento)
    """
    return ClientService(db).create_client(client_data)


@router.get("/", response_model=ClientList)
def list_clients(
    search: Optional[str] = Query(None, description="Buscar por nombre o teléfono"),
    authorized: Optional[bool] = Query(None, description="Filtrar autorizados/bloqueados"),
    with_debt: bool = Query(False, description="Solo clientes con saldo pendiente"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    return ClientService(db).list_clients(
        search=search, authorized=authorized, with_debt=with_debt, limit=limit, offset=offset
    )


@router.post("/verify", status_code=status.HTTP_202_ACCEPTED)
def enqueue_ledger_verification():
    """Encola la verificación de todos los saldos contra su historial."""
    task = verify_client_balances.delay()
    return {"task_id": task.id, "status": "queued"}


@router.get("/{client_id}", response_model=ClientOut)
def get_client(client_id: UUID, db: Session = Depends(get_db)):
    return ClientService(db).get_client(client_id)


@router.patch("/{client_id}", response_model=ClientOut)
def update_client(client_id: UUID, client_data: ClientUpdate, db: Session = Depends(get_db)):
    return ClientService(db).update_client(client_id, client_data)


# ===== AUTORIZACIÓN =====

@router.put("/{client_id}/authorization", response_model=ClientOut)
def set_authorization(client_id: UUID, data: AuthorizationUpdate, db: Session = Depends(get_db)):
    """Bloquear o habilitar el fiado para el cliente."""
    return CreditLedger(db).set_authorized(client_id, data.authorized)


@router.get("/{client_id}/credit-check", response_model=CreditCheckOut)
def check_credit(
    client_id: UUID,
    amount: int = Query(..., gt=0, description="Monto adicional a fiar"),
    db: Session = Depends(get_db)
):
    """Indica si un fiado adicional sería aceptado y el cupo disponible."""
    return CreditLedger(db).check_credit(client_id, amount)


# ===== CUENTA CORRIENTE =====

@router.get("/{client_id}/movements", response_model=ClientMovementList)
def get_movements(
    client_id: UUID,
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    db: Session = Depends(get_db)
):
    movements = CreditLedger(db).get_history(client_id, date_from, date_to)
    return {"movements": movements, "total": len(movements)}


@router.post("/{client_id}/payments", response_model=ClientMovementOut, status_code=status.HTTP_201_CREATED)
def register_payment(client_id: UUID, payment: ClientPaymentCreate, db: Session = Depends(get_db)):
    """
    Registrar un abono o pago total.

    - **abono**: no puede superar el saldo pendiente
    - **pago-total**: deja el saldo en cero, el monto se ignora
    """
    return CreditLedger(db).post_movement(
        client_id, payment.type, payment.amount, payment.description
    )


@router.get("/{client_id}/verify", response_model=LedgerCheckOut)
def verify_client(client_id: UUID, db: Session = Depends(get_db)):
    """Compara el saldo cacheado con el recalculado desde el historial."""
    return CreditLedger(db).verify_client(client_id)
