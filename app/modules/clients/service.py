"""
Servicios de negocio para el módulo de Clientes (fiado)

- CreditLedger: dueño exclusivo del saldo y del historial de movimientos
- ClientService: directorio de clientes (alta, consulta, edición)

Invariante del libro: para todo cliente,
``balance == history[-1].balance_after`` y cada ``balance_after`` es el
anterior más el monto con signo del movimiento (el primero parte de cero).
Movimiento y saldo se escriben en la misma unidad de trabajo.
"""

from sqlalchemy.orm import Session
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from typing import List, Optional, Dict, Any, Union
from uuid import UUID
from decimal import Decimal
from datetime import datetime
import logging

from app.common.exceptions import InvalidMovement, NotFound, ResourceConflict
from app.common.locking import client_key, resource_locks
from app.common.money import to_amount, format_currency
from app.database.database import unit_of_work
from app.modules.clients.models import Client, ClientMovement, MovementType
from app.modules.clients.schemas import ClientCreate, ClientUpdate, CreditCheckOut, LedgerCheckOut

logger = logging.getLogger(__name__)


class CreditLedger:
    """Libro de crédito por cliente"""

    def __init__(self, db: Session):
        self.db = db

    # ===== LECTURA =====

    def get_client(self, client_id: UUID) -> Client:
        client = self.db.query(Client).filter(Client.id == client_id).first()
        if not client:
            raise NotFound("Cliente no encontrado", client_id=client_id)
        return client

    def _lock_client(self, client_id: UUID) -> Client:
        client = self.db.query(Client).filter(
            Client.id == client_id
        ).populate_existing().with_for_update().first()
        if not client:
            raise NotFound("Cliente no encontrado", client_id=client_id)
        return client

    def get_history(
        self,
        client_id: UUID,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None
    ) -> List[ClientMovement]:
        """Historial en orden de inserción, opcionalmente filtrado por fecha."""
        self.get_client(client_id)

        query = self.db.query(ClientMovement).filter(ClientMovement.client_id == client_id)
        if date_from:
            query = query.filter(ClientMovement.created_at >= date_from)
        if date_to:
            query = query.filter(ClientMovement.created_at <= date_to)

        return query.order_by(ClientMovement.sequence).all()

    # ===== AUTORIZACIÓN =====

    def check_credit(self, client_id: UUID, additional_amount: int) -> CreditCheckOut:
        client = self.get_client(client_id)
        requested = to_amount(additional_amount)
        allowed = (
            client.authorized
            and requested > 0
            and client.balance + requested <= client.credit_limit
        )
        return CreditCheckOut(
            client_id=client.id,
            authorized=allowed,
            client_authorized=client.authorized,
            balance=client.balance,
            credit_limit=client.credit_limit,
            requested=requested,
            available_credit=client.available_credit
        )

    def authorize(self, client_id: UUID, additional_amount: int) -> bool:
        """Si un fiado de ``additional_amount`` mantendría el saldo dentro del cupo. No muta estado."""
        return self.check_credit(client_id, additional_amount).authorized

    def set_authorized(self, client_id: UUID, authorized: bool) -> Client:
        with resource_locks.acquire(client_key(client_id)):
            with unit_of_work(self.db):
                client = self._lock_client(client_id)
                client.authorized = authorized

        logger.info(f"Cliente {client_id} {'autorizado' if authorized else 'bloqueado'} para fiado")
        return client

    # ===== MOVIMIENTOS =====

    def post_movement(
        self,
        client_id: UUID,
        type: MovementType,
        amount: Optional[Union[int, str, Decimal]],
        description: str = "",
        sale_id: Optional[UUID] = None
    ) -> ClientMovement:
        """
        Registra un movimiento y actualiza el saldo en un solo paso.

        - fiado: suma ``amount``
        - abono: resta ``amount``; no puede dejar saldo negativo
        - pago-total: deja el saldo en cero; el monto registrado es el saldo
          previo y el ``amount`` recibido se ignora

        Raises:
            InvalidMovement: monto no positivo, tipo desconocido, abono que
                sobrepaga o pago-total sin saldo pendiente
        """
        try:
            type = MovementType(type)
        except ValueError:
            raise InvalidMovement(f"Tipo de movimiento inválido: {type}", type=str(type))

        with resource_locks.acquire(client_key(client_id)):
            with unit_of_work(self.db):
                client = self._lock_client(client_id)
                movement = self._append(client, type, amount, description, sale_id)

        logger.info(
            f"Movimiento {movement.type.value} #{movement.sequence} cliente {client_id}: "
            f"{format_currency(movement.signed_amount)} -> saldo {format_currency(movement.balance_after)}"
        )
        return movement

    def _append(
        self,
        client: Client,
        type: MovementType,
        amount: Optional[Union[int, str, Decimal]],
        description: str,
        sale_id: Optional[UUID]
    ) -> ClientMovement:
        previous = client.balance

        if type == MovementType.PAGO_TOTAL:
            if previous <= 0:
                raise InvalidMovement(
                    "El cliente no tiene saldo pendiente para liquidar",
                    client_id=client.id, balance=previous
                )
            recorded = previous
            delta = -previous
        else:
            try:
                recorded = to_amount(amount)
            except (TypeError, ValueError):
                raise InvalidMovement(f"Monto inválido: {amount!r}", client_id=client.id)

            if recorded <= 0:
                raise InvalidMovement(
                    "El monto debe ser mayor a cero",
                    client_id=client.id, amount=recorded
                )

            if type == MovementType.FIADO:
                delta = recorded
            else:
                if recorded > previous:
                    raise InvalidMovement(
                        f"El abono ({format_currency(recorded)}) excede el saldo pendiente "
                        f"({format_currency(previous)})",
                        client_id=client.id, amount=recorded, balance=previous
                    )
                delta = -recorded

        balance_after = previous + delta
        client.last_sequence = (client.last_sequence or 0) + 1
        client.balance = balance_after

        movement = ClientMovement(
            client_id=client.id,
            sequence=client.last_sequence,
            type=type,
            amount=recorded,
            balance_after=balance_after,
            description=description or "",
            sale_id=sale_id,
            created_at=datetime.utcnow()
        )
        self.db.add(movement)
        try:
            self.db.flush()
        except IntegrityError:
            raise ResourceConflict(
                "Secuencia de movimientos duplicada: escritura concurrente sin bloqueo",
                client_id=client.id, sequence=client.last_sequence
            )
        return movement

    # ===== VERIFICACIÓN =====

    def verify_client(self, client_id: UUID) -> LedgerCheckOut:
        """
        Recalcula el saldo desde el historial y lo compara con el cacheado.
        Solo informa: nunca corrige datos.
        """
        client = self.get_client(client_id)
        movements = self.db.query(ClientMovement).filter(
            ClientMovement.client_id == client_id
        ).order_by(ClientMovement.sequence).all()

        issues = []
        running = 0
        for index, movement in enumerate(movements, start=1):
            if movement.sequence != index:
                issues.append(f"Secuencia {movement.sequence} en la posición {index}")
            running += movement.signed_amount
            if movement.balance_after != running:
                issues.append(
                    f"Movimiento #{movement.sequence}: balance_after {movement.balance_after} "
                    f"!= {running}"
                )

        if client.balance != running:
            issues.append(f"Saldo cacheado {client.balance} != historial {running}")
        if (client.last_sequence or 0) != len(movements):
            issues.append(f"last_sequence {client.last_sequence} != {len(movements)} movimientos")

        if issues:
            logger.warning(f"Inconsistencia en el libro del cliente {client_id}: {issues}")

        return LedgerCheckOut(
            client_id=client.id,
            cached_balance=client.balance,
            computed_balance=running,
            movements=len(movements),
            consistent=not issues,
            issues=issues
        )

    def verify_all(self) -> Dict[str, Any]:
        client_ids = [row.id for row in self.db.query(Client.id).all()]
        results = [self.verify_client(client_id) for client_id in client_ids]
        inconsistent = [result for result in results if not result.consistent]
        return {
            "checked": len(results),
            "inconsistent": len(inconsistent),
            "details": [result.model_dump(mode="json") for result in inconsistent]
        }


class ClientService:
    """Directorio de clientes"""

    def __init__(self, db: Session):
        self.db = db

    def create_client(self, client_data: ClientCreate) -> Client:
        """Crear cliente. Una deuda previa entra como primer movimiento fiado."""
        client = Client(
            name=client_data.name,
            phone=client_data.phone,
            authorized=client_data.authorized,
            balance=0,
            credit_limit=client_data.credit_limit,
            payment_schedule=client_data.payment_schedule,
            last_sequence=0,
            notes=client_data.notes
        )

        with unit_of_work(self.db):
            self.db.add(client)
            self.db.flush()
            if client_data.opening_balance > 0:
                with resource_locks.acquire(client_key(client.id)):
                    CreditLedger(self.db)._append(
                        client, MovementType.FIADO, client_data.opening_balance, "Saldo inicial", None
                    )

        self.db.refresh(client)
        logger.info(f"Cliente creado {client.id} ({client.name})")
        return client

    def get_client(self, client_id: UUID) -> Client:
        return CreditLedger(self.db).get_client(client_id)

    def update_client(self, client_id: UUID, client_data: ClientUpdate) -> Client:
        with resource_locks.acquire(client_key(client_id)):
            with unit_of_work(self.db):
                client = self.get_client(client_id)
                update_data = client_data.model_dump(exclude_unset=True)
                for field, value in update_data.items():
                    setattr(client, field, value)

        self.db.refresh(client)
        return client

    def list_clients(
        self,
        search: Optional[str] = None,
        authorized: Optional[bool] = None,
        with_debt: bool = False,
        limit: int = 100,
        offset: int = 0
    ) -> Dict[str, Any]:
        query = self.db.query(Client)

        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Client.name.ilike(pattern), Client.phone.ilike(pattern)))

        if authorized is not None:
            query = query.filter(Client.authorized == authorized)

        if with_debt:
            query = query.filter(Client.balance > 0)

        query = query.order_by(Client.name)

        total = query.count()
        clients = query.offset(offset).limit(limit).all()

        return {
            "clients": clients,
            "total": total,
            "limit": limit,
            "offset": offset
        }
