"""
Servicios de negocio para el módulo POS (Point of Sale)

Implementa toda la lógica de negocio para:
- ShiftService: apertura/cierre de turnos, gastos y arqueo
- SaleProcessor: ventas y devoluciones atómicas

Integración con otros módulos:
- Inventory: StockLedger descuenta o repone stock
- Clients: CreditLedger registra fiados y abonos
- Products: precios vigentes del catálogo

Una venta toma sus claves en orden global (productos, cliente, turno,
secuencia de tickets) y escribe stock, movimiento de crédito, venta y
acumulado del turno en una sola unidad de trabajo.
"""

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import func
from typing import List, Optional, Dict, Any, Iterable
from uuid import UUID, uuid4
from datetime import datetime
from dataclasses import asdict
import logging

from app.core.config import settings
from app.common.exceptions import (
    CreditDenied, InvalidSale, NotFound, ResourceConflict, ShiftAlreadyOpen, ShiftClosed
)
from app.common.locking import (
    client_key, product_key, resource_locks, seller_key, sequence_key, shift_key
)
from app.common.money import to_amount, format_currency
from app.database.database import unit_of_work
from app.modules.clients.models import MovementType
from app.modules.clients.service import CreditLedger
from app.modules.inventory.schemas import StockDirection, StockLine
from app.modules.inventory.service import StockLedger, merge_lines
from app.modules.pos.models import (
    Shift, ShiftExpense, ShiftStatus, ShiftType, Sale, SaleItem, SaleType, PaymentMethod, TicketSequence
)
from app.modules.pos.reconciliation import ReconciliationCalculator, ShiftSummary
from app.modules.pos.schemas import ShiftOpen, ShiftClose, ShiftExpenseCreate, ShiftCheckOut
from app.modules.pos.shift_session import ShiftSession

logger = logging.getLogger(__name__)

TICKET_SEQUENCE = "ticket"


class ShiftService:
    """Servicio para gestión de turnos"""

    def __init__(self, db: Session):
        self.db = db

    def _lock_shift(self, shift_id: UUID) -> Shift:
        shift = self.db.query(Shift).filter(
            Shift.id == shift_id
        ).populate_existing().with_for_update().first()
        if not shift:
            raise NotFound("Turno no encontrado", shift_id=shift_id)
        return shift

    def open_shift(self, shift_data: ShiftOpen, opened_at: Optional[datetime] = None) -> Shift:
        """Abrir turno. Un vendedor no puede tener dos turnos abiertos."""
        with resource_locks.acquire(seller_key(shift_data.seller)):
            with unit_of_work(self.db):
                existing = self.get_active_shift(shift_data.seller)
                if existing:
                    raise ShiftAlreadyOpen(
                        f"El vendedor '{shift_data.seller}' ya tiene un turno abierto",
                        seller=shift_data.seller,
                        shift_id=existing.id
                    )

                shift = Shift(
                    seller=shift_data.seller,
                    type=ShiftType(shift_data.type),
                    status=ShiftStatus.OPEN,
                    initial_cash=shift_data.initial_cash,
                    opened_at=opened_at or datetime.utcnow(),
                    running_total_sales=0,
                    running_tickets=0,
                    running_breakdown={},
                    running_cash_expenses=0,
                    opening_notes=shift_data.opening_notes
                )
                self.db.add(shift)
                try:
                    self.db.flush()
                except IntegrityError:
                    raise ShiftAlreadyOpen(
                        f"El vendedor '{shift_data.seller}' ya tiene un turno abierto",
                        seller=shift_data.seller
                    )

        logger.info(
            f"Turno {shift.type.value} abierto para {shift.seller} "
            f"con {format_currency(shift.initial_cash)} ({shift.id})"
        )
        return shift

    def get_active_shift(self, seller: str) -> Optional[Shift]:
        """Turno abierto del vendedor, o None."""
        return self.db.query(Shift).filter(
            Shift.seller == seller,
            Shift.status == ShiftStatus.OPEN
        ).first()

    def get_shift(self, shift_id: UUID) -> Shift:
        shift = self.db.query(Shift).filter(Shift.id == shift_id).first()
        if not shift:
            raise NotFound("Turno no encontrado", shift_id=shift_id)
        return shift

    def list_shifts(
        self,
        seller: Optional[str] = None,
        status: Optional[ShiftStatus] = None,
        limit: int = 100,
        offset: int = 0
    ) -> Dict[str, Any]:
        query = self.db.query(Shift)

        if seller:
            query = query.filter(Shift.seller == seller)
        if status:
            query = query.filter(Shift.status == status)

        query = query.order_by(Shift.opened_at.desc())
        total = query.count()
        shifts = query.offset(offset).limit(limit).all()

        return {"shifts": shifts, "total": total, "limit": limit, "offset": offset}

    def summary(self, shift_id: UUID) -> ShiftSummary:
        """Resumen vigente si está abierto, el de cierre si está cerrado."""
        return ShiftSession(self.get_shift(shift_id)).summary()

    def record_expense(self, shift_id: UUID, expense_data: ShiftExpenseCreate) -> ShiftExpense:
        with resource_locks.acquire(shift_key(shift_id)):
            with unit_of_work(self.db):
                shift = self._lock_shift(shift_id)
                expense = ShiftExpense(
                    type=expense_data.type,
                    amount=to_amount(expense_data.amount),
                    supplier=expense_data.supplier,
                    description=expense_data.description,
                    paid_from_cash=expense_data.paid_from_cash,
                    created_at=datetime.utcnow()
                )
                ShiftSession(shift).record_expense(expense)
                self.db.flush()

        logger.info(
            f"Gasto {expense.type.value} de {format_currency(expense.amount)} en turno {shift_id}"
            f"{' (caja)' if expense.paid_from_cash else ''}"
        )
        return expense

    def close_shift(self, shift_id: UUID, close_data: ShiftClose, closed_at: Optional[datetime] = None) -> Shift:
        """
        Cerrar turno con arqueo.

        Raises:
            AlreadyClosed: el turno ya estaba cerrado
            InvalidCount: conteo de caja negativo
        """
        with resource_locks.acquire(shift_key(shift_id)):
            with unit_of_work(self.db):
                shift = self._lock_shift(shift_id)
                result = ShiftSession(shift).close(close_data.cash_counted, closed_at)
                if close_data.closing_notes:
                    shift.closing_notes = close_data.closing_notes

        logger.info(
            f"Turno {shift.id} de {shift.seller} cerrado: ventas {format_currency(result.total_sales)}, "
            f"esperado {format_currency(result.cash_expected)}, contado {format_currency(result.cash_counted)}, "
            f"diferencia {format_currency(result.difference)}"
        )
        if result.difference != 0:
            logger.warning(f"Turno {shift.id} cerró con diferencia de caja {format_currency(result.difference)}")
        return shift

    def verify_shift(self, shift_id: UUID) -> ShiftCheckOut:
        """
        Recalcula el resumen desde ventas y gastos y lo compara con los
        acumulados (abierto) o con el arqueo (cerrado). Solo informa.
        """
        shift = self.get_shift(shift_id)
        sales = self.db.query(Sale).filter(Sale.shift_id == shift_id).all()
        expenses = self.db.query(ShiftExpense).filter(ShiftExpense.shift_id == shift_id).all()

        stored = ShiftSession(shift).summary()
        computed = ReconciliationCalculator.summarize_sales(sales)
        total_expenses, cash_expenses = ReconciliationCalculator.sum_expenses(expenses)

        issues = []
        if stored.total != computed.total:
            issues.append(f"Total de ventas {stored.total} != {computed.total}")
        if stored.tickets != computed.tickets:
            issues.append(f"Tickets {stored.tickets} != {computed.tickets}")
        for method in sorted(set(stored.by_payment) | set(computed.by_payment)):
            if stored.by_payment.get(method, 0) != computed.by_payment.get(method, 0):
                issues.append(
                    f"Medio {method}: {stored.by_payment.get(method, 0)} != {computed.by_payment.get(method, 0)}"
                )

        if shift.status == ShiftStatus.OPEN:
            if (shift.running_cash_expenses or 0) != cash_expenses:
                issues.append(f"Gastos en efectivo {shift.running_cash_expenses} != {cash_expenses}")
        else:
            if shift.total_expenses != total_expenses:
                issues.append(f"Total de gastos {shift.total_expenses} != {total_expenses}")
            expected = shift.initial_cash + computed.by_payment.get(PaymentMethod.CASH.value, 0) - cash_expenses
            if shift.cash_expected != expected:
                issues.append(f"Efectivo esperado {shift.cash_expected} != {expected}")
            if shift.difference != shift.cash_counted - shift.cash_expected:
                issues.append("Diferencia no coincide con contado - esperado")

        if issues:
            logger.warning(f"Inconsistencia en el turno {shift_id}: {issues}")

        return ShiftCheckOut(
            shift_id=shift.id,
            status=shift.status,
            stored=asdict(stored),
            computed=asdict(computed),
            consistent=not issues,
            issues=issues
        )


class SaleProcessor:
    """
    Orquesta una venta o devolución completa.

    Todo lo que hace una venta (movimiento fiado, stock, ticket, registro y
    acumulado del turno) se confirma junto o no se confirma: cualquier
    error deshace la unidad de trabajo completa.
    """

    def __init__(self, db: Session):
        self.db = db
        self.stock = StockLedger(db)
        self.credit = CreditLedger(db)

    # ===== CONSULTAS =====

    def get_sale(self, sale_id: UUID) -> Sale:
        sale = self.db.query(Sale).filter(Sale.id == sale_id).first()
        if not sale:
            raise NotFound("Venta no encontrada", sale_id=sale_id)
        return sale

    def list_sales(
        self,
        shift_id: Optional[UUID] = None,
        type: Optional[SaleType] = None,
        limit: int = 100,
        offset: int = 0
    ) -> Dict[str, Any]:
        query = self.db.query(Sale)
        if shift_id:
            query = query.filter(Sale.shift_id == shift_id)
        if type:
            query = query.filter(Sale.type == type)

        query = query.order_by(Sale.created_at.desc(), Sale.ticket.desc())
        total = query.count()
        sales = query.offset(offset).limit(limit).all()

        return {"sales": sales, "total": total, "limit": limit, "offset": offset}

    # ===== VENTA =====

    def process(
        self,
        cart_lines: Iterable,
        payment_method: PaymentMethod,
        shift_id: UUID,
        seller: str,
        client_id: Optional[UUID] = None,
        cash_received: Optional[int] = None,
        notes: Optional[Dict[str, Any]] = None
    ) -> Sale:
        """
        Registrar una venta.

        Raises:
            InvalidSale: carro vacío, cantidades no positivas, total cero, efectivo
                insuficiente, fiado sin cliente o vendedor distinto al del turno
            ShiftClosed: el turno no está abierto
            CreditDenied: cliente bloqueado o cupo excedido
            InsufficientStock: algún producto sin stock suficiente
        """
        method = self._payment_method(payment_method)
        lines = self._cart_lines(cart_lines)

        if method == PaymentMethod.FIADO and client_id is None:
            raise InvalidSale("La venta fiada requiere un cliente")

        keys = [product_key(line.product_id) for line in lines]
        if method == PaymentMethod.FIADO:
            keys.append(client_key(client_id))
        keys += [shift_key(shift_id), sequence_key(TICKET_SEQUENCE)]

        with resource_locks.acquire(*keys):
            with unit_of_work(self.db):
                products = self.stock.lock_products(line.product_id for line in lines)
                shift = self._lock_open_shift(shift_id, seller)

                items = []
                for position, line in enumerate(lines, start=1):
                    product = products[line.product_id]
                    if not product.is_active:
                        raise InvalidSale(f"El producto '{product.name}' no está activo", product_id=product.id)
                    items.append(SaleItem(
                        position=position,
                        product_id=product.id,
                        name=product.name,
                        unit_price=product.price,
                        quantity=line.quantity,
                        subtotal=product.price * line.quantity
                    ))
                total = sum(item.subtotal for item in items)
                if total <= 0:
                    raise InvalidSale("El total de la venta debe ser mayor a cero", total=total)

                received, change = self._cash_fields(method, total, cash_received)
                ticket = self._next_ticket()
                sale = Sale(
                    id=uuid4(),
                    ticket=ticket,
                    type=SaleType.SALE,
                    total=total,
                    payment_method=method,
                    cash_received=received,
                    change=change,
                    client_id=client_id if method == PaymentMethod.FIADO else None,
                    shift_id=shift.id,
                    seller=seller,
                    notes=notes,
                    created_at=datetime.utcnow(),
                    items=items
                )

                if method == PaymentMethod.FIADO:
                    self._charge_credit(client_id, total, sale)

                self.stock.reserve_and_apply(
                    [StockLine(line.product_id, line.quantity) for line in lines], StockDirection.SALE
                )

                self.db.add(sale)
                self.db.flush()
                ShiftSession(shift).record_sale(sale)

        logger.info(
            f"Venta {sale.ticket} {method.value} por {format_currency(sale.total)} "
            f"({len(items)} líneas) turno {shift_id}"
        )
        return sale

    # ===== DEVOLUCIÓN =====

    def process_return(
        self,
        original_sale_id: UUID,
        shift_id: UUID,
        seller: str,
        lines: Optional[Iterable] = None,
        refund_method: Optional[PaymentMethod] = None,
        notes: Optional[Dict[str, Any]] = None
    ) -> Sale:
        """
        Registrar la devolución de una venta existente.

        Sin ``lines`` devuelve todo lo que queda por devolver. Los precios
        son los de la venta original. Si el reembolso es fiado se registra
        un abono en la cuenta del cliente.

        Raises:
            InvalidSale: devolución de una devolución, producto que no estaba
                en la venta o cantidad mayor a la devolvible
            InvalidMovement: el abono dejaría el saldo del cliente negativo
        """
        original = self.get_sale(original_sale_id)
        if original.type == SaleType.RETURN:
            raise InvalidSale("No se puede devolver una devolución", sale_id=original.id)

        method = self._payment_method(refund_method) if refund_method else PaymentMethod(original.payment_method)
        if method == PaymentMethod.FIADO and original.client_id is None:
            raise InvalidSale(
                "Solo una venta fiada puede reembolsarse como abono", sale_id=original.id
            )
        requested = self._cart_lines(lines) if lines is not None else None

        keys = [product_key(item.product_id) for item in original.items]
        if method == PaymentMethod.FIADO:
            keys.append(client_key(original.client_id))
        keys += [shift_key(shift_id), sequence_key(TICKET_SEQUENCE)]

        with resource_locks.acquire(*keys):
            with unit_of_work(self.db):
                self.stock.lock_products(item.product_id for item in original.items)
                shift = self._lock_open_shift(shift_id, seller)
                returnable = self._returnable(original)

                if requested is None:
                    requested = [
                        StockLine(product_id, quantity)
                        for product_id, quantity in returnable.items()
                        if quantity > 0
                    ]
                    if not requested:
                        raise InvalidSale("La venta ya fue devuelta completamente", sale_id=original.id)

                prices = {item.product_id: item for item in original.items}
                items = []
                for position, line in enumerate(requested, start=1):
                    if line.product_id not in returnable:
                        raise InvalidSale(
                            "El producto no forma parte de la venta original",
                            sale_id=original.id, product_id=line.product_id
                        )
                    if line.quantity > returnable[line.product_id]:
                        raise InvalidSale(
                            f"Cantidad a devolver excede lo vendido para '{prices[line.product_id].name}'",
                            product_id=line.product_id,
                            requested=line.quantity,
                            returnable=returnable[line.product_id]
                        )
                    source = prices[line.product_id]
                    items.append(SaleItem(
                        position=position,
                        product_id=source.product_id,
                        name=source.name,
                        unit_price=source.unit_price,
                        quantity=line.quantity,
                        subtotal=source.unit_price * line.quantity
                    ))
                total = sum(item.subtotal for item in items)

                ticket = self._next_ticket()
                refund = Sale(
                    id=uuid4(),
                    ticket=ticket,
                    type=SaleType.RETURN,
                    total=total,
                    payment_method=method,
                    client_id=original.client_id if method == PaymentMethod.FIADO else None,
                    shift_id=shift.id,
                    seller=seller,
                    original_sale_id=original.id,
                    notes=notes,
                    created_at=datetime.utcnow(),
                    items=items
                )

                if method == PaymentMethod.FIADO:
                    self.credit.post_movement(
                        original.client_id,
                        MovementType.ABONO,
                        total,
                        f"Devolución {ticket} (venta {original.ticket})",
                        sale_id=refund.id
                    )

                self.stock.reserve_and_apply(
                    [StockLine(item.product_id, item.quantity) for item in items], StockDirection.RETURN
                )

                self.db.add(refund)
                self.db.flush()
                ShiftSession(shift).record_sale(refund)

        logger.info(
            f"Devolución {refund.ticket} de la venta {original.ticket} por {format_currency(refund.total)} "
            f"({method.value}) turno {shift_id}"
        )
        return refund

    # ===== AUXILIARES =====

    @staticmethod
    def _payment_method(value) -> PaymentMethod:
        try:
            return PaymentMethod(value)
        except ValueError:
            raise InvalidSale(f"Medio de pago inválido: {value}", payment_method=str(value))

    @staticmethod
    def _cart_lines(cart_lines: Optional[Iterable]) -> List[StockLine]:
        """Normaliza las líneas del carro; acepta objetos o dicts con product_id y quantity."""
        lines = []
        for line in cart_lines or []:
            if isinstance(line, dict):
                product_id, quantity = line.get("product_id"), line.get("quantity")
            else:
                product_id, quantity = line.product_id, line.quantity
            if product_id is None:
                raise InvalidSale("Línea sin producto")
            if isinstance(product_id, str):
                product_id = UUID(product_id)
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
                raise InvalidSale(
                    "La cantidad debe ser un entero mayor a cero",
                    product_id=product_id, quantity=quantity
                )
            lines.append(StockLine(product_id, quantity))

        if not lines:
            raise InvalidSale("El carro está vacío")

        # Líneas repetidas del mismo producto se agrupan en una
        return [StockLine(product_id, quantity) for product_id, quantity in merge_lines(lines).items()]

    def _lock_open_shift(self, shift_id: UUID, seller: str) -> Shift:
        shift = self.db.query(Shift).filter(
            Shift.id == shift_id
        ).populate_existing().with_for_update().first()
        if not shift:
            raise NotFound("Turno no encontrado", shift_id=shift_id)
        if shift.status != ShiftStatus.OPEN:
            raise ShiftClosed("El turno está cerrado", shift_id=shift.id)
        if shift.seller != seller:
            raise InvalidSale(
                f"El turno pertenece a '{shift.seller}', no a '{seller}'",
                shift_id=shift.id, seller=seller
            )
        return shift

    @staticmethod
    def _cash_fields(method: PaymentMethod, total: int, cash_received: Optional[int]):
        """(cash_received, change); solo el efectivo los registra."""
        if method != PaymentMethod.CASH:
            return None, None

        received = total if cash_received is None else to_amount(cash_received)
        if received < total:
            raise InvalidSale(
                f"Efectivo recibido ({format_currency(received)}) menor al total ({format_currency(total)})",
                cash_received=received, total=total
            )
        return received, received - total

    def _charge_credit(self, client_id: UUID, total: int, sale: Sale) -> None:
        self.credit._lock_client(client_id)
        check = self.credit.check_credit(client_id, total)
        if not check.authorized:
            reason = (
                "El cliente no está autorizado para comprar fiado"
                if not check.client_authorized
                else f"Cupo excedido: disponible {format_currency(check.available_credit)}"
            )
            raise CreditDenied(
                reason,
                client_id=client_id,
                requested=total,
                balance=check.balance,
                credit_limit=check.credit_limit,
                available_credit=check.available_credit,
                client_authorized=check.client_authorized
            )

        self.credit.post_movement(
            client_id, MovementType.FIADO, total, f"Compra {sale.ticket}", sale_id=sale.id
        )

    def _returnable(self, original: Sale) -> Dict[UUID, int]:
        """Cantidad aún devolvible por producto de la venta original."""
        sold: Dict[UUID, int] = {}
        for item in original.items:
            sold[item.product_id] = sold.get(item.product_id, 0) + item.quantity

        returned_rows = self.db.query(
            SaleItem.product_id, func.sum(SaleItem.quantity)
        ).join(Sale, Sale.id == SaleItem.sale_id).filter(
            Sale.original_sale_id == original.id,
            Sale.type == SaleType.RETURN
        ).group_by(SaleItem.product_id).all()

        returned = {product_id: int(quantity or 0) for product_id, quantity in returned_rows}
        return {product_id: quantity - returned.get(product_id, 0) for product_id, quantity in sold.items()}

    def _next_ticket(self) -> str:
        """
        Siguiente número de ticket (T-000001, T-000002, ...).

        Se llama con la clave de secuencia tomada y dentro de la unidad de
        trabajo: si la venta falla el número no se consume.
        """
        sequence = self.db.query(TicketSequence).filter(
            TicketSequence.name == TICKET_SEQUENCE
        ).populate_existing().with_for_update().first()

        if not sequence:
            sequence = TicketSequence(name=TICKET_SEQUENCE, prefix=settings.TICKET_PREFIX, current_number=0)
            self.db.add(sequence)
            try:
                self.db.flush()
            except IntegrityError:
                raise ResourceConflict("Secuencia de tickets creada concurrentemente")

        sequence.current_number += 1
        return f"{sequence.prefix}{sequence.current_number:06d}"
