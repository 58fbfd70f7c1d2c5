"""
Tests para el módulo POS

Cubren:
- ShiftSession y ReconciliationCalculator sin base de datos
- Apertura y cierre de turnos con arqueo
- Ventas: efectivo, tarjeta, fiado con cupo, stock insuficiente
- Devoluciones ligadas a la venta original
- Numeración de tickets y verificación de acumulados
- Endpoints REST
"""

import threading
from uuid import uuid4

import pytest

from app.common.exceptions import (
    AlreadyClosed, CreditDenied, InsufficientStock, InvalidCount, InvalidMovement,
    InvalidSale, NotFound, ShiftAlreadyOpen, ShiftClosed
)
from app.modules.clients.service import CreditLedger
from app.modules.inventory.schemas import StockLine
from app.modules.inventory.service import StockLedger
from app.modules.pos.models import (
    Shift, ShiftExpense, ShiftStatus, Sale, SaleType, PaymentMethod, ExpenseType
)
from app.modules.pos.reconciliation import ReconciliationCalculator, ShiftSummary
from app.modules.pos.schemas import CartLine, ShiftClose, ShiftExpenseCreate
from app.modules.pos.services import SaleProcessor, ShiftService
from app.modules.pos.shift_session import ShiftSession
from app.modules.products.models import Product


def new_shift(initial_cash=10000):
    return Shift(
        seller="Eliana",
        initial_cash=initial_cash,
        status=ShiftStatus.OPEN,
        running_total_sales=0,
        running_tickets=0,
        running_breakdown={},
        running_cash_expenses=0
    )


def new_sale(total, method, type=SaleType.SALE):
    return Sale(ticket="T-000000", type=type, total=total, payment_method=method)


def cart(*pairs):
    return [CartLine(product_id=product.id, quantity=quantity) for product, quantity in pairs]


def stock_of(db, product_id):
    db.expire_all()
    return db.query(Product).filter(Product.id == product_id).one().stock


# ===== LÓGICA PURA =====

class TestShiftSession:
    """Máquina de estados del turno sin base de datos"""

    def test_reconciliation_example(self):
        shift = new_shift(initial_cash=10000)
        session = ShiftSession(shift)

        session.record_sale(new_sale(5000, PaymentMethod.CASH))
        session.record_sale(new_sale(3000, PaymentMethod.CARD))
        session.record_expense(ShiftExpense(type=ExpenseType.FLETE, amount=2000, paid_from_cash=True))
        result = session.close(13000)

        assert result.cash_expected == 13000
        assert result.difference == 0
        assert result.payments_breakdown == {"cash": 5000, "card": 3000}
        assert result.total_sales == 8000
        assert result.tickets == 2
        assert result.total_expenses == 2000
        assert shift.status == ShiftStatus.CLOSED
        assert shift.closed_at is not None

    def test_zero_sales_shift_expects_initial_cash(self):
        shift = new_shift(initial_cash=25000)
        result = ShiftSession(shift).close(24000)

        assert result.cash_expected == 25000
        assert result.difference == -1000
        assert result.total_sales == 0

    def test_return_subtracts_from_totals(self):
        shift = new_shift()
        session = ShiftSession(shift)
        session.record_sale(new_sale(8000, PaymentMethod.CASH))

        session.record_sale(new_sale(5000, PaymentMethod.CASH, SaleType.RETURN))

        summary = session.summary()
        assert summary.total == 3000
        assert summary.by_payment == {"cash": 3000}
        assert summary.tickets == 2

    def test_return_below_zero_only_warns(self, caplog):
        session = ShiftSession(new_shift())

        session.record_sale(new_sale(1000, PaymentMethod.CARD, SaleType.RETURN))

        assert session.summary().total == -1000
        assert "acumulado negativo" in caplog.text

    def test_expense_not_from_cash_does_not_affect_expected(self):
        shift = new_shift(initial_cash=10000)
        session = ShiftSession(shift)
        session.record_expense(ShiftExpense(type=ExpenseType.PROVEEDOR, amount=7000, paid_from_cash=False))

        result = session.close(10000)

        assert result.total_expenses == 7000
        assert result.cash_expected == 10000

    def test_close_twice_raises(self):
        shift = new_shift()
        session = ShiftSession(shift)
        session.record_sale(new_sale(4000, PaymentMethod.CASH))
        session.close(14000)
        before = session.summary()

        with pytest.raises(AlreadyClosed):
            session.close(0)

        assert session.summary() == before
        assert shift.cash_counted == 14000

    def test_negative_count_is_invalid(self):
        shift = new_shift()
        with pytest.raises(InvalidCount):
            ShiftSession(shift).close(-1)
        assert shift.status == ShiftStatus.OPEN

    def test_closed_shift_rejects_sales_and_expenses(self):
        shift = new_shift()
        session = ShiftSession(shift)
        session.close(10000)

        with pytest.raises(ShiftClosed):
            session.record_sale(new_sale(1000, PaymentMethod.CASH))
        with pytest.raises(ShiftClosed):
            session.record_expense(ShiftExpense(type=ExpenseType.OTRO, amount=100, paid_from_cash=True))


class TestReconciliationCalculator:

    def test_only_cash_reaches_the_drawer(self):
        summary = ShiftSummary(
            total=19000, tickets=4,
            by_payment={"cash": 4000, "card": 6000, "transfer": 5000, "fiado": 3000, "staff": 1000}
        )
        result = ReconciliationCalculator.calculate(5000, summary, [], 9000)

        assert result.cash_expected == 9000
        assert result.difference == 0

    def test_summarize_sales(self):
        sales = [
            new_sale(5000, PaymentMethod.CASH),
            new_sale(3000, PaymentMethod.TRANSFER),
            new_sale(2000, PaymentMethod.CASH, SaleType.RETURN),
        ]
        summary = ReconciliationCalculator.summarize_sales(sales)

        assert summary == ShiftSummary(total=6000, tickets=3, by_payment={"cash": 3000, "transfer": 3000})


# ===== TURNOS =====

class TestShiftService:

    def test_one_open_shift_per_seller(self, db_session, open_shift):
        shift = open_shift(seller="Eliana")

        with pytest.raises(ShiftAlreadyOpen) as exc_info:
            open_shift(seller="Eliana")

        assert exc_info.value.context["shift_id"] == shift.id
        assert open_shift(seller="Pedro").seller == "Pedro"

    def test_active_shift_lookup(self, db_session, open_shift):
        service = ShiftService(db_session)
        shift = open_shift(seller="Eliana")

        assert service.get_active_shift("Eliana").id == shift.id
        assert service.get_active_shift("Pedro") is None

        service.close_shift(shift.id, ShiftClose(cash_counted=10000))
        assert service.get_active_shift("Eliana") is None
        assert open_shift(seller="Eliana").id != shift.id

    def test_reconciliation_fields_null_while_open(self, db_session, open_shift):
        shift = open_shift()
        for field in ("cash_expected", "cash_counted", "difference", "total_sales",
                      "tickets", "payments_breakdown", "total_expenses", "closed_at"):
            assert getattr(shift, field) is None

    def test_full_shift_example(self, db_session, open_shift, make_product):
        shift = open_shift(initial_cash=10000)
        cheese = make_product(name="Queso", price=5000, stock=5)
        bread = make_product(name="Pan", price=1000, stock=50)
        processor = SaleProcessor(db_session)
        service = ShiftService(db_session)

        processor.process(cart((cheese, 1)), PaymentMethod.CASH, shift.id, "Eliana")
        processor.process(cart((bread, 3)), PaymentMethod.CARD, shift.id, "Eliana")
        service.record_expense(shift.id, ShiftExpenseCreate(type=ExpenseType.FLETE, amount=2000))

        closed = service.close_shift(shift.id, ShiftClose(cash_counted=13000, closing_notes="Sin novedad"))

        assert closed.status == ShiftStatus.CLOSED
        assert closed.cash_expected == 13000
        assert closed.difference == 0
        assert closed.payments_breakdown == {"cash": 5000, "card": 3000}
        assert closed.total_sales == 8000
        assert closed.tickets == 2
        assert closed.total_expenses == 2000
        assert closed.closing_notes == "Sin novedad"

    def test_close_twice_leaves_summary_untouched(self, db_session, open_shift):
        service = ShiftService(db_session)
        shift = open_shift(initial_cash=5000)
        service.close_shift(shift.id, ShiftClose(cash_counted=5500))

        with pytest.raises(AlreadyClosed):
            service.close_shift(shift.id, ShiftClose(cash_counted=0))

        reloaded = service.get_shift(shift.id)
        assert reloaded.cash_counted == 5500
        assert reloaded.difference == 500

    def test_expense_on_closed_shift(self, db_session, open_shift):
        service = ShiftService(db_session)
        shift = open_shift()
        service.close_shift(shift.id, ShiftClose(cash_counted=10000))

        with pytest.raises(ShiftClosed):
            service.record_expense(shift.id, ShiftExpenseCreate(type=ExpenseType.OTRO, amount=500))

    def test_verify_shift_and_task(self, db_session, session_factory, open_shift, make_product, monkeypatch):
        from app.modules.pos import tasks

        shift = open_shift()
        product = make_product(price=2500)
        SaleProcessor(db_session).process(cart((product, 2)), PaymentMethod.TRANSFER, shift.id, "Eliana")
        ShiftService(db_session).record_expense(
            shift.id, ShiftExpenseCreate(type=ExpenseType.SUELDO, amount=3000)
        )

        check = ShiftService(db_session).verify_shift(shift.id)
        assert check.consistent, check.issues
        assert check.computed.by_payment == {"transfer": 5000}

        monkeypatch.setattr(tasks, "SessionLocal", session_factory)
        result = tasks.verify_shift_accumulators(str(shift.id))
        assert result["consistent"] is True

    def test_verify_detects_tampered_accumulator(self, db_session, open_shift, make_product):
        shift = open_shift()
        product = make_product(price=2500)
        SaleProcessor(db_session).process(cart((product, 1)), PaymentMethod.CASH, shift.id, "Eliana")
        db_session.query(Shift).filter(Shift.id == shift.id).update({"running_total_sales": 9999})
        db_session.commit()

        check = ShiftService(db_session).verify_shift(shift.id)

        assert check.consistent is False
        assert check.stored.total == 9999
        assert check.computed.total == 2500


# ===== VENTAS =====

class TestSaleProcessor:

    def test_cash_sale_with_change(self, db_session, open_shift, make_product):
        shift = open_shift()
        product = make_product(price=1500, stock=10)

        sale = SaleProcessor(db_session).process(
            cart((product, 2)), PaymentMethod.CASH, shift.id, "Eliana", cash_received=5000
        )

        assert sale.ticket == "T-000001"
        assert sale.total == 3000
        assert sale.change == 2000
        assert [(item.name, item.unit_price, item.quantity, item.subtotal) for item in sale.items] == [
            ("Pan amasado", 1500, 2, 3000)
        ]
        assert stock_of(db_session, product.id) == 8

    def test_cash_received_defaults_to_total(self, db_session, open_shift, make_product):
        shift = open_shift()
        product = make_product(price=990)

        sale = SaleProcessor(db_session).process(cart((product, 1)), "cash", shift.id, "Eliana")

        assert sale.cash_received == 990
        assert sale.change == 0

    def test_cash_received_below_total(self, db_session, open_shift, make_product):
        shift = open_shift()
        product = make_product(price=2000, stock=3)

        with pytest.raises(InvalidSale):
            SaleProcessor(db_session).process(
                cart((product, 1)), PaymentMethod.CASH, shift.id, "Eliana", cash_received=1000
            )

        assert stock_of(db_session, product.id) == 3

    def test_card_sale_has_no_cash_fields(self, db_session, open_shift, make_product):
        shift = open_shift()
        product = make_product()

        sale = SaleProcessor(db_session).process(
            cart((product, 1)), PaymentMethod.CARD, shift.id, "Eliana", cash_received=5000
        )

        assert sale.cash_received is None
        assert sale.change is None

    def test_price_is_copied_at_sale_time(self, db_session, open_shift, make_product):
        shift = open_shift()
        product = make_product(price=1000)
        sale = SaleProcessor(db_session).process(cart((product, 1)), PaymentMethod.CARD, shift.id, "Eliana")

        product.price = 1200
        db_session.commit()

        assert SaleProcessor(db_session).get_sale(sale.id).items[0].unit_price == 1000

    def test_tickets_are_sequential_and_not_consumed_on_failure(self, db_session, open_shift, make_product):
        shift = open_shift()
        product = make_product(stock=2)
        processor = SaleProcessor(db_session)

        first = processor.process(cart((product, 1)), PaymentMethod.CARD, shift.id, "Eliana")
        with pytest.raises(InsufficientStock):
            processor.process(cart((product, 5)), PaymentMethod.CARD, shift.id, "Eliana")
        second = processor.process(cart((product, 1)), PaymentMethod.CARD, shift.id, "Eliana")

        assert (first.ticket, second.ticket) == ("T-000001", "T-000002")

    def test_duplicate_lines_are_merged(self, db_session, open_shift, make_product):
        shift = open_shift()
        product = make_product(price=500, stock=3)

        sale = SaleProcessor(db_session).process(
            cart((product, 2), (product, 1)), PaymentMethod.CARD, shift.id, "Eliana"
        )

        assert len(sale.items) == 1
        assert sale.items[0].quantity == 3
        assert stock_of(db_session, product.id) == 0

    @pytest.mark.parametrize("lines", [[], [{"product_id": None, "quantity": 1}]])
    def test_invalid_cart(self, db_session, open_shift, lines):
        shift = open_shift()
        with pytest.raises(InvalidSale):
            SaleProcessor(db_session).process(lines, PaymentMethod.CASH, shift.id, "Eliana")

    def test_non_positive_quantity(self, db_session, open_shift, make_product):
        shift = open_shift()
        product = make_product()
        with pytest.raises(InvalidSale):
            SaleProcessor(db_session).process(
                [StockLine(product.id, 0)], PaymentMethod.CASH, shift.id, "Eliana"
            )

    def test_unknown_product(self, db_session, open_shift):
        shift = open_shift()
        with pytest.raises(NotFound):
            SaleProcessor(db_session).process(
                [{"product_id": uuid4(), "quantity": 1}], PaymentMethod.CASH, shift.id, "Eliana"
            )

    def test_closed_shift_rejects_sale(self, db_session, open_shift, make_product):
        shift = open_shift()
        product = make_product(stock=4)
        ShiftService(db_session).close_shift(shift.id, ShiftClose(cash_counted=10000))

        with pytest.raises(ShiftClosed):
            SaleProcessor(db_session).process(cart((product, 1)), PaymentMethod.CASH, shift.id, "Eliana")

        assert stock_of(db_session, product.id) == 4

    def test_seller_must_match_shift(self, db_session, open_shift, make_product):
        shift = open_shift(seller="Eliana")
        product = make_product()
        with pytest.raises(InvalidSale):
            SaleProcessor(db_session).process(cart((product, 1)), PaymentMethod.CASH, shift.id, "Pedro")

    def test_insufficient_stock_is_all_or_nothing(self, db_session, open_shift, make_product):
        shift = open_shift()
        plenty = make_product(name="Leche", stock=10)
        scarce = make_product(name="Huevos", stock=1)

        with pytest.raises(InsufficientStock) as exc_info:
            SaleProcessor(db_session).process(
                cart((plenty, 3), (scarce, 2)), PaymentMethod.CASH, shift.id, "Eliana"
            )

        assert exc_info.value.context["lines"][0]["name"] == "Huevos"
        assert stock_of(db_session, plenty.id) == 10
        assert stock_of(db_session, scarce.id) == 1
        assert ShiftService(db_session).summary(shift.id).tickets == 0

    def test_zero_total_is_rejected_before_credit_check(self, db_session, open_shift, make_client):
        shift = open_shift()
        client = make_client(credit_limit=50000)
        # Producto cargado directo en la base, sin pasar por el catálogo
        sample = Product(name="Muestra", category="General", price=0, stock=5, min_stock=0, is_active=True)
        db_session.add(sample)
        db_session.commit()

        with pytest.raises(InvalidSale) as exc_info:
            SaleProcessor(db_session).process(
                cart((sample, 1)), PaymentMethod.FIADO, shift.id, "Eliana", client_id=client.id
            )

        assert exc_info.value.context["total"] == 0
        assert CreditLedger(db_session).get_history(client.id) == []
        assert stock_of(db_session, sample.id) == 5
        assert ShiftService(db_session).summary(shift.id).tickets == 0

    def test_products_are_locked_before_the_shift(self, db_session, open_shift, make_product, monkeypatch):
        shift = open_shift()
        product = make_product(stock=5)
        calls = []
        lock_products = StockLedger.lock_products
        lock_open_shift = SaleProcessor._lock_open_shift

        def recording_lock_products(self, product_ids):
            calls.append("products")
            return lock_products(self, product_ids)

        def recording_lock_open_shift(self, shift_id, seller):
            calls.append("shift")
            return lock_open_shift(self, shift_id, seller)

        monkeypatch.setattr(StockLedger, "lock_products", recording_lock_products)
        monkeypatch.setattr(SaleProcessor, "_lock_open_shift", recording_lock_open_shift)
        processor = SaleProcessor(db_session)

        sale = processor.process(cart((product, 2)), PaymentMethod.CARD, shift.id, "Eliana")
        assert calls[:2] == ["products", "shift"]

        calls.clear()
        processor.process_return(sale.id, shift.id, "Eliana")
        assert calls[:2] == ["products", "shift"]


class TestConcurrentSales:
    """Ventas simultáneas con productos en común no se bloquean ni pierden stock"""

    def test_overlapping_carts_in_parallel(self, session_factory, open_shift, make_product):
        drink = make_product(name="Bebida", price=1000, stock=100).id
        biscuits = make_product(name="Galletas", price=700, stock=100).id
        sellers = ["Eliana", "Pedro", "Rosa", "Tomás"]
        shifts = {seller: open_shift(seller=seller).id for seller in sellers}
        errors = []

        def worker(seller, reverse):
            lines = [{"product_id": drink, "quantity": 1}, {"product_id": biscuits, "quantity": 1}]
            if reverse:
                lines.reverse()
            db = session_factory()
            try:
                for _ in range(10):
                    SaleProcessor(db).process(lines, PaymentMethod.CARD, shifts[seller], seller)
            except Exception as e:
                errors.append(e)
            finally:
                db.close()

        threads = [
            threading.Thread(target=worker, args=(seller, index % 2 == 1))
            for index, seller in enumerate(sellers)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        db = session_factory()
        try:
            assert stock_of(db, drink) == 60
            assert stock_of(db, biscuits) == 60
            tickets = sorted(ticket for (ticket,) in db.query(Sale.ticket))
            assert tickets == [f"T-{number:06d}" for number in range(1, 41)]
            for seller in sellers:
                summary = ShiftService(db).summary(shifts[seller])
                assert summary.tickets == 10
                assert summary.by_payment == {"card": 17000}
        finally:
            db.close()


class TestFiadoSales:
    """Ventas a crédito contra el cupo del cliente"""

    def test_credit_limit_example(self, db_session, open_shift, make_product, make_client):
        shift = open_shift()
        client = make_client(credit_limit=50000)
        product = make_product(name="Caja de vino", price=20000, stock=10)
        processor = SaleProcessor(db_session)
        ledger = CreditLedger(db_session)

        sale = processor.process(cart((product, 1)), PaymentMethod.FIADO, shift.id, "Eliana", client_id=client.id)

        history = ledger.get_history(client.id)
        assert history[-1].balance_after == 20000
        assert history[-1].sale_id == sale.id

        with pytest.raises(CreditDenied) as exc_info:
            processor.process(cart((product, 2)), PaymentMethod.FIADO, shift.id, "Eliana", client_id=client.id)

        assert exc_info.value.context["requested"] == 40000
        assert exc_info.value.context["available_credit"] == 30000
        assert ledger.get_client(client.id).balance == 20000
        assert len(ledger.get_history(client.id)) == 1
        assert stock_of(db_session, product.id) == 9
        assert ShiftService(db_session).summary(shift.id).by_payment == {"fiado": 20000}

    def test_fiado_requires_client(self, db_session, open_shift, make_product):
        shift = open_shift()
        product = make_product()
        with pytest.raises(InvalidSale):
            SaleProcessor(db_session).process(cart((product, 1)), PaymentMethod.FIADO, shift.id, "Eliana")

    def test_blocked_client_is_denied(self, db_session, open_shift, make_product, make_client):
        shift = open_shift()
        client = make_client(credit_limit=50000, authorized=False)
        product = make_product()

        with pytest.raises(CreditDenied) as exc_info:
            SaleProcessor(db_session).process(
                cart((product, 1)), PaymentMethod.FIADO, shift.id, "Eliana", client_id=client.id
            )

        assert exc_info.value.context["client_authorized"] is False

    def test_stock_failure_undoes_credit_movement(self, db_session, open_shift, make_product, make_client):
        shift = open_shift()
        client = make_client(credit_limit=50000)
        product = make_product(price=1000, stock=1)

        with pytest.raises(InsufficientStock):
            SaleProcessor(db_session).process(
                cart((product, 3)), PaymentMethod.FIADO, shift.id, "Eliana", client_id=client.id
            )

        ledger = CreditLedger(db_session)
        assert ledger.get_client(client.id).balance == 0
        assert ledger.get_history(client.id) == []


# ===== DEVOLUCIONES =====

class TestReturns:

    def test_cash_return_reduces_shift_totals(self, db_session, open_shift, make_product):
        shift = open_shift()
        product = make_product(price=5000, stock=4)
        processor = SaleProcessor(db_session)
        sale = processor.process(cart((product, 2)), PaymentMethod.CASH, shift.id, "Eliana")
        before = ShiftService(db_session).summary(shift.id)

        refund = processor.process_return(sale.id, shift.id, "Eliana", lines=cart((product, 1)))

        after = ShiftService(db_session).summary(shift.id)
        assert refund.type == SaleType.RETURN
        assert refund.total == 5000
        assert refund.original_sale_id == sale.id
        assert after.total == before.total - 5000
        assert after.by_payment["cash"] == before.by_payment["cash"] - 5000
        assert after.tickets == before.tickets + 1
        assert stock_of(db_session, product.id) == 3

    def test_default_returns_everything_left(self, db_session, open_shift, make_product):
        shift = open_shift()
        milk = make_product(name="Leche", price=1100, stock=5)
        bread = make_product(name="Pan", price=200, stock=20)
        processor = SaleProcessor(db_session)
        sale = processor.process(cart((milk, 2), (bread, 5)), PaymentMethod.CARD, shift.id, "Eliana")
        processor.process_return(sale.id, shift.id, "Eliana", lines=cart((bread, 2)))

        refund = processor.process_return(sale.id, shift.id, "Eliana")

        assert refund.total == 2 * 1100 + 3 * 200
        assert refund.payment_method == PaymentMethod.CARD
        with pytest.raises(InvalidSale):
            processor.process_return(sale.id, shift.id, "Eliana")

    def test_cannot_return_more_than_sold(self, db_session, open_shift, make_product):
        shift = open_shift()
        product = make_product(stock=5)
        processor = SaleProcessor(db_session)
        sale = processor.process(cart((product, 2)), PaymentMethod.CASH, shift.id, "Eliana")

        with pytest.raises(InvalidSale) as exc_info:
            processor.process_return(sale.id, shift.id, "Eliana", lines=cart((product, 3)))

        assert exc_info.value.context["returnable"] == 2
        assert stock_of(db_session, product.id) == 3

    def test_product_not_in_original_sale(self, db_session, open_shift, make_product):
        shift = open_shift()
        sold = make_product(name="Leche")
        other = make_product(name="Té")
        processor = SaleProcessor(db_session)
        sale = processor.process(cart((sold, 1)), PaymentMethod.CASH, shift.id, "Eliana")

        with pytest.raises(InvalidSale):
            processor.process_return(sale.id, shift.id, "Eliana", lines=cart((other, 1)))

    def test_cannot_return_a_return(self, db_session, open_shift, make_product):
        shift = open_shift()
        product = make_product()
        processor = SaleProcessor(db_session)
        sale = processor.process(cart((product, 1)), PaymentMethod.CASH, shift.id, "Eliana")
        refund = processor.process_return(sale.id, shift.id, "Eliana")

        with pytest.raises(InvalidSale):
            processor.process_return(refund.id, shift.id, "Eliana")

    def test_fiado_return_posts_abono(self, db_session, open_shift, make_product, make_client):
        shift = open_shift()
        client = make_client(credit_limit=50000)
        product = make_product(price=4000, stock=5)
        processor = SaleProcessor(db_session)
        sale = processor.process(cart((product, 2)), PaymentMethod.FIADO, shift.id, "Eliana", client_id=client.id)

        refund = processor.process_return(sale.id, shift.id, "Eliana", lines=cart((product, 1)))

        ledger = CreditLedger(db_session)
        history = ledger.get_history(client.id)
        assert refund.payment_method == PaymentMethod.FIADO
        assert [m.type.value for m in history] == ["fiado", "abono"]
        assert history[-1].amount == 4000
        assert history[-1].sale_id == refund.id
        assert ledger.get_client(client.id).balance == 4000

    def test_fiado_refund_that_would_overpay(self, db_session, open_shift, make_product, make_client):
        shift = open_shift()
        client = make_client(credit_limit=50000)
        product = make_product(price=6000, stock=5)
        processor = SaleProcessor(db_session)
        sale = processor.process(cart((product, 1)), PaymentMethod.FIADO, shift.id, "Eliana", client_id=client.id)
        CreditLedger(db_session).post_movement(client.id, "pago-total", None)

        with pytest.raises(InvalidMovement):
            processor.process_return(sale.id, shift.id, "Eliana")
        assert stock_of(db_session, product.id) == 4

        refund = processor.process_return(sale.id, shift.id, "Eliana", refund_method=PaymentMethod.CASH)

        assert refund.payment_method == PaymentMethod.CASH
        assert refund.client_id is None
        assert stock_of(db_session, product.id) == 5

    def test_cash_sale_cannot_be_refunded_as_fiado(self, db_session, open_shift, make_product):
        shift = open_shift()
        product = make_product()
        processor = SaleProcessor(db_session)
        sale = processor.process(cart((product, 1)), PaymentMethod.CASH, shift.id, "Eliana")

        with pytest.raises(InvalidSale):
            processor.process_return(sale.id, shift.id, "Eliana", refund_method=PaymentMethod.FIADO)

    def test_return_in_a_later_shift(self, db_session, open_shift, make_product):
        first = open_shift(seller="Eliana")
        product = make_product(price=3000, stock=5)
        processor = SaleProcessor(db_session)
        sale = processor.process(cart((product, 1)), PaymentMethod.CASH, first.id, "Eliana")
        ShiftService(db_session).close_shift(first.id, ShiftClose(cash_counted=13000))
        second = open_shift(seller="Pedro", initial_cash=5000)

        processor.process_return(sale.id, second.id, "Pedro")

        assert ShiftService(db_session).summary(second.id).by_payment == {"cash": -3000}
        assert ShiftService(db_session).get_shift(first.id).total_sales == 3000


# ===== ENDPOINTS =====

class TestPOSEndpoints:
    """Tests de integración del flujo completo vía HTTP"""

    def _product(self, api_client, name="Bebida", price=1500, stock=10):
        response = api_client.post("/api/v1/products/", json={"name": name, "price": price, "stock": stock})
        assert response.status_code == 201
        return response.json()["id"]

    def test_shift_sale_and_close_flow(self, api_client):
        product_id = self._product(api_client)
        response = api_client.post("/api/v1/shifts/open", json={"seller": "Eliana", "type": "noche", "initial_cash": 10000})
        assert response.status_code == 201
        shift_id = response.json()["id"]

        response = api_client.post("/api/v1/sales/", json={
            "shift_id": shift_id,
            "seller": "Eliana",
            "items": [{"product_id": product_id, "quantity": 2}],
            "payment_method": "cash",
            "cash_received": 5000
        })
        assert response.status_code == 201
        sale = response.json()
        assert sale["ticket"] == "T-000001"
        assert sale["change"] == 2000
        assert sale["payment_method_label"] == "Efectivo"

        response = api_client.post(f"/api/v1/shifts/{shift_id}/expenses", json={"type": "flete", "amount": 1000})
        assert response.status_code == 201

        current = api_client.get("/api/v1/shifts/current", params={"seller": "Eliana"}).json()
        assert current["summary"] == {"total": 3000, "tickets": 1, "by_payment": {"cash": 3000}}
        assert current["cash_expected"] is None
        assert len(current["expenses"]) == 1

        response = api_client.post(f"/api/v1/shifts/{shift_id}/close", json={"cash_counted": 11500})
        assert response.status_code == 200
        closed = response.json()
        assert closed["status"] == "closed"
        assert closed["cash_expected"] == 12000
        assert closed["difference"] == -500

        response = api_client.post(f"/api/v1/shifts/{shift_id}/close", json={"cash_counted": 12000})
        assert response.status_code == 409
        assert response.json()["kind"] == "already_closed"

    def test_sale_with_insufficient_stock(self, api_client):
        product_id = self._product(api_client, stock=1)
        shift_id = api_client.post("/api/v1/shifts/open", json={"seller": "Eliana"}).json()["id"]

        response = api_client.post("/api/v1/sales/", json={
            "shift_id": shift_id,
            "seller": "Eliana",
            "items": [{"product_id": product_id, "quantity": 2}],
            "payment_method": "card"
        })

        assert response.status_code == 409
        assert response.json()["kind"] == "insufficient_stock"
        assert api_client.get(f"/api/v1/stock/product/{product_id}").json()["stock"] == 1

    def test_return_endpoint_and_listing(self, api_client):
        product_id = self._product(api_client, price=5000)
        shift_id = api_client.post("/api/v1/shifts/open", json={"seller": "Eliana"}).json()["id"]
        sale_id = api_client.post("/api/v1/sales/", json={
            "shift_id": shift_id,
            "seller": "Eliana",
            "items": [{"product_id": product_id, "quantity": 1}],
            "payment_method": "cash"
        }).json()["id"]

        response = api_client.post("/api/v1/sales/returns", json={
            "original_sale_id": sale_id, "shift_id": shift_id, "seller": "Eliana"
        })
        assert response.status_code == 201
        assert response.json()["type"] == "return"

        listing = api_client.get("/api/v1/sales/", params={"shift_id": shift_id}).json()
        assert listing["total"] == 2
        summary = api_client.get(f"/api/v1/shifts/{shift_id}/summary").json()
        assert summary == {"total": 0, "tickets": 2, "by_payment": {"cash": 0}}

    def test_second_open_shift_conflicts(self, api_client):
        api_client.post("/api/v1/shifts/open", json={"seller": "Eliana"})
        response = api_client.post("/api/v1/shifts/open", json={"seller": "Eliana"})
        assert response.status_code == 409
        assert response.json()["kind"] == "shift_already_open"

    def test_fiado_without_client_is_rejected(self, api_client):
        product_id = self._product(api_client)
        shift_id = api_client.post("/api/v1/shifts/open", json={"seller": "Eliana"}).json()["id"]
        response = api_client.post("/api/v1/sales/", json={
            "shift_id": shift_id,
            "seller": "Eliana",
            "items": [{"product_id": product_id, "quantity": 1}],
            "payment_method": "fiado"
        })
        assert response.status_code == 422
