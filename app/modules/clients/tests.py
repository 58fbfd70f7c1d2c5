"""
Tests para el módulo de Clientes (fiado)

Cubren:
- Libro de crédito: fiado, abono y pago total
- Invariante saldo == suma de movimientos con signo
- Autorización por cupo y bloqueo
- Escrituras concurrentes sobre un mismo cliente
- Endpoints REST
"""

import threading
from uuid import uuid4

import pytest

from app.common.exceptions import InvalidMovement, NotFound
from app.modules.clients.models import ClientMovement, MovementType, PaymentSchedule
from app.modules.clients.schemas import ClientUpdate
from app.modules.clients.service import CreditLedger, ClientService


def assert_ledger_consistent(db, client_id):
    """El saldo es la suma de los montos con signo y cada balance_after encadena"""
    result = CreditLedger(db).verify_client(client_id)
    assert result.consistent, result.issues
    return result


# ===== LIBRO DE CRÉDITO =====

class TestPostMovement:
    """Tests para CreditLedger.post_movement"""

    def test_fiado_increases_balance(self, db_session, make_client):
        client = make_client(credit_limit=50000)
        ledger = CreditLedger(db_session)

        movement = ledger.post_movement(client.id, MovementType.FIADO, 20000, "Compra")

        assert movement.sequence == 1
        assert movement.balance_after == 20000
        assert movement.signed_amount == 20000
        assert ledger.get_client(client.id).balance == 20000

    def test_abono_decreases_balance(self, db_session, make_client):
        client = make_client()
        ledger = CreditLedger(db_session)
        ledger.post_movement(client.id, MovementType.FIADO, 15000)

        movement = ledger.post_movement(client.id, "abono", 5000)

        assert movement.type == MovementType.ABONO
        assert movement.signed_amount == -5000
        assert movement.balance_after == 10000
        assert_ledger_consistent(db_session, client.id)

    def test_abono_exceeding_balance_is_rejected(self, db_session, make_client):
        client = make_client()
        ledger = CreditLedger(db_session)
        ledger.post_movement(client.id, MovementType.FIADO, 3000)

        with pytest.raises(InvalidMovement) as exc_info:
            ledger.post_movement(client.id, MovementType.ABONO, 5000)

        assert exc_info.value.context["balance"] == 3000
        assert ledger.get_client(client.id).balance == 3000
        assert len(ledger.get_history(client.id)) == 1

    def test_pago_total_zeroes_balance_ignoring_amount(self, db_session, make_client):
        client = make_client()
        ledger = CreditLedger(db_session)
        ledger.post_movement(client.id, MovementType.FIADO, 12000)
        ledger.post_movement(client.id, MovementType.ABONO, 2000)

        movement = ledger.post_movement(client.id, MovementType.PAGO_TOTAL, 999999)

        assert movement.amount == 10000
        assert movement.balance_after == 0
        assert ledger.get_client(client.id).balance == 0
        assert_ledger_consistent(db_session, client.id)

    def test_pago_total_on_zero_balance_writes_nothing(self, db_session, make_client):
        client = make_client()
        ledger = CreditLedger(db_session)

        with pytest.raises(InvalidMovement):
            ledger.post_movement(client.id, MovementType.PAGO_TOTAL, None)

        assert ledger.get_history(client.id) == []

    @pytest.mark.parametrize("amount", [0, -100, "12.5", 1.5, "abc"])
    def test_invalid_amounts_are_rejected(self, db_session, make_client, amount):
        client = make_client()
        ledger = CreditLedger(db_session)

        with pytest.raises(InvalidMovement):
            ledger.post_movement(client.id, MovementType.FIADO, amount)

        assert ledger.get_client(client.id).balance == 0

    def test_unknown_type_is_rejected(self, db_session, make_client):
        client = make_client()
        with pytest.raises(InvalidMovement):
            CreditLedger(db_session).post_movement(client.id, "regalo", 1000)

    def test_unknown_client(self, db_session):
        with pytest.raises(NotFound):
            CreditLedger(db_session).post_movement(uuid4(), MovementType.FIADO, 1000)

    def test_balance_matches_history_after_mixed_movements(self, db_session, make_client):
        client = make_client(credit_limit=100000)
        ledger = CreditLedger(db_session)
        for type, amount in [
            (MovementType.FIADO, 8000),
            (MovementType.FIADO, 4500),
            (MovementType.ABONO, 2500),
            (MovementType.PAGO_TOTAL, None),
            (MovementType.FIADO, 3000),
        ]:
            ledger.post_movement(client.id, type, amount)

        history = ledger.get_history(client.id)
        assert [m.sequence for m in history] == [1, 2, 3, 4, 5]
        assert sum(m.signed_amount for m in history) == ledger.get_client(client.id).balance == 3000
        assert history[3].amount == 10000
        assert_ledger_consistent(db_session, client.id)

    def test_movement_links_sale(self, db_session, make_client):
        client = make_client()
        sale_id = uuid4()
        movement = CreditLedger(db_session).post_movement(
            client.id, MovementType.FIADO, 1000, "Compra T-000001", sale_id=sale_id
        )
        assert movement.sale_id == sale_id


class TestConcurrentMovements:
    """Escrituras concurrentes sobre el mismo cliente no pierden actualizaciones"""

    def test_parallel_fiados_are_all_applied(self, session_factory, make_client):
        client_id = make_client(credit_limit=1000000).id
        errors = []

        def worker():
            db = session_factory()
            try:
                for _ in range(5):
                    CreditLedger(db).post_movement(client_id, MovementType.FIADO, 100)
            except Exception as e:
                errors.append(e)
            finally:
                db.close()

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        db = session_factory()
        try:
            ledger = CreditLedger(db)
            assert ledger.get_client(client_id).balance == 2000
            history = ledger.get_history(client_id)
            assert [m.sequence for m in history] == list(range(1, 21))
            assert_ledger_consistent(db, client_id)
        finally:
            db.close()


# ===== AUTORIZACIÓN =====

class TestAuthorization:
    """Tests para cupo de crédito y bloqueo"""

    def test_authorize_within_limit(self, db_session, make_client):
        client = make_client(credit_limit=50000)
        ledger = CreditLedger(db_session)
        ledger.post_movement(client.id, MovementType.FIADO, 20000)

        assert ledger.authorize(client.id, 30000) is True
        assert ledger.authorize(client.id, 30001) is False

    def test_credit_check_reports_available_credit(self, db_session, make_client):
        client = make_client(credit_limit=50000)
        ledger = CreditLedger(db_session)
        ledger.post_movement(client.id, MovementType.FIADO, 20000)

        check = ledger.check_credit(client.id, 40000)

        assert check.authorized is False
        assert check.available_credit == 30000
        assert check.requested == 40000

    def test_blocked_client_is_never_authorized(self, db_session, make_client):
        client = make_client(credit_limit=50000)
        ledger = CreditLedger(db_session)

        ledger.set_authorized(client.id, False)

        assert ledger.authorize(client.id, 1) is False
        assert ledger.get_client(client.id).authorized is False

    def test_authorize_does_not_mutate(self, db_session, make_client):
        client = make_client(credit_limit=50000)
        ledger = CreditLedger(db_session)
        ledger.authorize(client.id, 10000)
        assert ledger.get_client(client.id).balance == 0
        assert ledger.get_history(client.id) == []


# ===== DIRECTORIO =====

class TestClientService:

    def test_opening_balance_becomes_first_movement(self, db_session, make_client):
        client = make_client(credit_limit=50000, opening_balance=7000)

        history = CreditLedger(db_session).get_history(client.id)

        assert client.balance == 7000
        assert len(history) == 1
        assert history[0].type == MovementType.FIADO
        assert history[0].description == "Saldo inicial"

    def test_update_does_not_touch_balance(self, db_session, make_client):
        client = make_client(opening_balance=5000)
        updated = ClientService(db_session).update_client(
            client.id, ClientUpdate(credit_limit=80000, payment_schedule=PaymentSchedule.MONTHLY)
        )
        assert updated.credit_limit == 80000
        assert updated.balance == 5000
        assert updated.payment_schedule_label == "Fin de Mes"

    def test_list_clients_with_debt(self, db_session, make_client):
        make_client(name="Ana", opening_balance=1000)
        make_client(name="Beto")

        result = ClientService(db_session).list_clients(with_debt=True)

        assert result["total"] == 1
        assert result["clients"][0].name == "Ana"

    def test_verify_detects_tampered_balance(self, db_session, make_client):
        client = make_client(opening_balance=4000)
        db_session.query(ClientMovement).filter(ClientMovement.client_id == client.id).update(
            {"balance_after": 3000}
        )
        db_session.commit()

        result = CreditLedger(db_session).verify_client(client.id)

        assert result.consistent is False
        assert result.cached_balance == 4000
        assert result.computed_balance == 4000
        assert len(result.issues) == 1


class TestVerificationTask:

    def test_verify_client_balances_task(self, session_factory, make_client, monkeypatch):
        from app.modules.clients import tasks

        make_client(name="Ana", opening_balance=1000)
        make_client(name="Beto")
        monkeypatch.setattr(tasks, "SessionLocal", session_factory)

        report = tasks.verify_client_balances()

        assert report == {"checked": 2, "inconsistent": 0, "details": []}


# ===== ENDPOINTS =====

class TestClientEndpoints:
    """Tests de integración de los endpoints de clientes"""

    def test_create_and_pay(self, api_client):
        response = api_client.post("/api/v1/clients/", json={
            "name": "Juan Pérez",
            "credit_limit": 30000,
            "payment_schedule": "biweekly",
            "opening_balance": 10000
        })
        assert response.status_code == 201
        data = response.json()
        assert data["balance"] == 10000
        assert data["payment_schedule_label"] == "Quincenal"

        client_id = data["id"]
        response = api_client.post(f"/api/v1/clients/{client_id}/payments", json={"type": "abono", "amount": 4000})
        assert response.status_code == 201
        assert response.json()["balance_after"] == 6000

        response = api_client.post(f"/api/v1/clients/{client_id}/payments", json={"type": "pago-total"})
        assert response.status_code == 201
        assert response.json()["amount"] == 6000

        movements = api_client.get(f"/api/v1/clients/{client_id}/movements").json()
        assert movements["total"] == 3
        assert [m["type"] for m in movements["movements"]] == ["fiado", "abono", "pago-total"]

    def test_overpayment_returns_domain_error(self, api_client):
        client_id = api_client.post("/api/v1/clients/", json={"name": "Ana", "opening_balance": 1000}).json()["id"]

        response = api_client.post(f"/api/v1/clients/{client_id}/payments", json={"type": "abono", "amount": 5000})

        assert response.status_code == 422
        body = response.json()
        assert body["kind"] == "invalid_movement"
        assert body["context"]["balance"] == 1000

    def test_fiado_not_accepted_as_payment(self, api_client):
        client_id = api_client.post("/api/v1/clients/", json={"name": "Ana"}).json()["id"]
        response = api_client.post(f"/api/v1/clients/{client_id}/payments", json={"type": "fiado", "amount": 5000})
        assert response.status_code == 422

    def test_credit_check_and_block(self, api_client):
        client_id = api_client.post("/api/v1/clients/", json={"name": "Ana", "credit_limit": 5000}).json()["id"]

        check = api_client.get(f"/api/v1/clients/{client_id}/credit-check", params={"amount": 5000}).json()
        assert check["authorized"] is True

        response = api_client.put(f"/api/v1/clients/{client_id}/authorization", json={"authorized": False})
        assert response.json()["authorized"] is False

        check = api_client.get(f"/api/v1/clients/{client_id}/credit-check", params={"amount": 1}).json()
        assert check["authorized"] is False

    def test_unknown_client_is_404(self, api_client):
        response = api_client.get(f"/api/v1/clients/{uuid4()}")
        assert response.status_code == 404
        assert response.json()["kind"] == "not_found"
