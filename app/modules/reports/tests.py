"""
Tests for the reports module

Covers range resolution, the client statement, the clients summary,
closed shifts and CSV export.
"""

from datetime import date, datetime

import pytest

from app.common.exceptions import InvalidRange
from app.modules.clients.models import ClientMovement, MovementType
from app.modules.clients.service import CreditLedger
from app.modules.pos.models import PaymentMethod
from app.modules.pos.schemas import CartLine, ShiftClose
from app.modules.pos.services import SaleProcessor, ShiftService
from app.modules.reports.schemas import ReportRange
from app.modules.reports.service import ReportService
from app.modules.reports.utils import resolve_range


WEDNESDAY = date(2024, 3, 6)


class TestResolveRange:

    def test_today(self):
        start, end = resolve_range(ReportRange.TODAY, today=WEDNESDAY)
        assert start == datetime(2024, 3, 6, 0, 0)
        assert end.date() == WEDNESDAY
        assert end.time().hour == 23

    def test_today_defaults_to_utc_date(self):
        before = datetime.utcnow().date()
        start, end = resolve_range(ReportRange.TODAY)
        after = datetime.utcnow().date()
        assert start.date() in (before, after)
        assert end.date() == start.date()

    def test_week_starts_on_monday(self):
        start, end = resolve_range("week", today=WEDNESDAY)
        assert start == datetime(2024, 3, 4)
        assert end.date() == WEDNESDAY

    def test_month_starts_on_first_day(self):
        start, _ = resolve_range(ReportRange.MONTH, today=WEDNESDAY)
        assert start == datetime(2024, 3, 1)

    def test_custom_end_is_inclusive_and_defaults_to_today(self):
        start, end = resolve_range(ReportRange.CUSTOM, date_from=date(2024, 2, 20), today=WEDNESDAY)
        assert start == datetime(2024, 2, 20)
        assert end > datetime(2024, 3, 6, 23, 59)

    def test_custom_requires_start(self):
        with pytest.raises(InvalidRange):
            resolve_range(ReportRange.CUSTOM, today=WEDNESDAY)

    def test_custom_inverted(self):
        with pytest.raises(InvalidRange):
            resolve_range(ReportRange.CUSTOM, date_from=date(2024, 3, 5), date_to=date(2024, 3, 1))


def backdate(db, client_id, *moments):
    """Assigns created_at to the client's movements in sequence order."""
    movements = db.query(ClientMovement).filter(
        ClientMovement.client_id == client_id
    ).order_by(ClientMovement.sequence).all()
    for movement, moment in zip(movements, moments):
        movement.created_at = moment
    db.commit()


class TestClientStatement:

    def test_statement_period_and_totals(self, db_session, make_client):
        client = make_client(name="Ana", credit_limit=100000, opening_balance=10000)
        ledger = CreditLedger(db_session)
        ledger.post_movement(client.id, MovementType.FIADO, 6000, "Compra T-000010")
        ledger.post_movement(client.id, MovementType.ABONO, 4000)
        ledger.post_movement(client.id, MovementType.FIADO, 1500)
        backdate(
            db_session, client.id,
            datetime(2024, 1, 10, 9), datetime(2024, 2, 5, 18), datetime(2024, 2, 29, 23, 30), datetime(2024, 3, 2)
        )

        report = ReportService(db_session).client_statement(
            client.id, ReportRange.CUSTOM, date(2024, 2, 1), date(2024, 2, 29)
        )

        assert report["opening_balance"] == 10000
        assert report["closing_balance"] == 12000
        assert report["totals"] == {"fiado": 6000, "abono": 4000, "pago_total": 0, "net": 2000, "movements": 2}
        assert [m["sequence"] for m in report["movements"]] == [2, 3]
        assert report["movements"][1]["signed_amount"] == -4000
        assert report["client"].balance == 13500

    def test_empty_period_keeps_opening_balance(self, db_session, make_client):
        client = make_client(opening_balance=3000)
        backdate(db_session, client.id, datetime(2024, 1, 2))

        report = ReportService(db_session).client_statement(
            client.id, ReportRange.CUSTOM, date(2024, 2, 1), date(2024, 2, 10)
        )

        assert report["opening_balance"] == report["closing_balance"] == 3000
        assert report["movements"] == []

    def test_statement_endpoint(self, api_client, db_session, make_client):
        client = make_client(opening_balance=2500)
        backdate(db_session, client.id, datetime(2024, 2, 14))

        response = api_client.get(
            f"/api/v1/reports/clients/{client.id}/statement",
            params={"range": "custom", "date_from": "2024-02-01", "date_to": "2024-02-29"}
        )
        assert response.status_code == 200
        assert response.json()["totals"]["fiado"] == 2500

        response = api_client.get(
            f"/api/v1/reports/clients/{client.id}/statement",
            params={"range": "custom", "date_from": "2024-02-01", "date_to": "2024-02-29", "export": "csv"}
        )
        assert response.headers["content-type"].startswith("text/csv")
        lines = response.text.splitlines()
        assert lines[0] == "Fecha y Hora,N°,Tipo,Descripción,Monto,Saldo"
        assert lines[1].endswith(",2500,2500")

    def test_invalid_range_endpoint(self, api_client, make_client):
        client = make_client()
        response = api_client.get(
            f"/api/v1/reports/clients/{client.id}/statement", params={"range": "custom"}
        )
        assert response.status_code == 422
        assert response.json()["kind"] == "invalid_range"


class TestClientsSummary:

    def test_counts_and_debtors_sorted_by_balance(self, db_session, make_client):
        make_client(name="Ana", opening_balance=5000)
        make_client(name="Beto", opening_balance=12000)
        make_client(name="Carla", authorized=False)

        report = ReportService(db_session).clients_summary()

        assert report["total_clients"] == 3
        assert report["authorized_count"] == 2
        assert report["blocked_count"] == 1
        assert report["total_debt"] == 17000
        assert [c["name"] for c in report["clients_with_debt"]] == ["Beto", "Ana"]

    def test_summary_csv(self, api_client, make_client):
        make_client(name="Ana", credit_limit=20000, opening_balance=5000)
        make_client(name="Carla", authorized=False)

        response = api_client.get("/api/v1/reports/clients/summary", params={"export": "csv"})

        assert response.status_code == 200
        assert "attachment" in response.headers["content-disposition"]
        lines = response.text.splitlines()
        assert lines[0] == "Cliente,Estado,Modalidad Pago,Límite,Saldo Pendiente"
        assert lines[1].startswith("Ana,Autorizado,")
        assert lines[2].startswith("Carla,Bloqueado,")


class TestClosedShifts:

    @pytest.fixture
    def closed_week(self, db_session, open_shift, make_product):
        """Three shifts closed on Friday 1, Monday 4 and Tuesday 5 of March 2024."""
        product = make_product(price=2000, stock=100)
        processor = SaleProcessor(db_session)
        service = ShiftService(db_session)

        for seller, method, closed_at, counted in [
            ("Eliana", PaymentMethod.CASH, datetime(2024, 3, 1, 21), 12000),
            ("Pedro", PaymentMethod.CARD, datetime(2024, 3, 4, 21), 10000),
            ("Eliana", PaymentMethod.CASH, datetime(2024, 3, 5, 8), 11500),
        ]:
            shift = open_shift(seller=seller)
            processor.process([CartLine(product_id=product.id, quantity=1)], method, shift.id, seller)
            service.close_shift(shift.id, ShiftClose(cash_counted=counted), closed_at=closed_at)

    def test_week_excludes_previous_friday(self, db_session, closed_week):
        report = ReportService(db_session).closed_shifts(ReportRange.WEEK, today=WEDNESDAY)

        assert [s["seller"] for s in report["shifts"]] == ["Pedro", "Eliana"]
        assert report["totals"]["shifts"] == 2
        assert report["totals"]["total_sales"] == 4000
        assert report["totals"]["payments_breakdown"] == {"card": 2000, "cash": 2000}
        assert report["totals"]["difference"] == -500

    def test_month_and_seller_filter(self, db_session, closed_week):
        report = ReportService(db_session).closed_shifts(ReportRange.MONTH, seller="Eliana", today=WEDNESDAY)

        assert report["totals"]["shifts"] == 2
        assert report["totals"]["tickets"] == 2
        assert report["totals"]["difference"] == -500

    def test_open_shifts_are_not_reported(self, db_session, open_shift):
        open_shift()
        report = ReportService(db_session).closed_shifts(
            ReportRange.CUSTOM, date_from=date(2000, 1, 1)
        )
        assert report["shifts"] == []

    def test_closed_shifts_endpoint(self, api_client, closed_week):
        response = api_client.get(
            "/api/v1/reports/shifts/closed",
            params={"range": "custom", "date_from": "2024-03-04", "date_to": "2024-03-04"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["totals"]["shifts"] == 1
        assert data["shifts"][0]["seller"] == "Pedro"
