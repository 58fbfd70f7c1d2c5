"""
Fixtures compartidos para las pruebas.

Cada prueba usa su propia base SQLite en archivo (tmp_path), de modo que
varias sesiones (y varios hilos) ven los mismos datos confirmados.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.main import app
from app.database.database import Base, build_engine, get_db
from app.modules.clients.schemas import ClientCreate
from app.modules.clients.service import ClientService
from app.modules.pos.schemas import ShiftOpen
from app.modules.pos.services import ShiftService
from app.modules.products import service as product_service
from app.modules.products.schemas import ProductCreate


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'pos.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def api_client(session_factory):
    """TestClient con get_db apuntando a la base de la prueba"""
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_product(db_session):
    def _make(name="Pan amasado", price=1000, stock=10, min_stock=2, **kwargs):
        return product_service.create_product(
            db_session,
            ProductCreate(name=name, price=price, stock=stock, min_stock=min_stock, **kwargs)
        )
    return _make


@pytest.fixture
def make_client(db_session):
    def _make(name="Rosa Muñoz", credit_limit=50000, **kwargs):
        return ClientService(db_session).create_client(
            ClientCreate(name=name, credit_limit=credit_limit, **kwargs)
        )
    return _make


@pytest.fixture
def open_shift(db_session):
    def _open(seller="Eliana", initial_cash=10000, **kwargs):
        return ShiftService(db_session).open_shift(
            ShiftOpen(seller=seller, initial_cash=initial_cash, **kwargs)
        )
    return _open
