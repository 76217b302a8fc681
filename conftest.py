"""
Fixtures compartidos para los tests

La base de datos es SQLite en memoria compartida entre la sesión del test y
las sesiones de cada request del TestClient. El reloj de la caja es
controlable para probar la expiración.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.common.money import Money
from app.database.database import Base, SessionLocal, engine
from app.dependencies.cajaDependencies import get_caja_manager
from app.dependencies.dbDependecies import db_dependency
from app.modules.auth.utils import create_operator_token
from app.modules.caja.services import CajaSessionManager
from app.modules.sales.models import Sale, SaleStatus

import app.modules.caja.models  # noqa: F401  registra las tablas
import app.modules.sales.models  # noqa: F401


MAX_AGE = timedelta(hours=12)


class FakeClock:
    """Reloj manual para la caja"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 10, 19, 8, 0, 0))


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def manager(db_session, clock):
    return CajaSessionManager(db_session, clock=clock, max_session_age=MAX_AGE)


@pytest.fixture
def add_sale(db_session, clock):
    """Inserta una venta confirmada en el libro, por defecto con la hora actual del reloj"""
    def _add_sale(total, payment_method="cash", created_at=None, status=SaleStatus.CONFIRMED.value,
                  bank_reference=None, bank_name=None):
        sale = Sale(
            total=Money.from_decimal(Decimal(str(total))),
            payment_method=payment_method,
            status=status,
            bank_reference=bank_reference,
            bank_name=bank_name,
            created_by="cajero-1",
            created_at=created_at or clock()
        )
        db_session.add(sale)
        db_session.commit()
        db_session.refresh(sale)
        return sale
    return _add_sale


@pytest.fixture
def client(db_session, clock):
    from app.main import app

    def override_manager(db: db_dependency) -> CajaSessionManager:
        return CajaSessionManager(db, clock=clock, max_session_age=MAX_AGE)

    app.dependency_overrides[get_caja_manager] = override_manager
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _headers(user_id: str, role: str):
    token = create_operator_token(user_id, role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def cashier_headers():
    return _headers("cajero-1", "cashier")


@pytest.fixture
def admin_headers():
    return _headers("admin-1", "admin")
