"""
Fixtures compartidas para los tests de los módulos

Base SQLite en memoria (un único connection pool estático), reloj fijo del
negocio y una cola de impresión que solo registra los despachos.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ["PRINTER_ENABLED"] = "false"

import pytest
from datetime import date, datetime
from decimal import Decimal
from fastapi.testclient import TestClient

from app.database.database import Base, engine, SessionLocal, get_db
from app.dependencies.clockDependencies import get_clock
from app.main import app
from app.modules.auth.schemas import AuthContext
from app.modules.auth.utils import create_access_token
from app.modules.printing.service import get_print_queue
from app.modules.sales.schemas import SaleCreate
from app.modules.timbrados.schemas import TimbradoCreate
from app.modules.timbrados.service import TimbradoService


# Mediodía de un día hábil, dentro de la vigencia del timbrado de ejemplo
BUSINESS_NOW = datetime(2024, 1, 15, 10, 30)


class FakeClock:
    """Reloj controlable: clock() devuelve `now`, que el test puede mover"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingPrintQueue:
    """Cola de impresión que solo anota qué se despachó"""

    def __init__(self):
        self.customer_tickets = []
        self.kitchen_orders = []

    def print_customer_ticket(self, sale) -> bool:
        self.customer_tickets.append(sale.id)
        return True

    def print_kitchen_order(self, sale) -> bool:
        self.kitchen_orders.append(sale.id)
        return True


def auth_headers(role: str = "cashier", user_id: str = "user-1", name: str = "Caja 1") -> dict:
    token = create_access_token({"sub": user_id, "role": role, "name": name})
    return {"Authorization": f"Bearer {token}"}


# ===== FIXTURES =====

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
def clock():
    return FakeClock(BUSINESS_NOW)


@pytest.fixture
def print_queue():
    return RecordingPrintQueue()


@pytest.fixture
def client(db_session, clock, print_queue):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_print_queue] = lambda: print_queue
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def cashier_headers():
    return auth_headers("cashier")


@pytest.fixture
def admin_headers():
    return auth_headers("admin", user_id="admin-1", name="Administrador")


@pytest.fixture
def cashier():
    return AuthContext(user_id="user-1", user_role="cashier", user_name="Caja 1")


@pytest.fixture
def active_timbrado(db_session, clock):
    """Timbrado 12345678 vigente del 01/01/2024 al 31/01/2024"""
    service = TimbradoService(db_session, clock=clock)
    return service.register(TimbradoCreate(
        code="12345678",
        issued_at=date(2024, 1, 1),
        expires_at=date(2024, 1, 31)
    ))


@pytest.fixture
def line_item_payload():
    def build(total_price="11000", iva_rate=10, name="Hamburguesa", **extra):
        item = {
            "product_id": "prod-1",
            "name": name,
            "quantity": 1,
            "iva_rate": iva_rate,
            "total_price": total_price,
        }
        item.update(extra)
        return item
    return build


@pytest.fixture
def sale_payload(line_item_payload):
    """Venta de ejemplo: dos items al 10% por 16.500 Gs. en total"""
    def build(**overrides):
        payload = {
            "products": [
                line_item_payload("11000", 10, "Hamburguesa"),
                line_item_payload("5500", 10, "Papas fritas", product_id="prod-2"),
            ],
            "payment": [],
            "customer_name": "Cliente de prueba",
        }
        payload.update(overrides)
        return payload
    return build


@pytest.fixture
def sale_data(sale_payload):
    def build(**overrides):
        return SaleCreate(**sale_payload(**overrides))
    return build


@pytest.fixture
def cash_payment():
    def build(amount="16500"):
        return {"payment_method": "cash", "total_amount": str(Decimal(amount))}
    return build
