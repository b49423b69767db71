"""
Seed script: timbrado vigente, ventas de ejemplo y tokens para probar la API.

What it creates:
- Timbrado (si no hay uno vigente) con vigencia desde hoy.
- Ventas (N, default 20): mezcla de pending/completed/canceled, con items
  al 10%, 5% y exentos; una parte facturada con el timbrado.
- Tokens JWT de cajero y administrador (se imprimen al final).

Run inside the API container:
    docker compose exec api python scripts/seed_demo_data.py \
        --timbrado 12345678 --expires 2025-12-31 --sales 20

Note: This is intended for development environments only.
"""

# Add project root (/code) to sys.path so `app.*` imports work even if CWD changes
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import random
from datetime import date, timedelta
from decimal import Decimal

from app.common.exceptions import BaseApplicationError
from app.database.database import SessionLocal, Base, engine
from app.modules.auth.schemas import AuthContext
from app.modules.auth.utils import create_access_token
from app.modules.printing.service import PrintQueue
from app.modules.sales.models import PaymentMethod, SaleMode
from app.modules.sales.schemas import SaleCreate, LineItemIn, PaymentIn
from app.modules.sales.service import SaleService
from app.modules.timbrados.schemas import TimbradoCreate
from app.modules.timbrados.service import TimbradoService
import app.modules.counters.models  # noqa: F401  registra la tabla daily_counters

MENU = [
    ("prod-hamb", "Hamburguesa completa", 10, Decimal("25000")),
    ("prod-lomito", "Lomito árabe", 10, Decimal("30000")),
    ("prod-papas", "Papas fritas", 10, Decimal("11000")),
    ("prod-gaseosa", "Gaseosa 500ml", 10, Decimal("8000")),
    ("prod-leche", "Leche entera 1L", 5, Decimal("7350")),
    ("prod-pan", "Pan casero", 5, Decimal("4200")),
    ("prod-agua", "Agua mineral", 0, Decimal("5000")),
]


def pick(seq):
    return random.choice(seq)


def ensure_timbrado(db, code: str, expires: date):
    service = TimbradoService(db)
    active = service.find_active()
    if active:
        print(f"  Timbrado vigente: {active.code} (hasta {active.expires_at:%d/%m/%Y})")
        return active
    timbrado = service.register(TimbradoCreate(code=code, issued_at=date.today(), expires_at=expires))
    print(f"  Timbrado creado: {timbrado.code}")
    return timbrado


def random_sale_data() -> SaleCreate:
    items = []
    for product_id, name, rate, price in random.sample(MENU, k=random.randint(1, 4)):
        quantity = random.randint(1, 3)
        items.append(LineItemIn(
            product_id=product_id,
            name=name,
            quantity=quantity,
            iva_rate=rate,
            total_price=price * quantity
        ))

    total = sum(item.total_price for item in items)
    status = pick(["pending", "completed", "completed", "ordered"])
    payments = []
    if status == "completed":
        payments.append(PaymentIn(payment_method=pick(list(PaymentMethod)), total_amount=total))
    elif status == "ordered":
        payments.append(PaymentIn(payment_method=PaymentMethod.CASH, total_amount=(total / 2).quantize(Decimal("1"))))

    return SaleCreate(
        products=items,
        payment=payments,
        customer_name=pick([None, "María González", "Juan Benítez", "Carlos Ramírez"]),
        status=status,
        mode=pick(list(SaleMode))
    )


def create_sales(db, count: int, cashier: AuthContext):
    # Sin broker en desarrollo: las impresiones se omiten si PRINTER_ENABLED=false
    service = SaleService(db, print_queue=PrintQueue())
    created = invoiced = canceled = 0
    for _ in range(count):
        sale = service.create_sale(random_sale_data(), cashier)
        created += 1

        if sale.status.value == "completed" and random.random() < 0.6:
            try:
                service.invoice_sale(sale.id)
                invoiced += 1
            except BaseApplicationError as e:
                print(f"  Venta {sale.daily_id} sin facturar: {e.message}")
        elif sale.status.value == "pending" and random.random() < 0.3:
            service.update_status(sale.id, "canceled")
            canceled += 1
    return created, invoiced, canceled


def main():
    parser = argparse.ArgumentParser(description="Seed POS demo data")
    parser.add_argument("--timbrado", default="12345678")
    parser.add_argument("--expires", type=date.fromisoformat, default=date.today() + timedelta(days=365))
    parser.add_argument("--sales", type=int, default=20)
    parser.add_argument("--user-id", default="cajero-demo")
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        print("Ensuring active timbrado...")
        timbrado = ensure_timbrado(db, args.timbrado, args.expires)

        print("Creating sales...")
        cashier = AuthContext(user_id=args.user_id, user_role="cashier", user_name="Caja Demo")
        created, invoiced, canceled = create_sales(db, args.sales, cashier)
        print(f"Sales created: {created} (invoiced: {invoiced}, canceled: {canceled})")

        print("\nSeed completed.")
        print(f"Timbrado: {timbrado.code}")
        print("Tokens for API requests (Authorization: Bearer ...):")
        print(f"  cashier: {create_access_token({'sub': args.user_id, 'role': 'cashier', 'name': 'Caja Demo'})}")
        print(f"  admin:   {create_access_token({'sub': 'admin-demo', 'role': 'admin', 'name': 'Administrador'})}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
