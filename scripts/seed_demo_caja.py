"""
Seed script: populate the cash drawer with a realistic history.

What it creates:
- One closed cash session per past day, with cash, transfer and card sales.
- Transfers marked as received and a denomination count before every close.
- Some days with a small shortage, closed with a justification note.
- Optionally, an open session for today so the API can be tried right away.
- Access tokens for a cashier and a supervisor.

Run inside the API container to use 'postgres' host and project PYTHONPATH:
    docker compose exec api python scripts/seed_demo_caja.py --days 14 --sales 40

Note: This is intended for development environments only.
"""

# Add project root (/code) to sys.path so `app.*` imports work even if CWD changes
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import random
from datetime import datetime, timedelta
from decimal import Decimal

from app.common.money import Money
from app.common.validators import utcnow
from app.database.database import Base, SessionLocal, engine
from app.modules.auth.utils import create_operator_token
from app.modules.caja.models import TransferStatus
from app.modules.caja.services import CajaSessionManager
from app.modules.sales.models import PaymentMethod
from app.modules.sales.schemas import SaleCreate
from app.modules.sales.service import SaleService

import app.modules.caja.models  # noqa: F401
import app.modules.sales.models  # noqa: F401

CASHIERS = ["cajero-1", "cajero-2", "cajero-3"]
BANKS = ["Banrural", "Banco Industrial", "BAM", "G&T Continental"]
METHOD_WEIGHTS = [(PaymentMethod.CASH, 0.6), (PaymentMethod.TRANSFER, 0.25), (PaymentMethod.CARD, 0.15)]


class SeedClock:
    """Reloj que avanza a mano durante la jornada simulada"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: int):
        self.now = self.now + timedelta(minutes=minutes)


def pick_method() -> PaymentMethod:
    methods, weights = zip(*METHOD_WEIGHTS)
    return random.choices(methods, weights=weights)[0]


def random_total() -> Decimal:
    # Múltiplos de 0.25 para que el arqueo se pueda armar con monedas reales
    quarters = random.randint(8, 1600)
    return Money.from_cents(quarters * 25).to_decimal()


def breakdown_for(amount: Money, denominations) -> dict:
    """Desglose voraz del monto en las denominaciones permitidas"""
    remaining = amount.cents
    counts = {}
    for value in denominations:
        cents = Money.from_decimal(value).cents
        count, remaining = divmod(remaining, cents)
        if count:
            counts[str(value)] = count
    if remaining:
        raise ValueError(f"No se puede armar {amount.format()} con las denominaciones disponibles")
    return counts


def seed_day(db, day_start: datetime, sales_count: int, close: bool = True):
    clock = SeedClock(day_start)
    manager = CajaSessionManager(db, clock=clock)
    sale_service = SaleService(db, manager)
    cashier = random.choice(CASHIERS)

    session = manager.open_session(Decimal(random.choice([100, 200, 300, 500])), opened_by=cashier)

    for i in range(sales_count):
        clock.advance(random.randint(3, 15))
        method = pick_method()
        sale_in = SaleCreate(
            total=random_total(),
            payment_method=method,
            bank_reference=f"DEP-{session.id:03d}-{i:04d}" if method == PaymentMethod.TRANSFER else None,
            bank_name=random.choice(BANKS) if method == PaymentMethod.TRANSFER else None
        )
        sale_service.register_sale(sale_in, created_by=cashier)

    if not close:
        return session

    clock.advance(10)
    for verification in manager.list_transfers(session.id):
        manager.set_transfer_status(verification.sale_id, TransferStatus.RECEIVED)

    expected = manager.reconcile(session, clock(), None, Money.zero()).expected_cash
    counted = expected
    notes = None
    if random.random() < 0.2:
        counted = expected - Money.from_cents(random.choice([25, 50, 100, 500]))
        notes = "Faltante revisado con el supervisor"

    breakdown = breakdown_for(counted, manager.counter.allowed())
    manager.apply_count(breakdown, counted_by=cashier)
    return manager.close_session(cashier, counted.to_decimal(), notes=notes)


def main():
    parser = argparse.ArgumentParser(description="Seed cash drawer demo data")
    parser.add_argument("--days", type=int, default=14)
    parser.add_argument("--sales", type=int, default=40, help="Ventas por jornada")
    parser.add_argument("--leave-open", action="store_true", help="Deja una caja abierta para hoy")
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    if args.seed is not None:
        random.seed(args.seed)

    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        today = utcnow().replace(hour=8, minute=0, second=0, microsecond=0)

        print(f"Creating {args.days} closed cash sessions...")
        for offset in range(args.days, 0, -1):
            session = seed_day(db, today - timedelta(days=offset), args.sales)
            difference = session.difference.format() if session.difference is not None else "-"
            print(f"  Session {session.id}: expected {session.expected_cash.format()}, difference {difference}")

        if args.leave_open:
            print("Opening today's cash session...")
            session = seed_day(db, utcnow() - timedelta(hours=4), max(args.sales // 4, 1), close=False)
            print(f"  Session {session.id} open since {session.opened_at.isoformat()}")

        print("\nSeed completed.")
        print("Headers for API requests:")
        print(f"  Cashier:    Authorization: Bearer {create_operator_token('cajero-1', 'cashier')}")
        print(f"  Supervisor: Authorization: Bearer {create_operator_token('supervisor-1', 'supervisor')}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
