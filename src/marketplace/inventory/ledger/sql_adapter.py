"""SQLAlchemy-backed inventory ledger.

Stock lives in ``inventory_ledger`` with a non-negative check. A reservation
takes stock with one conditional statement::

    UPDATE inventory_ledger SET available = available - :q
    WHERE listing_id = :id AND available >= :q

and succeeds only when exactly one row changed. Hold settlements are keyed by
reservation id in ``inventory_hold_settlements``; an ``INSERT .. ON CONFLICT
DO NOTHING`` claims the settlement and the stock movement happens in the same
transaction, so a hold can only ever be released once.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    select,
    update,
)
from sqlalchemy.engine import Engine

from marketplace.inventory.ledger.port import HOLD_COMMITTED, HOLD_RELEASED, InventoryLedger
from marketplace.utils.db import dialect_insert

metadata = MetaData()

ledger_table = Table(
    "inventory_ledger",
    metadata,
    Column("listing_id", String(255), primary_key=True),
    Column("available", Integer, nullable=False, default=0),
    CheckConstraint("available >= 0", name="ck_inventory_ledger_available_non_negative"),
)

settlements_table = Table(
    "inventory_hold_settlements",
    metadata,
    Column("reservation_id", String(255), primary_key=True),
    Column("listing_id", String(255), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("outcome", String(20), nullable=False),
    Column("settled_at", DateTime(timezone=True), nullable=False),
)


class SqlInventoryLedger(InventoryLedger):
    def __init__(self, engine: Engine | str) -> None:
        self._engine = create_engine(engine) if isinstance(engine, str) else engine

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_tables(self) -> None:
        metadata.create_all(self._engine)

    def drop_tables(self) -> None:
        metadata.drop_all(self._engine)

    def get_availability(self, listing_id: str) -> int:
        with self._engine.connect() as conn:
            available = conn.execute(
                select(ledger_table.c.available).where(ledger_table.c.listing_id == listing_id)
            ).scalar_one_or_none()
        return available or 0

    def atomic_decrement(self, listing_id: str, quantity: int) -> bool:
        statement = (
            update(ledger_table)
            .where(ledger_table.c.listing_id == listing_id)
            .where(ledger_table.c.available >= quantity)
            .values(available=ledger_table.c.available - quantity)
        )
        with self._engine.begin() as conn:
            return conn.execute(statement).rowcount == 1

    def atomic_increment(self, listing_id: str, quantity: int) -> None:
        with self._engine.begin() as conn:
            self._increment(conn, listing_id, quantity)

    def _increment(self, conn, listing_id: str, quantity: int) -> None:
        statement = dialect_insert(self._engine, ledger_table).values(listing_id=listing_id, available=quantity)
        statement = statement.on_conflict_do_update(
            index_elements=[ledger_table.c.listing_id],
            set_={"available": ledger_table.c.available + quantity},
        )
        conn.execute(statement)

    def _claim_settlement(self, conn, reservation_id, listing_id, quantity, outcome) -> bool:
        statement = (
            dialect_insert(self._engine, settlements_table)
            .values(
                reservation_id=reservation_id,
                listing_id=listing_id,
                quantity=quantity,
                outcome=outcome,
                settled_at=datetime.now(UTC),
            )
            .on_conflict_do_nothing(index_elements=[settlements_table.c.reservation_id])
        )
        return conn.execute(statement).rowcount == 1

    def release_hold(self, reservation_id: str, listing_id: str, quantity: int) -> bool:
        with self._engine.begin() as conn:
            if not self._claim_settlement(conn, reservation_id, listing_id, quantity, HOLD_RELEASED):
                return False
            self._increment(conn, listing_id, quantity)
            return True

    def commit_hold(self, reservation_id: str) -> bool:
        with self._engine.begin() as conn:
            if self._claim_settlement(conn, reservation_id, "", 0, HOLD_COMMITTED):
                return True
            outcome = conn.execute(
                select(settlements_table.c.outcome).where(settlements_table.c.reservation_id == reservation_id)
            ).scalar_one()
        return outcome == HOLD_COMMITTED

    def hold_outcome(self, reservation_id: str) -> str | None:
        with self._engine.connect() as conn:
            return conn.execute(
                select(settlements_table.c.outcome).where(settlements_table.c.reservation_id == reservation_id)
            ).scalar_one_or_none()

    def set_stock(self, listing_id: str, quantity: int) -> None:
        if quantity < 0:
            raise ValueError("Stock cannot be negative")
        statement = dialect_insert(self._engine, ledger_table).values(listing_id=listing_id, available=quantity)
        statement = statement.on_conflict_do_update(
            index_elements=[ledger_table.c.listing_id],
            set_={"available": quantity},
        )
        with self._engine.begin() as conn:
            conn.execute(statement)
