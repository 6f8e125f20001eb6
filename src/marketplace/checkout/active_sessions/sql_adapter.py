"""SQLAlchemy-backed active session registry.

``user_id`` is the primary key of ``checkout_active_sessions``, which is the
storage-level guarantee of one active session per user. Claiming an empty
slot is an ``INSERT .. ON CONFLICT DO NOTHING``; replacing a claim is an
``UPDATE .. WHERE session_id = :expected``. Both succeed only when exactly
one row changed.
"""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, MetaData, String, Table, create_engine, delete, select, update
from sqlalchemy.engine import Engine

from marketplace.checkout.active_sessions.port import ActiveSessionRegistry
from marketplace.utils.db import dialect_insert

metadata = MetaData()

active_sessions_table = Table(
    "checkout_active_sessions",
    metadata,
    Column("user_id", String(255), primary_key=True),
    Column("session_id", String(255), nullable=False, unique=True),
    Column("claimed_at", DateTime(timezone=True), nullable=False),
)


class SqlActiveSessionRegistry(ActiveSessionRegistry):
    def __init__(self, engine: Engine | str) -> None:
        self._engine = create_engine(engine) if isinstance(engine, str) else engine

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_tables(self) -> None:
        metadata.create_all(self._engine)

    def drop_tables(self) -> None:
        metadata.drop_all(self._engine)

    def current(self, user_id: str) -> str | None:
        with self._engine.connect() as conn:
            return conn.execute(
                select(active_sessions_table.c.session_id).where(active_sessions_table.c.user_id == user_id)
            ).scalar_one_or_none()

    def compare_and_set(self, user_id: str, expected: str | None, session_id: str) -> bool:
        now = datetime.now(UTC)
        if expected is None:
            statement = (
                dialect_insert(self._engine, active_sessions_table)
                .values(user_id=user_id, session_id=session_id, claimed_at=now)
                .on_conflict_do_nothing(index_elements=[active_sessions_table.c.user_id])
            )
        else:
            statement = (
                update(active_sessions_table)
                .where(active_sessions_table.c.user_id == user_id)
                .where(active_sessions_table.c.session_id == expected)
                .values(session_id=session_id, claimed_at=now)
            )
        with self._engine.begin() as conn:
            return conn.execute(statement).rowcount == 1

    def release(self, user_id: str, session_id: str) -> bool:
        statement = (
            delete(active_sessions_table)
            .where(active_sessions_table.c.user_id == user_id)
            .where(active_sessions_table.c.session_id == session_id)
        )
        with self._engine.begin() as conn:
            return conn.execute(statement).rowcount == 1
