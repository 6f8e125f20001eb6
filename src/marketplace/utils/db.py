"""Database schema helpers.

``setup_db``/``drop_db`` create the tables of every SQL-backed Protean
provider as well as the ledger and active-session tables when SQL adapters
are configured.
"""

from protean.domain import Domain
from sqlalchemy import Table, create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine

_SQL_PROVIDERS = ("sqlite", "postgresql")


def dialect_insert(engine: Engine, table: Table):
    """An INSERT supporting ``on_conflict_do_*`` for the engine's dialect."""
    if engine.dialect.name == "postgresql":
        return postgresql.insert(table)
    if engine.dialect.name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Unsupported dialect for conflict-aware inserts: {engine.dialect.name}")


def _sql_adapters():
    from marketplace.checkout.active_sessions import get_registry
    from marketplace.checkout.active_sessions.sql_adapter import SqlActiveSessionRegistry
    from marketplace.inventory.ledger import get_ledger
    from marketplace.inventory.ledger.sql_adapter import SqlInventoryLedger

    return [
        adapter
        for adapter in (get_ledger(), get_registry())
        if isinstance(adapter, (SqlInventoryLedger, SqlActiveSessionRegistry))
    ]


def setup_db(domain: Domain):
    """Create provider tables and SQL adapter tables."""
    with domain.domain_context():
        for _, provider in domain.providers.items():
            if provider.conn_info["provider"] in _SQL_PROVIDERS:
                engine = create_engine(provider.conn_info["database_uri"])

                # Touching ``_dao`` registers each model with the provider's metadata
                for _, aggregate_record in domain.registry.aggregates.items():
                    if aggregate_record.cls.meta_.provider == provider.name:
                        domain.repository_for(aggregate_record.cls)._dao  # noqa: B018

                for _, entity_record in domain.registry.entities.items():
                    if entity_record.cls.meta_.provider == provider.name:
                        domain.repository_for(entity_record.cls)._dao  # noqa: B018

                provider._metadata.create_all(engine)

    for adapter in _sql_adapters():
        adapter.create_tables()


def drop_db(domain: Domain):
    """Drop provider tables and SQL adapter tables."""
    with domain.domain_context():
        for _, provider in domain.providers.items():
            if provider.conn_info["provider"] in _SQL_PROVIDERS:
                engine = create_engine(provider.conn_info["database_uri"])
                provider._metadata.drop_all(engine)

    for adapter in _sql_adapters():
        adapter.drop_tables()
