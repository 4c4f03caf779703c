from decimal import Decimal

import structlog
from sqlalchemy import Numeric, event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from aqar.core.config import settings

logger = structlog.get_logger()


def _serialize_sqlite_writers(engine: AsyncEngine) -> None:
    """SQLite has no row locks: open every transaction with BEGIN IMMEDIATE."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _connection_record) -> None:
        # stop the driver from emitting its own deferred BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    if url.startswith("sqlite"):
        sqlite_engine = create_async_engine(url, echo=echo)
        _serialize_sqlite_writers(sqlite_engine)
        logger.info("database.sqlite_serialized_writers")
        return sqlite_engine

    return create_async_engine(
        url,
        echo=echo,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,               # Drop stale connections before use
        pool_recycle=1800,
        pool_timeout=30,
        connect_args={
            "server_settings": {
                "statement_timeout": "30000",
                "idle_in_transaction_session_timeout": "120000",  # investments hold locks across ledger calls
                "lock_timeout": "15000",                          # max wait behind another investor's row lock
            },
            "command_timeout": 30,
        },
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.APP_DEBUG)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    type_annotation_map = {
        Decimal: Numeric(19, 4),
    }


async def hold_across_ledger_calls(db: AsyncSession) -> None:
    """Lift the idle-in-transaction limit for the current transaction.

    Workflows that keep row locks while waiting on the ledger issue no SQL for
    minutes at a time. PostgreSQL only; SET LOCAL ends with the transaction.
    """
    if db.get_bind().dialect.name == "postgresql":
        await db.execute(text("SET LOCAL idle_in_transaction_session_timeout = 0"))


async def get_db() -> AsyncSession:  # type: ignore[misc]
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
