from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from guildvault.config import settings
from guildvault.logging_setup import get_logger

logger = get_logger(__name__)


def _is_sqlite(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def _is_memory(url: str) -> bool:
    return _is_sqlite(url) and make_url(url).database in (None, "", ":memory:")


def _install_sqlite_hooks(engine: AsyncEngine) -> None:
    """PRAGMA при подключении и BEGIN IMMEDIATE для каждой транзакции.

    Драйвер сам BEGIN не шлёт (isolation_level=None), транзакцию открываем
    явно с захватом блокировки на запись: конкурентные писатели ждут друг
    друга, а не падают на апгрейде блокировки.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        """Настройка SQLite при подключении."""
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA cache_size=10000")
        cursor.execute("PRAGMA temp_store=MEMORY")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_and_sessionmaker(url: str) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Создает движок и фабрику сессий для указанного URL."""
    kwargs: dict = {"echo": False, "pool_pre_ping": True}
    if _is_sqlite(url):
        kwargs["connect_args"] = {"timeout": 30}
        if _is_memory(url):
            kwargs["poolclass"] = StaticPool  # одна общая in-memory база
    new_engine = create_async_engine(url, **kwargs)
    if _is_sqlite(url):
        _install_sqlite_hooks(new_engine)
    maker = async_sessionmaker(new_engine, class_=AsyncSession, expire_on_commit=False)
    return new_engine, maker


# Движок и фабрика сессий приложения
engine, async_session_maker = create_engine_and_sessionmaker(settings.database_url)


@asynccontextmanager
async def session_scope(
    maker: async_sessionmaker[AsyncSession], session: Optional[AsyncSession] = None
) -> AsyncIterator[AsyncSession]:
    """Переиспользует переданную сессию или открывает новую из maker."""
    if session is not None:
        yield session
        return
    async with maker() as s:
        yield s


async def create_schema(target: AsyncEngine) -> None:
    """Создает все таблицы (идемпотентно)."""
    from guildvault.db.models import Base
    from guildvault.trading import models_trade  # noqa: F401  регистрирует trades/trade_events

    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _ensure_sqlite_dir(url: str) -> None:
    if not _is_sqlite(url) or _is_memory(url):
        return
    Path(make_url(url).database).parent.mkdir(parents=True, exist_ok=True)


async def init_db() -> None:
    """Инициализация базы данных."""
    logger.info("Initializing database...")
    _ensure_sqlite_dir(settings.database_url)
    await create_schema(engine)
    logger.info("Database initialized")


async def close_db() -> None:
    """Закрытие соединений с БД."""
    logger.info("Closing database connections...")
    await engine.dispose()
    logger.info("Database connections closed")
