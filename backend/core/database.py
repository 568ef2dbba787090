from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool
from core.config import settings
from utils.logger import get_logger

logger = get_logger("backend.core.database")

Base = declarative_base()

# Columns added to `users` after the first release. Applied on every start;
# "duplicate column" failures mean the column is already there.
USER_COMPAT_COLUMNS = (
    "email TEXT",
    "auth_token TEXT",
    "token_expiry DATETIME",
    "last_login DATETIME",
    "updated_at DATETIME",
)

# Uniqueness of username/email is case-insensitive
USER_INDEXES = (
    "CREATE UNIQUE INDEX IF NOT EXISTS ix_users_username_lower ON users (lower(username))",
    "CREATE UNIQUE INDEX IF NOT EXISTS ix_users_email_lower ON users (lower(email))",
)


def _get_async_db_url(sync_url: str) -> str:
    """Convert a sync database URL to its async driver form."""
    if sync_url.startswith("sqlite:///"):
        return sync_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return sync_url


def _is_duplicate_column(exc: DBAPIError) -> bool:
    msg = str(exc.orig).lower()
    return "duplicate column" in msg


class Database:
    """
    The only component that talks to the relational store.

    Wraps one async engine for the process lifetime and exposes three
    primitives taking a statement with named ``:params``:
    - execute()   -> rows affected
    - fetch_one() -> row as dict, or None
    - fetch_all() -> list of row dicts
    """

    def __init__(self, url: str, busy_timeout: float = 30.0):
        self.url = _get_async_db_url(url)
        self._url = make_url(self.url)
        self.is_sqlite = self._url.get_backend_name() == "sqlite"
        if not self.is_sqlite:
            raise ValueError(f"Unsupported database backend: {self._url.get_backend_name()}")
        self.engine: AsyncEngine = self._create_engine(busy_timeout)

    @property
    def is_memory(self) -> bool:
        return self.is_sqlite and self._url.database in (None, "", ":memory:")

    def _create_engine(self, busy_timeout: float) -> AsyncEngine:
        kwargs: Dict[str, Any] = {"echo": False, "future": True}
        if self.is_sqlite:
            # Writers wait on a locked database instead of failing immediately
            kwargs["connect_args"] = {"timeout": busy_timeout}
            if self.is_memory:
                # Every new connection would otherwise see a fresh empty database
                kwargs["poolclass"] = StaticPool
        engine = create_async_engine(self.url, **kwargs)

        if self.is_sqlite:
            @event.listens_for(engine.sync_engine, "connect")
            def _enable_foreign_keys(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        return engine

    def _ensure_data_dir(self) -> None:
        if not self.is_sqlite or self.is_memory:
            return
        data_dir = Path(self._url.database).expanduser().resolve().parent
        data_dir.mkdir(parents=True, exist_ok=True)

    async def init_schema(self) -> None:
        """Create missing tables, then apply additive column migrations."""
        # Register table definitions on Base.metadata
        import models.user  # noqa: F401
        import models.chat  # noqa: F401

        self._ensure_data_dir()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        for column_ddl in USER_COMPAT_COLUMNS:
            try:
                async with self.engine.begin() as conn:
                    await conn.execute(text(f"ALTER TABLE users ADD COLUMN {column_ddl}"))
                logger.info("Added users column", extra={"column": column_ddl.split()[0]})
            except DBAPIError as e:
                if not _is_duplicate_column(e):
                    raise

        async with self.engine.begin() as conn:
            for ddl in USER_INDEXES:
                await conn.execute(text(ddl))

        logger.info("Database initialized", extra={"backend": self._url.get_backend_name(), "database": self._url.database})

    async def execute(self, statement: str, params: Optional[Mapping[str, Any]] = None) -> int:
        async with self.engine.begin() as conn:
            result = await conn.execute(text(statement), dict(params or {}))
            return result.rowcount

    async def fetch_one(self, statement: str, params: Optional[Mapping[str, Any]] = None) -> Optional[Dict[str, Any]]:
        async with self.engine.connect() as conn:
            result = await conn.execute(text(statement), dict(params or {}))
            row = result.mappings().first()
            return dict(row) if row is not None else None

    async def fetch_all(self, statement: str, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        async with self.engine.connect() as conn:
            result = await conn.execute(text(statement), dict(params or {}))
            return [dict(row) for row in result.mappings().all()]

    async def dispose(self) -> None:
        await self.engine.dispose()


database = Database(settings.DATABASE_URL, busy_timeout=settings.DB_BUSY_TIMEOUT_SECONDS)


def get_db() -> Database:
    return database
