"""Database — async engine, session scopes and the get_db dependency.

Invariants:
    - A session that exits with an exception is rolled back, then closed
    - Unique / foreign-key violations surface as ConflictError (409); every other
      SQLAlchemy failure surfaces as DatabaseError (503)
    - db_manager is None until init_db() runs in the app lifespan

Design Decisions:
    - Pool sizing applies to server databases only; SQLite URLs (local runs)
      get SQLAlchemy's default pool
    - expire_on_commit=False: serializers read attributes after commit without
      a lazy load (not available under asyncio)
    - The job runner and AI usage logging open their own sessions via
      get_db_manager(), so queue bookkeeping never shares a request transaction
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tutorassist.core.errors import ConflictError, DatabaseError, TutorAssistError

logger = logging.getLogger(__name__)

# Checked in order; the first matching class wins
_FAILURES: tuple[tuple[type[SQLAlchemyError], str, str], ...] = (
    (OperationalError, "Connection or operational error", "execute"),
    (DBAPIError, "Database driver error", "query"),
    (SQLAlchemyError, "Database operation failed", "unknown"),
)


def _translate(exc: SQLAlchemyError) -> TutorAssistError:
    if isinstance(exc, IntegrityError):
        return ConflictError("Record conflicts with existing data")
    for exc_type, message, operation in _FAILURES:
        if isinstance(exc, exc_type):
            return DatabaseError(message, operation)
    return DatabaseError(str(exc), "unknown")


class DatabaseSessionManager:
    def __init__(self, database_url: str, pool_size: int = 20, max_overflow: int = 10):
        engine_options: dict = {"pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            engine_options.update(
                pool_size=pool_size, max_overflow=max_overflow, pool_recycle=1800,
            )
        self.engine = create_async_engine(database_url, **engine_options)
        self._session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            translated = _translate(e)
            logger.error(f"{translated.code}: {e}", extra={"error_code": translated.code})
            raise translated from e
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """SELECT 1 through a fresh session; False on any failure."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Readiness check failed: {e}")
            return False
        return True

    async def dispose(self) -> None:
        await self.engine.dispose()


db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)
    return db_manager


def get_db_manager() -> DatabaseSessionManager:
    """Resolve the singleton at call time (tests swap the module attribute)."""
    if not db_manager:
        raise RuntimeError("Database not initialized")
    return db_manager


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with get_db_manager().session() as session:
        yield session
