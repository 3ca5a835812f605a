from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from dental_erp.core.config import settings
from dental_erp.core.exceptions import ConflictError
from dental_erp.core.logging_config import get_logger

logger = get_logger(__name__)


def build_engine(database_uri: str, echo: bool = False):
    """Async engine for a sqlite:/// URI"""
    return create_async_engine(
        database_uri.replace("sqlite:///", "sqlite+aiosqlite:///"),
        echo=echo,
        future=True,
    )


def build_sessionmaker(bind) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# SQL echo only when SQL_DEBUG is set
engine = build_engine(settings.SQLITE_DATABASE_URI, echo=settings.SQL_DEBUG)

SessionLocal = build_sessionmaker(engine)


async def _write_or_conflict(db: AsyncSession, write) -> None:
    try:
        await write()
    except StaleDataError as e:
        await db.rollback()
        logger.warning(f"Concurrent modification rejected: {e}")
        raise ConflictError("Record was modified by another request, reload and retry")
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Integrity conflict rejected: {e.orig}")
        raise ConflictError("Duplicate or dependent record conflict")


async def flush_or_conflict(db: AsyncSession) -> None:
    """Flush pending rows (to get their ids) with the same conflict mapping as commit"""
    await _write_or_conflict(db, db.flush)


async def commit_or_conflict(db: AsyncSession) -> None:
    """
    Commit one unit of work.

    A stale version (another request committed the same row first) or a
    duplicate key rolls the whole unit back and surfaces as ConflictError.
    """
    await _write_or_conflict(db, db.commit)
