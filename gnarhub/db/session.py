# gnarhub/db/session.py

import logging
import ssl
from functools import lru_cache
from typing import Optional, Tuple

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from gnarhub.core.config import settings
from gnarhub.db.base_class import Base
from gnarhub.db.sql_store import SqlDocumentStore

logger = logging.getLogger(__name__)


def prepare_database_url(url: str) -> Tuple[str, dict]:
    """
    Normalize a DATABASE_URL for the async drivers.

    Plain postgresql:// URLs are switched to asyncpg, and the sslmode query
    parameter (which asyncpg rejects) is turned into an ssl context.
    """
    db_url = make_url(url)
    if db_url.drivername == "postgresql":
        db_url = db_url.set(drivername="postgresql+asyncpg")

    connect_args: dict = {}
    sslmode = db_url.query.get("sslmode")
    if sslmode is not None:
        # Repeated query keys come back as a tuple
        if isinstance(sslmode, tuple):
            sslmode = sslmode[0]
        if sslmode in ("require", "verify-ca", "verify-full"):
            ssl_context = ssl.create_default_context()
            if sslmode == "require":
                ssl_context.check_hostname = False
                ssl_context.verify_mode = ssl.CERT_NONE
            connect_args["ssl"] = ssl_context
        db_url = db_url.difference_update_query(["sslmode"])

    return db_url.render_as_string(hide_password=False), connect_args


@lru_cache()
def get_engine(url: Optional[str] = None) -> AsyncEngine:
    database_url, connect_args = prepare_database_url(url or settings.DATABASE_URL)
    kwargs = {"echo": False, "connect_args": connect_args}
    if not database_url.startswith("sqlite"):
        kwargs["pool_pre_ping"] = True
    return create_async_engine(database_url, **kwargs)


@lru_cache()
def get_session_factory(url: Optional[str] = None) -> async_sessionmaker:
    return async_sessionmaker(get_engine(url), class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Create the documents table if it does not exist yet."""
    # Import models to register them with Base.metadata
    from gnarhub.models import document  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Document store schema ready")


def build_store(url: Optional[str] = None) -> SqlDocumentStore:
    """SQL-backed store for the configured (or given) database."""
    return SqlDocumentStore(get_session_factory(url))
