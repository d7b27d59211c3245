# tests/conftest.py

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from gnarhub.db.memory_store import MemoryDocumentStore
from gnarhub.db.session import init_db
from gnarhub.db.sql_store import SqlDocumentStore
from gnarhub.services.negotiation_service import NegotiationService
from gnarhub.services.notification_service import NotificationEmitter
from gnarhub.services.review_service import ReviewService
from gnarhub.services.session_service import SessionService
from tests.utils.notifications import RecordingTransport


@pytest.fixture
def store():
    """In-memory document store; every read yields to the event loop."""
    return MemoryDocumentStore()


@pytest.fixture
async def sql_store(tmp_path):
    """SqlDocumentStore over a throwaway SQLite file (aiosqlite)."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'gnarhub_test.db'}")
    await init_db(engine)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield SqlDocumentStore(factory)
    await engine.dispose()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def notifier(transport):
    return NotificationEmitter(transport)


@pytest.fixture
def negotiation(store, notifier):
    return NegotiationService(store, notifier)


@pytest.fixture
def session_service(store):
    return SessionService(store)


@pytest.fixture
def review_service(store):
    return ReviewService(store)
