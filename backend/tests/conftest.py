"""Shared fixtures: a throwaway SQLite database and fake channel senders."""
import pytest
import pytest_asyncio

from pushrelay.database import Database
from pushrelay.services.dispatch import DispatchPolicy
from pushrelay.services.processor import BatchProcessor

from factories import FakeClock, FakeFcmSender, FakeWebPushSender


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'pushrelay-test.db'}")
    await db.init()
    yield db
    await db.close()


@pytest.fixture
def webpush_sender():
    return FakeWebPushSender()


@pytest.fixture
def fcm_sender():
    return FakeFcmSender()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def policy(webpush_sender, fcm_sender):
    return DispatchPolicy(webpush_sender=webpush_sender, fcm_sender=fcm_sender)


@pytest.fixture
def processor(database, policy, clock):
    return BatchProcessor(database, policy, batch_size=10, max_retries=3, clock=clock)
