"""
Test configuration and fixtures.
Uses a file-backed SQLite database per test so separate sessions see each other's
commits. The messaging client is a scripted fake; no gateway calls are made.
"""
import asyncio
import time
from typing import Optional
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import whatsrelay.models  # noqa: F401 - registers models on Base.metadata
from whatsrelay.database import Base
from whatsrelay.integrations.messaging_base import (
    ClientMessage,
    MediaPayload,
    MessagingClient,
    SentMessage,
)
from whatsrelay.services.media_storage import MediaStorage
from whatsrelay.services.session_state import ConnectionState
from whatsrelay.services.webhook_dispatcher import WebhookDispatcher


class FakeMessagingClient(MessagingClient):
    """Records calls and returns canned results. Set *_error to make a call fail."""

    def __init__(self):
        super().__init__(queue_size=100)
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.sent: list[tuple[str, str]] = []
        self.sent_media: list[tuple[str, MediaPayload, Optional[str]]] = []
        self.connect_error: Optional[Exception] = None
        self.disconnect_error: Optional[Exception] = None
        self.download_error: Optional[Exception] = None
        self.media_payload = MediaPayload(mimetype="image/jpeg", data=b"\xff\xd8jpegdata")
        self._next_id = 0

    def _new_id(self) -> str:
        self._next_id += 1
        return f"true_15551234567@c.us_MSG{self._next_id}"

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_error:
            raise self.connect_error

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self.disconnect_error:
            raise self.disconnect_error

    async def send_message(self, chat_id: str, body: str) -> SentMessage:
        self.sent.append((chat_id, body))
        return SentMessage(id=self._new_id())

    async def send_media(self, chat_id, media, caption=None) -> SentMessage:
        self.sent_media.append((chat_id, media, caption))
        return SentMessage(id=self._new_id())

    async def download_media(self, message: ClientMessage) -> MediaPayload:
        if self.download_error:
            raise self.download_error
        return self.media_payload


async def mark_connected(state: ConnectionState) -> None:
    await state.begin_connecting()
    await state.on_ready()


@pytest.fixture
def session_factory(tmp_path):
    """Session factory over a fresh SQLite file with all tables created."""
    db_file = tmp_path / "whatsrelay-test.db"

    sync_engine = create_engine(f"sqlite:///{db_file}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()

    # NullPool: every session opens its own connection on whichever loop is running
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_file}", poolclass=NullPool)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    engine.sync_engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def messaging_client():
    return FakeMessagingClient()


@pytest.fixture
def media_storage(tmp_path):
    storage = MediaStorage(str(tmp_path / "uploads"))
    storage.ensure_dir()
    return storage


@pytest.fixture
def app(session_factory, messaging_client, media_storage):
    """Application with lifespan components wired by hand (lifespan is not run)."""
    from whatsrelay.database import get_db
    from whatsrelay.main import create_app

    with patch("whatsrelay.main.configure_structured_logging"):
        application = create_app()

    async def _get_test_db():
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db] = _get_test_db
    application.state.connection_state = ConnectionState()
    application.state.messaging_client = messaging_client
    application.state.dispatcher = WebhookDispatcher(session_factory)
    application.state.media_storage = media_storage
    application.state.started_at = time.monotonic()
    return application


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def connected_client(app, client):
    asyncio.run(mark_connected(app.state.connection_state))
    return client
