"""Shared test fixtures."""

from typing import Optional

import pytest
from fakes import FAST_NARRATIVE_CONFIG, PLACEHOLDER_URL
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from storyrelay.core.session_locks import SessionLocks
from storyrelay.db.database import build_engine
from storyrelay.main import create_app
from storyrelay.services.ai import AIProvider, MockProvider
from storyrelay.services.broadcast import BroadcastChannel
from storyrelay.services.image_service import PlaceholderImageService
from storyrelay.services.narrative_service import NarrativeService
from storyrelay.services.narrative_types import NarrativeConfig
from storyrelay.services.presence import PresenceRegistry
from storyrelay.services.session_store import SessionStore
from storyrelay.services.turn_coordinator import CoordinatorConfig, TurnCoordinator


# === DB ===


@pytest.fixture()
def engine():
    """In-memory SQLite shared by every session of one test."""
    eng = build_engine("sqlite:///:memory:", poolclass=StaticPool)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db_session(session_factory) -> Session:
    """Raw database session for direct DB assertions."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def store(session_factory) -> SessionStore:
    s = SessionStore(session_factory)
    s.create_schema()
    return s


# === Services ===


@pytest.fixture()
def presence() -> PresenceRegistry:
    return PresenceRegistry()


@pytest.fixture()
def broadcast(presence) -> BroadcastChannel:
    return BroadcastChannel(presence)


@pytest.fixture()
def make_coordinator(store, presence, broadcast):
    """Factory for coordinators sharing the test's store and presence."""

    def _make(
        provider: Optional[AIProvider] = None,
        config: Optional[CoordinatorConfig] = None,
        images=None,
        narrative_config: Optional[NarrativeConfig] = None,
    ) -> TurnCoordinator:
        narrative = NarrativeService(
            provider or MockProvider(), narrative_config or FAST_NARRATIVE_CONFIG
        )
        return TurnCoordinator(
            store=store,
            narrative=narrative,
            images=images or PlaceholderImageService(PLACEHOLDER_URL),
            presence=presence,
            broadcast=broadcast,
            locks=SessionLocks(),
            config=config or CoordinatorConfig(),
        )

    return _make


@pytest.fixture()
def coordinator(make_coordinator) -> TurnCoordinator:
    return make_coordinator()


# === API ===


@pytest.fixture()
def app(store, presence, broadcast, coordinator):
    application = create_app()
    application.state.store = store
    application.state.presence = presence
    application.state.broadcast = broadcast
    application.state.coordinator = coordinator
    return application


@pytest.fixture()
def client(app) -> TestClient:
    """TestClient with the lifespan running; one event loop for HTTP and WS."""
    with TestClient(app) as test_client:
        yield test_client
