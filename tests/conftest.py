"""Shared fixtures for the price list service tests."""

import os
from typing import Any, Dict, List, Tuple

# Configure the app for tests before cenniki.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")
os.environ.setdefault("SMTP_USER", "")
os.environ.setdefault("SMTP_PASS", "")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import cenniki.models  # noqa: F401
from cenniki.core.auth import get_current_user_email
from cenniki.core.database import Base, get_db
from cenniki.core.dependencies import get_catalog_store, get_notifier, get_scheduler
from cenniki.models.producer import Producer
from cenniki.services.catalog_document import LayoutType
from cenniki.services.catalog_store import CatalogStore
from cenniki.services.notifier import ModelChangeSummary
from cenniki.services.scheduler import PriceChangeScheduler

ADMIN_EMAIL = "admin@example.com"


# ============================================================================
# Test doubles
# ============================================================================


class RecordingNotifier:
    """Notifier that keeps every notification in memory instead of sending it"""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, ModelChangeSummary]] = []

    def notify_price_update(self, producer_name: str, summary: ModelChangeSummary) -> None:
        self.sent.append((producer_name, summary))

    def shutdown(self, wait: bool = True) -> None:
        pass


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(db_engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(tmp_path) -> CatalogStore:
    return CatalogStore(tmp_path / "data")


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def scheduler(store, notifier) -> PriceChangeScheduler:
    return PriceChangeScheduler(store, notifier)


@pytest.fixture
def make_producer(db, store):
    """Create a producer row and store its catalog document"""

    def _make(slug: str, layout: LayoutType, data: Dict[str, Any], display_name: str = None) -> Producer:
        producer = Producer(
            slug=slug,
            display_name=display_name or slug.title(),
            layout_type=layout.value,
            price_factor=1.0,
        )
        db.add(producer)
        db.commit()
        db.refresh(producer)
        store.write(slug, data)
        return producer

    return _make


@pytest.fixture
def client(db, store, notifier, scheduler):
    from main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_catalog_store] = lambda: store
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    app.dependency_overrides[get_current_user_email] = lambda: ADMIN_EMAIL

    yield TestClient(app)

    app.dependency_overrides.clear()
