"""Shared fixtures for the Money Conversations test suite."""

from datetime import datetime, timezone
from io import BytesIO

import pytest
from PIL import Image

from money_conversations.config import AppSettings, ReportSettings
from money_conversations.errors import StorageError
from money_conversations.notifications import ChangeNotifier
from money_conversations.services.storage import InMemoryBackend
from money_conversations.store import EntityStore


class FailingBackend(InMemoryBackend):
    """In-memory backend whose writes can be switched to fail."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.fail_saves = False

    def save(self, snapshot):
        if self.fail_saves:
            raise StorageError("Disk full")
        super().save(snapshot)


def when(year, month, day, hour=12, minute=0):
    """An aware UTC datetime at midday, away from day boundaries."""
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def make_image_bytes(width, height, mode="RGB", image_format="PNG"):
    color = (200, 120, 40, 255) if mode == "RGBA" else (200, 120, 40)
    img = Image.new(mode, (width, height), color[:len(mode)])
    out = BytesIO()
    img.save(out, format=image_format)
    return out.getvalue()


@pytest.fixture
def app_settings():
    return AppSettings(max_image_dimension=128, max_image_size_mb=1)


@pytest.fixture
def report_settings():
    return ReportSettings()


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def failing_backend():
    return FailingBackend()


@pytest.fixture
def notifier():
    return ChangeNotifier()


@pytest.fixture
def events(notifier):
    """Every event published on the notifier, in order."""
    received = []
    subscription = notifier.subscribe(received.append)
    yield received
    subscription.unsubscribe()


@pytest.fixture
def store(backend, notifier, app_settings):
    store = EntityStore(backend, notifier=notifier, settings=app_settings)
    store.open()
    yield store
    store.close()


@pytest.fixture
def failing_store(failing_backend, notifier, app_settings):
    store = EntityStore(failing_backend, notifier=notifier, settings=app_settings)
    store.open()
    yield store
    store.close()


@pytest.fixture
def fresh_store(app_settings):
    """A second, empty store for import targets."""
    store = EntityStore(InMemoryBackend(), settings=app_settings)
    store.open()
    yield store
    store.close()
