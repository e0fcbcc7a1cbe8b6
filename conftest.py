"""
Pytest configuration and shared fixtures.

Settings are read from the environment; defaults for the test run are set
here before the settings cache is cleared so no .env file is required.
"""

import os

import pytest

os.environ.setdefault("CALLER_SECRET", "test-caller-secret")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

# Clear settings cache before any app imports to ensure test env vars are used
from cellbroadcast.config import get_settings
get_settings.cache_clear()

from cellbroadcast.migrations import SchemaManager
from cellbroadcast.notifications import ChangeNotifier
from cellbroadcast.permissions import PrincipalPermissionChecker
from cellbroadcast.provider import CellBroadcastProvider
from cellbroadcast.storage import Database


WRITER = "phone"
HISTORY_READER = "cellbroadcast_receiver"


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'cellbroadcasts.db'}"


@pytest.fixture
def database(database_url):
    """Storage handle with the table opened at the current version."""
    db = Database(database_url)
    SchemaManager(db).open()
    yield db
    db.dispose()


@pytest.fixture
def permission_checker():
    return PrincipalPermissionChecker(
        writers=[WRITER, "network_stack"],
        history_readers=[HISTORY_READER],
    )


@pytest.fixture
def notifications():
    """List collecting every uri passed to the notifier."""
    return []


@pytest.fixture
def notifier(notifications):
    change_notifier = ChangeNotifier()
    change_notifier.register(notifications.append)
    return change_notifier


@pytest.fixture
def provider(database, permission_checker, notifier):
    return CellBroadcastProvider(database, permission_checker, notifier)
