"""Pytest configuration and shared fixtures."""
import pytest

from autosave import AutosaveConfig, FormState
from autosave.testing import RecordingTransport, VirtualScheduler


PROFILE_VALUES = {
    "name": "Jane",
    "email": "jane@example.com",
    "profile": {"bio": "", "age": 30},
    "tags": [{"id": 1, "label": "admin"}],
}


@pytest.fixture(autouse=True)
def reset_autosave_env(monkeypatch):
    """Make logging defaults independent of the developer's environment."""
    monkeypatch.delenv("AUTOSAVE_ENV", raising=False)


@pytest.fixture
def scheduler():
    """Provide a virtual-time scheduler starting at t=0."""
    return VirtualScheduler()


@pytest.fixture
def transport():
    """Provide a transport that succeeds and records every call."""
    return RecordingTransport()


@pytest.fixture
def form():
    """Provide a form pre-loaded with a small profile record."""
    return FormState(PROFILE_VALUES)


@pytest.fixture
def config():
    """Provide a config with fast retries disabled and caching off."""
    return AutosaveConfig(debounce_ms=600, max_retries=0, enable_cache=False, enable_metrics=True)
