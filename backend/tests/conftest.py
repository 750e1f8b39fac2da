"""Root conftest - shared test configuration."""

import pytest

from threadline.config import Settings, get_settings


_ENV_KEYS = (
    "AGENT_DEFAULT_MODEL", "AGENT_CONTEXT_1M", "AGENT_CONTEXT_LIMITS",
    "TASK_TOOL_NAME", "OUTPUT_PROBE_TOOL_NAMES", "LOG_LEVEL", "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Tests never see the developer's environment or a cached Settings."""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    return Settings(_env_file=None)
