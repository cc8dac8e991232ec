# tests/conftest.py

import pytest

from teamctl.config import get_settings


@pytest.fixture
def settings(tmp_path, monkeypatch):
    """Settings rooted in a temp dir, isolated from any .env or .teamctl.yml."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TEAMCTL_HOME", str(tmp_path / "home"))
    # The background poller is exercised explicitly in poller tests
    monkeypatch.setenv("POLL_INTERVAL", "60")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()
