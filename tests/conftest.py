import pytest

from chatrelay import config as cfg_mod


TEST_CONFIG = {
    "server": {"host": "127.0.0.1", "port": 3000},
    "provider": {"name": "gemini", "url": "http://gemini.test/v1beta", "api_key": "test-key", "temperature": 0.7},
    "models": {"default": "gemini-2.5-flash", "available": ["gemini-2.5-flash", "gemini-3-flash-preview"]},
    "styles": {"default": "explain"},
    "retry": {"max_retries": 3, "base_delay_ms": 2000, "max_delay_ms": 30000},
    "client": {"url": "http://relay.test", "timeout_ms": 60000, "history_window": 20},
    "logging": {"level": "DEBUG"},
}


@pytest.fixture
def test_config():
    """Install an in-memory config for the duration of a test."""
    orig = cfg_mod._config
    cfg_mod._config = dict(TEST_CONFIG)
    try:
        yield cfg_mod._config
    finally:
        cfg_mod._config = orig
