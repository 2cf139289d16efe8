# Shared fixtures: isolated app data dir, fake upstream servers and a
# proxy client wired to them.
import pytest

from sameorigin.core.config_manager import ProxySettings
from sameorigin.core.proxy_manager import create_app

TEST_UPSTREAM_URL = "https://upstream.example:8443"

ENV_NAMES = ("PORT", "HOST", "UPSTREAM_URL", "LOG_LEVEL", "SAMEORIGIN_CONFIG")


@pytest.fixture(autouse=True)
def isolated_app_home(tmp_path, monkeypatch):
    """Конфиг и логи тестов не попадают в домашний каталог"""
    home = tmp_path / "sameorigin_home"
    monkeypatch.setenv("SAMEORIGIN_HOME", str(home))
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def settings():
    """Настройки с https upstream (для unit тестов без сети)"""
    return ProxySettings(upstream_url=TEST_UPSTREAM_URL)


@pytest.fixture
async def proxy_client(aiohttp_server, aiohttp_client):
    """
    Фабрика: поднимает fake upstream из aiohttp приложения и возвращает
    (test client прокси, ProxySettings).
    """

    async def _create(upstream_app, **overrides):
        server = await aiohttp_server(upstream_app)
        overrides.setdefault("enable_scheme_fallback", False)
        overrides.setdefault("timeout", 2.0)
        proxy_settings = ProxySettings(
            upstream_url=f"http://{server.host}:{server.port}",
            **overrides,
        )
        client = await aiohttp_client(create_app(proxy_settings))
        return client, proxy_settings

    return _create
