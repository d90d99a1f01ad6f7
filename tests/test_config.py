import pytest

from cron_engine.config import Settings
from cron_engine.engine import build_engine
from cron_engine.notifiers.composite import CompositeNotifier
from cron_engine.notifiers.log import LoggingNotifier
from cron_engine.notifiers.webhook import WebhookNotifier


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("CRON_ENGINE_DEFAULT_TIMEOUT_MS", "1500")
    monkeypatch.setenv("CRON_ENGINE_ADMIN_RECIPIENTS", "ops@example.com, ,admin@example.com")

    config = Settings()

    assert config.default_timeout_ms == 1500
    assert config.default_max_retries == 3
    assert config.shutdown_grace_seconds == 5.0
    assert config.get_admin_recipients() == ["ops@example.com", "admin@example.com"]


@pytest.mark.asyncio
async def test_build_engine(tmp_path):
    config = Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}",
        alert_webhook_url="https://hooks.example.com/cron",
        admin_recipients="ops@example.com",
        default_timeout_ms=2_000,
    )

    engine = await build_engine(config)
    try:
        assert isinstance(engine.notifier, CompositeNotifier)
        assert isinstance(engine.notifier.notifiers[0], LoggingNotifier)
        assert isinstance(engine.notifier.notifiers[1], WebhookNotifier)
        assert engine.notifier.notifiers[1].admin_recipients == ["ops@example.com"]
        assert set(engine.registry.task_identifiers) == {"noop", "http_request", "cleanup_old_files"}

        assert await engine.start() == 0
        assert (await engine.stats())["total"] == 0
    finally:
        await engine.stop()
        await engine.store.dispose()


@pytest.mark.asyncio
async def test_build_engine_without_webhook(tmp_path):
    engine = await build_engine(Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}"))
    try:
        assert isinstance(engine.notifier, LoggingNotifier)
    finally:
        await engine.store.dispose()
