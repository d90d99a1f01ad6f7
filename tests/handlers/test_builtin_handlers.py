import os
import time

import pytest

from cron_engine.errors import HandlerError
from cron_engine.handlers.builtin import CleanupOldFilesHandler, NoopHandler


def _age(path, days: float) -> None:
    past = time.time() - days * 24 * 60 * 60
    os.utime(path, (past, past))


@pytest.mark.asyncio
async def test_noop_handler():
    assert await NoopHandler().async_execute({}) == {"ok": True}


@pytest.mark.asyncio
async def test_cleanup_deletes_only_stale_files(tmp_path):
    (tmp_path / "nested").mkdir()
    stale = tmp_path / "stale.png"
    nested_stale = tmp_path / "nested" / "old.png"
    fresh = tmp_path / "fresh.png"
    kept = tmp_path / "keep.png"
    for path in (stale, nested_stale, fresh, kept):
        path.write_bytes(b"x")
    for path in (stale, nested_stale, kept):
        _age(path, 45)

    result = await CleanupOldFilesHandler().async_execute(
        {"directory": str(tmp_path), "max_age_days": 30, "keep": ["keep.png"]}
    )

    assert result["deleted_files"] == 2
    assert result["max_age_days"] == 30
    assert not stale.exists()
    assert not nested_stale.exists()
    assert fresh.exists()
    assert kept.exists()


@pytest.mark.asyncio
async def test_cleanup_missing_directory(tmp_path):
    result = await CleanupOldFilesHandler().async_execute({"directory": str(tmp_path / "missing")})
    assert result["deleted_files"] == 0


@pytest.mark.asyncio
async def test_cleanup_invalid_config():
    with pytest.raises(HandlerError, match="Invalid config"):
        await CleanupOldFilesHandler().async_execute({"max_age_days": 3})
