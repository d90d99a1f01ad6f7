import pytest
from aioresponses import aioresponses

from cron_engine.errors import HandlerError
from cron_engine.handlers.http import HttpRequestConfig, HttpRequestHandler


@pytest.fixture(scope="function")
def http_handler():
    return HttpRequestHandler()


@pytest.fixture(scope="function")
def sample_config():
    return HttpRequestConfig(
        method="GET",
        url="https://example.com",
        headers={"Content-Type": "application/json"},
        params={"key": "value"},
    ).model_dump()


@pytest.mark.asyncio
async def test_async_execute_success(http_handler, sample_config):
    with aioresponses() as m:
        m.get(
            'https://example.com?key=value',
            status=200,
            headers={"Content-Type": "application/json"},
            body='{"result": "success"}'
        )

        result = await http_handler.async_execute(sample_config)

        assert result == {
            "status": 200,
            "headers": {"Content-Type": "application/json"},
            "body": '{"result": "success"}'
        }


@pytest.mark.asyncio
async def test_async_execute_error_status(http_handler, sample_config):
    with aioresponses() as m:
        m.get('https://example.com?key=value', status=503, body="unavailable")

        with pytest.raises(HandlerError, match="returned HTTP 503"):
            await http_handler.async_execute(sample_config)


@pytest.mark.asyncio
async def test_async_execute_error_status_allowed(http_handler, sample_config):
    sample_config["raise_for_status"] = False
    with aioresponses() as m:
        m.get('https://example.com?key=value', status=404, body="missing")

        result = await http_handler.async_execute(sample_config)

        assert result["status"] == 404
        assert result["body"] == "missing"


@pytest.mark.asyncio
async def test_async_execute_connection_failure(http_handler, sample_config):
    sample_config["url"] = "https://non-existent-url.com"

    with aioresponses() as m:
        m.get(
            'https://non-existent-url.com?key=value',
            exception=Exception("Connection error")
        )

        with pytest.raises(Exception, match="Connection error"):
            await http_handler.async_execute(sample_config)


@pytest.mark.asyncio
async def test_async_execute_invalid_config(http_handler):
    with pytest.raises(HandlerError, match="Invalid config"):
        await http_handler.async_execute({"invalid": "config"})
