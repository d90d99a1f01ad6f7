from typing import Any, Dict

import aiohttp
from pydantic import BaseModel, Field

from cron_engine.errors import HandlerError
from cron_engine.handlers.protocol import TaskHandler


class HttpRequestConfig(BaseModel):
    url: str = Field(..., description="The URL to make the HTTP request to")
    method: str = Field("GET", description="The HTTP method to use (e.g. GET, POST, PUT, DELETE)")
    headers: Dict[str, str] = Field(default={}, description="Optional headers to include in the request")
    body: Dict[str, Any] = Field(default={}, description="Optional JSON body for the request")
    params: Dict[str, str] = Field(default={}, description="Optional query parameters for the request")
    raise_for_status: bool = Field(True, description="Treat non-2xx responses as a failed execution")


class HttpRequestHandler(TaskHandler):
    """
    Task handler making HTTP requests using aiohttp.
    """

    @staticmethod
    def task_identifier() -> str:
        return "http_request"

    async def async_execute(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Make the request described by the configuration.

        Returns:
            Dict[str, Any]: The response status, headers and body text.

        Raises:
            HandlerError: If the configuration is invalid or the response is an error status.
        """
        try:
            request = HttpRequestConfig.model_validate(config)
        except ValueError as e:
            raise HandlerError(f"Invalid config: {str(e)}")

        async with aiohttp.ClientSession() as session:
            async with session.request(
                method=request.method,
                url=request.url,
                headers=request.headers,
                params=request.params,
                json=request.body or None,
            ) as response:
                result: Dict[str, Any] = {
                    "status": response.status,
                    "headers": dict(response.headers),
                    "body": await response.text(),
                }

        if request.raise_for_status and result["status"] >= 400:
            raise HandlerError(f"{request.method} {request.url} returned HTTP {result['status']}")
        return result
