"""
HTTP JSON producer for watchers.
Fetches a JSON document and returns the list found at a configurable path.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)


class SourceError(Exception):
    """Raised when a response does not contain a usable list."""


class HttpJsonSource:
    """
    Awaitable producer reading a list of items from a JSON endpoint.
    """

    def __init__(
        self,
        url: str,
        *,
        items_path: Optional[str] = None,
        timeout: float = 30,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the source.

        Args:
            url: Endpoint returning JSON
            items_path: Dotted path to the list inside the payload, e.g. "data.items"
            timeout: Request timeout in seconds
            retry_attempts: Retries after the first failed request
            retry_delay: Base delay for exponential backoff in seconds
            headers: Extra request headers
            transport: Custom httpx transport
        """
        self.url = url
        self.items_path = items_path
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.logger = logger.bind(component="http_source", url=url)

        self.client_config = {
            "timeout": timeout,
            "headers": headers or {},
            "follow_redirects": True,
        }
        if transport is not None:
            self.client_config["transport"] = transport

    async def __call__(self) -> List[Any]:
        """Fetch the endpoint and return its list of items."""
        async with httpx.AsyncClient(**self.client_config) as client:
            response = await self._request_with_retry(client)

        try:
            payload = response.json()
        except ValueError as e:
            raise SourceError(f"Response from {self.url} is not valid JSON") from e

        items = self._extract_items(payload)
        self.logger.debug("Fetched items", count=len(items))
        return items

    async def _request_with_retry(self, client: httpx.AsyncClient) -> httpx.Response:
        """
        Make HTTP request with retry logic and exponential backoff.

        Args:
            client: HTTP client

        Returns:
            Successful response
        """
        last_exception = None

        for attempt in range(self.retry_attempts + 1):
            try:
                response = await client.get(self.url)
                response.raise_for_status()
                return response
            except httpx.HTTPError as e:
                last_exception = e

                if attempt < self.retry_attempts:
                    delay = self.retry_delay * (2 ** attempt)
                    self.logger.warning(
                        "Retrying request",
                        attempt=attempt + 1,
                        max_attempts=self.retry_attempts,
                        delay_seconds=delay,
                        error=str(e)
                    )
                    await asyncio.sleep(delay)
                else:
                    self.logger.error(
                        "Request failed after retries",
                        retries=self.retry_attempts,
                        error=str(e)
                    )

        raise last_exception

    def _extract_items(self, payload: Any) -> List[Any]:
        """Follow items_path into payload and return the list found there."""
        current = payload
        if self.items_path:
            for key in self.items_path.split("."):
                if isinstance(current, dict) and key in current:
                    current = current[key]
                elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
                    current = current[int(key)]
                else:
                    raise SourceError(f"Path {self.items_path!r} not found in response from {self.url}")

        if not isinstance(current, list):
            raise SourceError(
                f"Expected a JSON list at {self.items_path or 'top level'}, got {type(current).__name__}"
            )
        return current
