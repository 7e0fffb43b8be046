"""HTTP fetch client used by providers and the registry."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
import structlog

from .. import __version__
from .errors import FetchError

log = structlog.stdlib.get_logger()

T = TypeVar("T")


class HttpClientService:
    """Outbound GET requests with optional retries, rate limiting and JSON decoding.

    Every failure leaves this class as a FetchError; httpx exceptions never
    reach callers.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        max_retries: int = 0,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        rate_limit_delay: float = 0.0,
        verify_ssl: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the HTTP client service.

        Args:
            timeout: Request timeout in seconds
            max_retries: Retry attempts after the first failure (0 disables retries)
            base_delay: Base delay for exponential backoff in seconds
            max_delay: Maximum delay between retries in seconds
            rate_limit_delay: Minimum delay between requests in seconds
            verify_ssl: Whether to verify SSL certificates
            transport: Optional httpx transport, used by tests to stub upstreams
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.rate_limit_delay = rate_limit_delay
        self._last_request_time: float = 0.0

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": f"warehouse/{__version__}"},
            follow_redirects=True,
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
            verify=verify_ssl,
            transport=transport,
        )

        log.info(
            "HTTP client service initialized",
            timeout=timeout,
            max_retries=max_retries,
            rate_limit_delay=rate_limit_delay,
        )

    async def get(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Make a GET request and return the fully read response.

        Raises:
            FetchError: If the request fails after all attempts or the upstream answers 4xx
        """

        async def attempt() -> httpx.Response:
            response = await self._client.get(url, headers=headers, params=params)
            response.raise_for_status()
            log.debug("HTTP GET request successful", url=url, status_code=response.status_code)
            return response

        return await self._with_retries(url, "HTTP GET request failed", attempt)

    async def get_json(self, url: str) -> Any:
        """GET a URL and decode its body as JSON.

        Raises:
            FetchError: If the request fails or the body is not valid JSON
        """
        response = await self.get(url, headers={"Accept": "application/json"})
        try:
            return response.json()
        except ValueError as e:
            log.warning("Upstream returned malformed JSON", url=url, error=str(e))
            raise FetchError("The upstream returned malformed JSON.", original_error=e, url=url) from e

    async def get_bytes(self, url: str, chunk_size: int = 65536) -> bytes:
        """Stream a URL into memory and return its body.

        A body shorter or longer than the advertised Content-Length counts as
        a failed attempt.

        Raises:
            FetchError: If the transfer fails or is truncated
        """

        async def attempt() -> bytes:
            async with self._client.stream("GET", url) as response:
                response.raise_for_status()

                # Content-Length counts encoded bytes; only compare when the body is not encoded
                expected = None
                if not response.headers.get("content-encoding") and "content-length" in response.headers:
                    expected = int(response.headers["content-length"])

                body = bytearray()
                async for chunk in response.aiter_bytes(chunk_size):
                    body.extend(chunk)

            if expected is not None and len(body) != expected:
                raise httpx.RequestError(f"Size mismatch: expected {expected}, got {len(body)}")

            log.info("Artifact download completed", url=url, size=len(body))
            return bytes(body)

        return await self._with_retries(url, "Artifact download failed", attempt)

    async def _with_retries(self, url: str, failure_event: str, attempt: Callable[[], Awaitable[T]]) -> T:
        for attempt_number in range(self.max_retries + 1):
            await self._enforce_rate_limit()
            try:
                log.debug("Requesting", url=url, attempt=attempt_number + 1)
                return await attempt()
            except (httpx.HTTPStatusError, httpx.RequestError) as e:
                log.warning(
                    failure_event,
                    url=url,
                    attempt=attempt_number + 1,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await self._backoff_or_raise(e, url, attempt_number)

        raise RuntimeError("Unexpected end of retry loop")

    async def _backoff_or_raise(self, error: httpx.HTTPError, url: str, attempt: int) -> None:
        """Sleep before the next attempt, or raise FetchError when no attempt is left."""
        status_code = error.response.status_code if isinstance(error, httpx.HTTPStatusError) else None

        if status_code is not None and 400 <= status_code < 500 and status_code != 429:
            log.error("Client error, not retrying", url=url, status_code=status_code)
            raise self._to_fetch_error(error, url, status_code) from error

        if attempt >= self.max_retries:
            if self.max_retries:
                log.error("HTTP request failed after all retries", url=url, total_attempts=attempt + 1)
            raise self._to_fetch_error(error, url, status_code) from error

        delay = min(self.base_delay * (2 ** attempt), self.max_delay)
        if status_code == 429 and isinstance(error, httpx.HTTPStatusError):
            retry_after = error.response.headers.get("retry-after")
            if retry_after:
                try:
                    delay = min(max(float(retry_after), 0.0), self.max_delay)
                except ValueError:
                    log.debug("Ignoring non-numeric Retry-After", url=url, retry_after=retry_after)

        log.info("Retrying after delay", url=url, delay=delay)
        await asyncio.sleep(delay)

    @staticmethod
    def _to_fetch_error(error: httpx.HTTPError, url: str, status_code: int | None) -> FetchError:
        if status_code is not None:
            message = f"Upstream answered HTTP {status_code}"
        elif isinstance(error, httpx.TimeoutException):
            message = "Upstream request timed out"
        else:
            message = "Unable to reach the upstream provider"
        return FetchError(message, original_error=error, url=url, status_code=status_code)

    async def _enforce_rate_limit(self) -> None:
        """Enforce the minimum delay between requests."""
        if self.rate_limit_delay <= 0:
            return

        time_since_last = time.monotonic() - self._last_request_time
        if time_since_last < self.rate_limit_delay:
            sleep_time = self.rate_limit_delay - time_since_last
            log.debug("Rate limiting: sleeping", sleep_time=sleep_time)
            await asyncio.sleep(sleep_time)

        self._last_request_time = time.monotonic()

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._client.aclose()
        log.info("HTTP client closed")

    async def __aenter__(self) -> "HttpClientService":
        return self

    async def __aexit__(self, exc_type: type[Exception] | None, exc_val: Exception | None, exc_tb: Any) -> None:
        await self.close()
