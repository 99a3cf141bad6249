"""Timed HTTP GET execution on top of ``aiohttp``."""

from __future__ import annotations

import time
from dataclasses import dataclass

import aiohttp

from loadgate import __version__

_USER_AGENT = f"loadgate/{__version__}"


@dataclass(frozen=True)
class HttpResult:
    """Outcome of a single HTTP request.

    Attributes:
        url: Requested URL.
        status_code: HTTP status code, 0 if the request failed in transport.
        body_length: Response body size in bytes.
        elapsed_ms: Wall time from sending the request to reading the
            full body, in milliseconds.
        error: ``"<ExceptionType>: <message>"`` for transport errors,
            None otherwise.
    """

    url: str
    status_code: int
    body_length: int
    elapsed_ms: float
    error: str | None = None

    @property
    def failed(self) -> bool:
        """Return True for transport errors and 4xx/5xx responses."""
        return self.error is not None or self.status_code >= 400


class RequestExecutor:
    """Issues timed GET requests through one ``aiohttp.ClientSession``.

    Use as an async context manager; each virtual user owns one executor,
    and therefore its own connection pool. Transport failures are
    returned as data in :class:`HttpResult` rather than raised, and
    nothing is retried.
    """

    def __init__(
        self,
        *,
        timeout: float = 60.0,
        pool_size: int = 100,
        headers: dict[str, str] | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            timeout: Total per-request timeout in seconds.
            pool_size: Maximum simultaneous connections.
            headers: Extra headers sent with every request.
        """
        self.headers: dict[str, str] = {"User-Agent": _USER_AGENT, **(headers or {})}
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._pool_size = pool_size
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> RequestExecutor:
        """Open the underlying aiohttp session."""
        self._session = aiohttp.ClientSession(
            timeout=self._timeout,
            connector=aiohttp.TCPConnector(limit=self._pool_size),
            headers=self.headers,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        """Close the underlying aiohttp session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def get(self, url: str) -> HttpResult:
        """Send a GET request and read the whole response body.

        Args:
            url: Absolute URL to request.

        Returns:
            The timed result. Connection errors and timeouts produce a
            result with ``status_code == 0`` and ``error`` set.

        Raises:
            RuntimeError: If the executor is used outside of an async
                context manager.
        """
        if self._session is None:
            msg = "RequestExecutor must be used as an async context manager"
            raise RuntimeError(msg)

        status_code = 0
        body_length = 0
        error: str | None = None

        start = time.monotonic()
        try:
            async with self._session.get(url) as resp:
                body = await resp.read()
                status_code = resp.status
                body_length = len(body)
        except (aiohttp.ClientError, TimeoutError, OSError) as exc:
            error = f"{type(exc).__name__}: {exc}"
        elapsed_ms = (time.monotonic() - start) * 1000

        return HttpResult(
            url=url,
            status_code=status_code,
            body_length=body_length,
            elapsed_ms=elapsed_ms,
            error=error,
        )
