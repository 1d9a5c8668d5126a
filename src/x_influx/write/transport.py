from __future__ import annotations

import logging
from typing import Protocol

import httpx

from x_influx.config import ConnectionSettings
from x_influx.errors import TransportError

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Anything that can deliver one write-request body. Raises `TransportError` on failure."""
    def write(self, body: str) -> None: ...


class InfluxHttpTransport:
    """
    Client for the InfluxDB 1.x `/write` endpoint (line protocol over HTTP).

    Example:
        >>> with InfluxHttpTransport("http://localhost:8086", database="test") as t:
        ...     t.write("series value=1 1514800800000000000")
    """

    def __init__(
        self,
        server: str,
        *,
        database: str,
        user: str = "",
        password: str = "",
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.server = server.rstrip("/")
        self.database = database
        self.user = user
        self.password = password
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def url(self) -> str:
        return f"{self.server}/write"

    def _params(self) -> dict[str, str]:
        return {"db": self.database, "u": self.user, "p": self.password}

    def write(self, body: str) -> None:
        """POST one batch body. Any non-2xx status, connection error or timeout is a `TransportError`."""
        try:
            response = self._client.post(
                self.url,
                params=self._params(),
                content=body.encode("utf-8"),
                headers={"Content-Type": "text/plain; charset=utf-8"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"write timed out after {self.timeout}s: {e}") from e
        except httpx.RequestError as e:
            raise TransportError(f"write request failed: {e}") from e

        if not response.is_success:
            raise TransportError(
                f"write failed (HTTP {response.status_code}): {response.text.strip()}",
                status_code=response.status_code,
            )
        logger.debug("wrote %d bytes to %s (HTTP %d)", len(body), self.url, response.status_code)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "InfluxHttpTransport":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def connect(settings: ConnectionSettings, *, client: httpx.Client | None = None) -> InfluxHttpTransport:
    """Return an HTTP transport for `settings`. Closing it is the caller's job."""
    return InfluxHttpTransport(
        settings.server,
        database=settings.database,
        user=settings.user,
        password=settings.password,
        timeout=settings.timeout,
        client=client,
    )
