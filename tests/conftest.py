from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import httpx
import pytest

from x_influx.errors import TransportError


def _find_repo_root(start: Path) -> Path:
    marker = "pyproject.toml"
    cur = start.resolve()
    for p in (cur, *cur.parents):
        if (p / marker).exists():
            return p
    raise RuntimeError(f"Could not find repo root from: {start}")


@pytest.fixture(scope="session")
def repo_root() -> Path:
    """The absolute path to the repo root (finds by walking up to `pyproject.toml`)."""
    return _find_repo_root(Path(__file__))


@dataclass
class FakeTransport:
    """
    In-memory transport. Records every body it is handed.

    `fail_times` makes the first N writes raise `TransportError`;
    `always_fail` makes every write raise.
    """
    fail_times: int = 0
    always_fail: bool = False
    bodies: list[str] = field(default_factory=list)
    attempts: int = 0
    closed: bool = False

    def write(self, body: str) -> None:
        self.attempts += 1
        if self.always_fail or self.attempts <= self.fail_times:
            raise TransportError(f"boom #{self.attempts}", status_code=500)
        self.bodies.append(body)

    @property
    def lines(self) -> list[str]:
        return [line for body in self.bodies for line in body.split("\n")]

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def transport() -> FakeTransport:
    """A transport that accepts every write."""
    return FakeTransport()


@pytest.fixture()
def make_transport() -> Callable[..., FakeTransport]:
    """Factory for transports with scripted failures."""
    return FakeTransport


@pytest.fixture()
def no_sleep() -> Callable[[float], None]:
    """Backoff without waiting."""
    def _sleep(seconds: float) -> None:
        return None
    return _sleep


@pytest.fixture()
def write_csv(tmp_path: Path) -> Callable[..., Path]:
    """Write `text` to a CSV file under `tmp_path` and return its path."""
    def _write(text: str, name: str = "data.csv") -> Path:
        p = tmp_path / name
        p.write_text(text, encoding="utf-8")
        return p
    return _write


@pytest.fixture()
def mock_influx() -> tuple[list[httpx.Request], Callable[[int], httpx.Client]]:
    """
    `(requests, make_client)`: `make_client(status)` returns an `httpx.Client`
    whose every request is recorded in `requests` and answered with `status`.
    """
    requests: list[httpx.Request] = []

    def make_client(status: int = 204) -> httpx.Client:
        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(status, text="" if status < 300 else '{"error":"bad"}')
        return httpx.Client(transport=httpx.MockTransport(handler))

    return requests, make_client
