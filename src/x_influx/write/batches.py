from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable

from x_influx.config import BatchSettings
from x_influx.errors import BatchFailedError, TransportError
from x_influx.parsing.points import Point
from x_influx.parsing.timestamps import now_ns
from .transport import Transport

logger = logging.getLogger(__name__)

# a space plus 19 digits, appended at submission to points without a timestamp.
_TIMESTAMP_BYTES = 20


class BatchState(str, Enum):
    """Lifecycle of one batch submission."""
    pending = "pending"
    submitting = "submitting"
    retry_wait = "retry_wait"
    done = "done"
    failed = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded attempts with exponential backoff between them."""
    max_attempts: int = 3
    backoff_seconds: float = 0.5
    multiplier: float = 2.0
    max_backoff_seconds: float = 5.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed `attempt` (1-based)."""
        return min(self.backoff_seconds * self.multiplier ** (attempt - 1), self.max_backoff_seconds)


@dataclass
class Batch:
    """Serialized points awaiting submission, bounded by point count and bytes."""
    max_points: int
    max_bytes: int
    lines: list[str] = field(default_factory=list)
    stamp_later: list[bool] = field(default_factory=list)    # line needs the submission timestamp
    size_bytes: int = 0

    def __len__(self) -> int:
        return len(self.lines)

    @staticmethod
    def line_bytes(line: str, stamp_later: bool) -> int:
        return len(line.encode("utf-8")) + (_TIMESTAMP_BYTES if stamp_later else 0) + 1

    def fits(self, line: str, stamp_later: bool) -> bool:
        """An empty batch takes any line, so an oversized line travels alone."""
        if not self.lines:
            return True
        return (
            len(self.lines) < self.max_points
            and self.size_bytes + self.line_bytes(line, stamp_later) <= self.max_bytes
        )

    @property
    def full(self) -> bool:
        return len(self.lines) >= self.max_points or self.size_bytes >= self.max_bytes

    def append(self, line: str, stamp_later: bool) -> None:
        self.lines.append(line)
        self.stamp_later.append(stamp_later)
        self.size_bytes += self.line_bytes(line, stamp_later)

    def body(self, timestamp: int) -> str:
        """Newline-joined lines, unstamped ones stamped with `timestamp`."""
        return "\n".join(
            f"{line} {timestamp:d}" if later else line for line, later in zip(self.lines, self.stamp_later)
        )

    def clear(self) -> None:
        self.lines.clear()
        self.stamp_later.clear()
        self.size_bytes = 0


@dataclass(frozen=True)
class BatchResult:
    """Outcome of one batch: `done` or `failed`, with the attempts it took."""
    index: int
    points: int
    attempts: int
    state: BatchState
    error: str | None = None


class BatchSubmission:
    """
    Drive one batch body through its state machine:

    `pending -> submitting -> (done | retry_wait -> submitting ... | failed)`

    The body is fixed at construction, so every attempt sends the same bytes.
    """

    def __init__(
        self,
        body: str,
        *,
        transport: Transport,
        retry: RetryPolicy,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.body = body
        self.transport = transport
        self.retry = retry
        self.sleep = sleep
        self.state = BatchState.pending
        self.attempts = 0
        self.last_error: TransportError | None = None

    def run(self) -> BatchState:
        if self.state is not BatchState.pending:
            raise RuntimeError(f"batch already {self.state.value}")

        while True:
            self.state = BatchState.submitting
            self.attempts += 1
            try:
                self.transport.write(self.body)
            except TransportError as e:
                self.last_error = e
                if self.attempts >= self.retry.max_attempts:
                    self.state = BatchState.failed
                    return self.state
                delay = self.retry.delay(self.attempts)
                logger.warning(
                    "write failed (attempt %d/%d), retrying in %.2fs: %s",
                    self.attempts, self.retry.max_attempts, delay, e,
                )
                self.state = BatchState.retry_wait
                self.sleep(delay)
                continue

            self.state = BatchState.done
            return self.state


class BatchSubmitter:
    """
    Group points into bounded batches and submit each one.

    - `add()` submits the current batch as soon as it is full.
    - `flush()` submits whatever is left.
    - A batch that exhausts its attempts is recorded as failed and the next
      batch goes on, unless `fail_fast` is set, which raises `BatchFailedError`.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        max_points: int = 5000,
        max_bytes: int = 1024 * 1024,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], int] = now_ns,
        integer_suffix: bool = False,
        fail_fast: bool = False,
    ) -> None:
        if max_points < 1 or max_bytes < 1:
            raise ValueError("batch bounds must be positive")
        self.transport = transport
        self.retry = retry or RetryPolicy()
        self.sleep = sleep
        self.clock = clock
        self.integer_suffix = integer_suffix
        self.fail_fast = fail_fast
        self._batch = Batch(max_points=max_points, max_bytes=max_bytes)
        self.results: list[BatchResult] = []

    @classmethod
    def from_settings(cls, transport: Transport, settings: BatchSettings, **kwargs: object) -> "BatchSubmitter":
        return cls(
            transport,
            max_points=settings.max_points,
            max_bytes=settings.max_bytes,
            retry=RetryPolicy(max_attempts=settings.max_attempts, backoff_seconds=settings.backoff_seconds),
            integer_suffix=settings.integer_suffix,
            **kwargs,  # type: ignore[arg-type]
        )

    ## -- counters

    @property
    def points_written(self) -> int:
        return sum(r.points for r in self.results if r.state is BatchState.done)

    @property
    def points_lost(self) -> int:
        return sum(r.points for r in self.results if r.state is BatchState.failed)

    @property
    def batches_failed(self) -> int:
        return sum(1 for r in self.results if r.state is BatchState.failed)

    @property
    def pending(self) -> int:
        """Points waiting in the current, not yet submitted batch."""
        return len(self._batch)

    ## -- feeding

    def add(self, point: Point) -> None:
        line = point.to_line(integer_suffix=self.integer_suffix)
        stamp_later = point.timestamp is None

        if not self._batch.fits(line, stamp_later):
            self._submit()
        self._batch.append(line, stamp_later)
        if self._batch.full:
            self._submit()

    def flush(self) -> None:
        """Submit the partially filled final batch, if any."""
        if self._batch.lines:
            self._submit()

    def submit_all(self, points: Iterable[Point]) -> list[BatchResult]:
        """Consume `points` lazily, then flush. Returns every batch result so far."""
        for p in points:
            self.add(p)
        self.flush()
        return self.results

    def _submit(self) -> None:
        # one instant per submission call keeps a batch internally consistent.
        body = self._batch.body(self.clock())
        n = len(self._batch)
        submission = BatchSubmission(body, transport=self.transport, retry=self.retry, sleep=self.sleep)
        state = submission.run()

        index = len(self.results)
        error = str(submission.last_error) if state is BatchState.failed else None
        self.results.append(
            BatchResult(index=index, points=n, attempts=submission.attempts, state=state, error=error)
        )
        # discarded on success and on terminal failure alike.
        self._batch.clear()

        if state is BatchState.done:
            logger.debug("batch %d: %d point(s) written in %d attempt(s)", index, n, submission.attempts)
            return

        logger.error("batch %d: %d point(s) lost after %d attempt(s): %s", index, n, submission.attempts, error)
        if self.fail_fast:
            assert submission.last_error is not None
            raise BatchFailedError(submission.attempts, submission.last_error)
