from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from x_influx.parsing.types import RejectRow

RunStatus = Literal["succeeded", "failed"]

MAX_REJECT_SAMPLES = 5      # first few offending rows kept for the report

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USAGE = 2
EXIT_FAILURE_RATE = 3


@dataclass
class FileSummary:
    """Schema for all summary data that will be recorded for one input."""
    input_path: str
    status: RunStatus = "succeeded"
    total: int = 0                  # data rows read
    built: int = 0                  # rows that became points
    rejected: int = 0               # rows skipped with a per-row error
    written: int = 0                # points accepted by the server
    lost: int = 0                   # points in batches that failed every attempt
    batches: int = 0
    failed_batches: int = 0
    reject_samples: list[RejectRow] = field(default_factory=list)
    error: str | None = None        # fatal error, when status is failed

    def record_reject(self, reject: RejectRow) -> None:
        self.rejected += 1
        if len(self.reject_samples) < MAX_REJECT_SAMPLES:
            self.reject_samples.append(reject)

    @property
    def failure_rate(self) -> float:
        """Share of rows that did not reach the database: rejected rows plus lost points."""
        if self.total == 0:
            return 0.0
        return (self.rejected + self.lost) / self.total

    def render_one_line(self) -> str:
        """How each line of summary is formatted for the terminal."""
        if self.status == "failed":
            return f"{self.input_path}: failed: {self.error}"
        return (
            f"{self.input_path}: total={self.total} written={self.written} rejected={self.rejected} "
            f"lost={self.lost} batches={self.batches} failed_batches={self.failed_batches}"
        )

    def render_rejects(self) -> list[str]:
        """The first few rejected rows, plus a count of the ones not shown."""
        out = [f"  {r.render()}" for r in self.reject_samples]
        hidden = self.rejected - len(self.reject_samples)
        if hidden > 0:
            out.append(f"  ... and {hidden} more rejected row(s)")
        return out


@dataclass
class RunSummary:
    """Per-file summaries of one invocation, in input order."""
    files: list[FileSummary] = field(default_factory=list)

    @property
    def failed_files(self) -> list[FileSummary]:
        return [f for f in self.files if f.status == "failed"]

    @property
    def total(self) -> int:
        return sum(f.total for f in self.files)

    @property
    def written(self) -> int:
        return sum(f.written for f in self.files)

    @property
    def rejected(self) -> int:
        return sum(f.rejected for f in self.files)

    @property
    def lost(self) -> int:
        return sum(f.lost for f in self.files)

    def exit_code(self, max_failure_rate: float | None = None) -> int:
        """
        Exit status policy:
        - `1` if any file failed fatally (configuration, unreadable file),
        - `3` if `max_failure_rate` is set and any file's failure rate exceeds it,
        - `0` otherwise; per-row and per-batch failures alone do not fail the run.
        """
        if self.failed_files:
            return EXIT_FATAL
        if max_failure_rate is not None and any(f.failure_rate > max_failure_rate for f in self.files):
            return EXIT_FAILURE_RATE
        return EXIT_OK

    def render_one_line(self) -> str:
        return (
            f"{len(self.files)} file(s): total={self.total} written={self.written} "
            f"rejected={self.rejected} lost={self.lost} failed_files={len(self.failed_files)}"
        )
