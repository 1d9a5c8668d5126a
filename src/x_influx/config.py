from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_SERVER = "http://localhost:8086"
DEFAULT_DATABASE = "test"
DEFAULT_USER = "test"
DEFAULT_PASSWORD = ""

DEFAULT_SERIES = "series"
DEFAULT_TIME_FORMAT = "%F %H:%M:%S"

DEFAULT_BATCH_POINTS = 5000             # config: increase or decrease.
DEFAULT_BATCH_BYTES = 1024 * 1024


@dataclass(frozen=True)
class ConnectionSettings:
    """Where and as whom points are written."""
    server: str = DEFAULT_SERVER
    database: str = DEFAULT_DATABASE
    user: str = DEFAULT_USER
    password: str = DEFAULT_PASSWORD
    timeout: float = 10.0                  # seconds, per attempt

    @classmethod
    def from_env(cls, **overrides: object) -> "ConnectionSettings":
        """
        Settings from `INFLUX_SERVER`, `INFLUX_DATABASE`, `INFLUX_USER` and `INFLUX_PASSWORD`.

        Any non-`None` keyword in `overrides` wins over the environment.
        """
        # will fetch from the env first and formost.
        values: dict[str, object] = {
            "server": os.getenv("INFLUX_SERVER", DEFAULT_SERVER),
            "database": os.getenv("INFLUX_DATABASE", DEFAULT_DATABASE),
            "user": os.getenv("INFLUX_USER", DEFAULT_USER),
            "password": os.getenv("INFLUX_PASSWORD", DEFAULT_PASSWORD),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)  # type: ignore[arg-type]


@dataclass(frozen=True)
class MappingSettings:
    """
    The user's column mapping, as typed (names or zero-based indexes).

    - `measure`: the single value column, or `None` to turn every unclaimed column into a field.
    - `tags`: comma separated list of tag columns.
    - `time`: the timestamp column, or `None` to stamp points at submission time.
    """
    series: str = DEFAULT_SERIES
    measure: str | None = None
    tags: str = ""
    time: str | None = None
    time_format: str = DEFAULT_TIME_FORMAT

    def tag_list(self) -> list[str]:
        """Tag references in configured order, blanks dropped."""
        return [t.strip() for t in self.tags.split(",") if t.strip()]


@dataclass(frozen=True)
class CsvSettings:
    """How a CSV file is tokenized before mapping."""
    delimiter: str = ","
    skip_rows: int = 0
    has_header: bool = True


@dataclass(frozen=True)
class BatchSettings:
    """Batch bounds and retry policy for submission."""
    max_points: int = DEFAULT_BATCH_POINTS
    max_bytes: int = DEFAULT_BATCH_BYTES
    max_attempts: int = 3
    backoff_seconds: float = 0.5
    integer_suffix: bool = False        # render integers as `42i` instead of float literals


@dataclass(frozen=True)
class ImportConfig:
    """Everything one invocation needs, passed explicitly through the pipeline."""
    connection: ConnectionSettings = field(default_factory=ConnectionSettings)
    mapping: MappingSettings = field(default_factory=MappingSettings)
    csv: CsvSettings = field(default_factory=CsvSettings)
    batch: BatchSettings = field(default_factory=BatchSettings)
