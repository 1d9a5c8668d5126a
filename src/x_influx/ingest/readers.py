from __future__ import annotations

import csv
import itertools
import logging
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Callable, IO, Iterable, Iterator, Sequence

from x_influx.config import CsvSettings, MappingSettings
from x_influx.errors import ConfigurationError
from x_influx.parsing.types import RawRow

logger = logging.getLogger(__name__)

Prompt = Callable[[str], str]


@dataclass(frozen=True)
class RowSet:
    """An input's header (if any), its column count, and its data rows in order."""
    header: tuple[str, ...] | None
    width: int
    rows: Iterator[RawRow]


def validate_csv_settings(settings: CsvSettings) -> None:
    """Raise `ConfigurationError` for a delimiter/skip combination that cannot be read."""
    problems: list[str] = []
    if len(settings.delimiter) != 1:
        problems.append(f"delimiter must be a single character, got {settings.delimiter!r}")
    if settings.skip_rows < 0:
        problems.append(f"skip rows must be >= 0, got {settings.skip_rows}")
    if problems:
        raise ConfigurationError(problems)


def split_rows(records: Iterable[Sequence[str]], *, skip_rows: int = 0, has_header: bool = True) -> RowSet:
    """
    Turn tokenized records into a `RowSet`.

    - The first `skip_rows` records are discarded (`0` is a no-op).
    - Then the header is taken, if `has_header`.
    - Blank records are ignored.

    `source_row` is 1-based for the first real data row encountered, header and
    skipped rows are not counted. Without a header the width comes from the
    first data row.
    """
    it = iter(records)
    remaining = (tuple(r) for r in itertools.islice(it, skip_rows, None))
    remaining = (r for r in remaining if r)       # blank lines

    header: tuple[str, ...] | None = None
    if has_header:
        header = next(remaining, None)
        if header is None:
            raise ConfigurationError([f"no header row found after skipping {skip_rows} row(s)"])
        width = len(header)
    else:
        first = next(remaining, None)
        if first is None:
            return RowSet(header=None, width=0, rows=iter(()))
        width = len(first)
        remaining = itertools.chain([first], remaining)

    def _rows() -> Iterator[RawRow]:
        for i, values in enumerate(remaining, start=1):
            yield RawRow(source_row=i, values=values)

    return RowSet(header=header, width=width, rows=_rows())


class CsvRowSource:
    """
    Row Source over one delimited file.

    Use as a context manager: entering opens the file and reads the header,
    leaving closes it.

    >>> with CsvRowSource(Path("data.csv"), CsvSettings(delimiter=";")) as rows:
    ...     for row in rows.rows:
    ...         ...
    """

    def __init__(self, path: Path, settings: CsvSettings, *, encoding: str = "utf-8") -> None:
        validate_csv_settings(settings)
        self.path = path
        self.settings = settings
        self.encoding = encoding
        self._fh: IO[str] | None = None

    def __enter__(self) -> RowSet:
        self._fh = self.path.open("r", encoding=self.encoding, newline="")
        try:
            reader = csv.reader(self._fh, delimiter=self.settings.delimiter)
            rows = split_rows(reader, skip_rows=self.settings.skip_rows, has_header=self.settings.has_header)
        except BaseException:
            self.close()
            raise
        logger.debug("%s: header=%r width=%d", self.path, rows.header, rows.width)
        return rows

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None


def read_interactive_row(settings: MappingSettings, prompt: Prompt = input) -> RowSet:
    """
    Build exactly one record from operator input.

    The operator is asked for the measured value, the time (when a time column
    is configured) and each tag. The answers get a synthetic header made of the
    configured names, so the mapping resolves the same way as for a file.
    """
    measure = settings.measure or "value"
    header: list[str] = [measure]
    values: list[str] = [prompt(f"Measurement [{measure}]: ").strip()]

    if settings.time:
        header.append(settings.time)
        values.append(prompt(f"Time [{settings.time}][{settings.time_format}]: ").strip())

    for tag in settings.tag_list():
        header.append(tag)
        values.append(prompt(f"Tag [{tag}]: ").strip())

    row = RawRow(source_row=1, values=tuple(values))
    return RowSet(header=tuple(header), width=len(header), rows=iter([row]))
