from __future__ import annotations

import concurrent.futures as cf
import csv
import logging
import time
from pathlib import Path
from typing import Callable, Iterator, Sequence

from x_influx.config import ImportConfig
from x_influx.errors import ConfigurationError, RowError
from x_influx.ingest.readers import CsvRowSource, Prompt, RowSet, read_interactive_row
from x_influx.ingest.summary import FileSummary, RunSummary
from x_influx.parsing.columns import ColumnMapping, resolve_columns
from x_influx.parsing.points import Point, PointBuilder
from x_influx.parsing.types import RejectRow
from x_influx.write.batches import BatchSubmitter
from x_influx.write.transport import Transport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[], Transport]
Sleep = Callable[[float], None]


def _close(transport: Transport) -> None:
    close = getattr(transport, "close", None)
    if callable(close):
        close()


def _resolve(config: ImportConfig, rows: RowSet) -> ColumnMapping | None:
    """Mapping for `rows`, or `None` for a header-less input with no rows at all."""
    if rows.header is None and rows.width == 0:
        return None
    return resolve_columns(config.mapping, header=rows.header, width=rows.width)


def _points(rows: RowSet, builder: PointBuilder, summary: FileSummary) -> Iterator[Point]:
    """Build points lazily; failed rows are recorded on `summary` and skipped."""
    for row in rows.rows:
        summary.total += 1
        res = builder.try_build(row)
        if isinstance(res, RowError):
            summary.record_reject(RejectRow.from_error(row, res))
            logger.debug("row %d rejected: %s", row.source_row, res.detail)
            continue
        summary.built += 1
        yield res


def check_file(config: ImportConfig, path: Path) -> ColumnMapping | None:
    """
    Open `path` and resolve the mapping against its header, reading no data rows.

    Raises `ConfigurationError`, or `OSError`/`csv.Error`/`UnicodeDecodeError`
    for unreadable files.
    """
    with CsvRowSource(path, config.csv) as rows:
        return _resolve(config, rows)


def import_file(config: ImportConfig, path: Path, transport: Transport, *, sleep: Sleep = time.sleep) -> FileSummary:
    """
    End-to-end file import:
      - Open the file, skip rows, read the header,
      - Resolve the column mapping (fatal for this file on failure),
      - Build one point per row,
            - invalid rows -> recorded rejects, the row is skipped,
            - valid points -> bounded batches,
      - Submit batches with retries; a failed batch is recorded and the next one goes on,
      - Flush the final partial batch.

    Does not raise on invalid data or failed batches. Configuration and I/O
    problems end this file with `status="failed"`.
    """
    summary = FileSummary(input_path=str(path))
    submitter = BatchSubmitter.from_settings(transport, config.batch, sleep=sleep)

    try:
        with CsvRowSource(path, config.csv) as rows:
            mapping = _resolve(config, rows)
            if mapping is not None:
                submitter.submit_all(_points(rows, PointBuilder(mapping), summary))
    except (ConfigurationError, OSError, csv.Error, UnicodeDecodeError) as e:
        summary.status = "failed"
        summary.error = str(e)
        logger.error("%s: import failed: %s", path, e)

    summary.written = submitter.points_written
    summary.lost = submitter.points_lost
    summary.batches = len(submitter.results)
    summary.failed_batches = submitter.batches_failed
    logger.debug("%s", summary.render_one_line())
    return summary


def import_files(
    config: ImportConfig,
    paths: Sequence[Path],
    transport_factory: TransportFactory,
    *,
    workers: int = 1,
    sleep: Sleep = time.sleep,
) -> RunSummary:
    """
    Import every file as an independent pipeline.

    Every file's mapping is checked first; a configuration error in any file
    aborts the run before a single row is processed. Then files run in up to
    `workers` threads, each with its own transport. Summaries keep input order.
    """
    ## -- check every mapping up front
    problems: dict[int, str] = {}
    for i, path in enumerate(paths):
        try:
            check_file(config, path)
        except (ConfigurationError, OSError, csv.Error, UnicodeDecodeError) as e:
            problems[i] = str(e)
            logger.error("%s: %s", path, e)

    if problems:
        return RunSummary(files=[
            FileSummary(input_path=str(p), status="failed", error=problems[i]) if i in problems
            else FileSummary(input_path=str(p), status="failed", error="not imported, another file failed its checks")
            for i, p in enumerate(paths)
        ])

    def _run(path: Path) -> FileSummary:
        transport = transport_factory()
        try:
            return import_file(config, path, transport, sleep=sleep)
        finally:
            _close(transport)

    if workers <= 1 or len(paths) <= 1:
        return RunSummary(files=[_run(p) for p in paths])

    with cf.ThreadPoolExecutor(max_workers=workers) as ex:
        futs = [ex.submit(_run, p) for p in paths]
        return RunSummary(files=[f.result() for f in futs])


def import_interactive(
    config: ImportConfig,
    transport: Transport,
    *,
    prompt: Prompt = input,
    sleep: Sleep = time.sleep,
) -> FileSummary:
    """
    Import the single record typed by the operator.

    Every failure is terminal for the invocation and raised as is:
    `ConfigurationError`, a `RowError` subclass, or `BatchFailedError`.
    """
    rows = read_interactive_row(config.mapping, prompt)
    mapping = resolve_columns(config.mapping, header=rows.header, width=rows.width)
    builder = PointBuilder(mapping)

    summary = FileSummary(input_path="<interactive>")
    point = builder.build(next(rows.rows))
    summary.total = summary.built = 1

    submitter = BatchSubmitter.from_settings(transport, config.batch, sleep=sleep, fail_fast=True)
    submitter.submit_all([point])

    summary.written = submitter.points_written
    summary.batches = len(submitter.results)
    return summary
