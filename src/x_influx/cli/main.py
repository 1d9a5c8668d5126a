from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from x_influx.cli.importer import import_files, import_interactive
from x_influx.config import (
    DEFAULT_BATCH_BYTES,
    DEFAULT_BATCH_POINTS,
    DEFAULT_SERIES,
    DEFAULT_TIME_FORMAT,
    BatchSettings,
    ConnectionSettings,
    CsvSettings,
    ImportConfig,
    MappingSettings,
)
from x_influx.errors import XInfluxError
from x_influx.ingest.summary import EXIT_FATAL, EXIT_USAGE
from x_influx.write.transport import connect

VERSION = "0.6.0"

VERSION_TEXT = f"""x-influx {VERSION}
A simple cli tool to import data into influxdb.
This program comes with ABSOLUTELY NO WARRANTY;
This is free software, and you are welcome to redistribute it
under certain conditions; see LICENSE file for details."""

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _common_options() -> argparse.ArgumentParser:
    """Options shared by every command."""
    c = argparse.ArgumentParser(add_help=False)

    c.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging.")

    db = c.add_argument_group("database")
    # `None` falls back to INFLUX_* environment variables, then built-in defaults.
    db.add_argument("-u", "--user", default=None, help="Username for influxdb [env INFLUX_USER, default: test].")
    db.add_argument("-p", "--password", default=None, help="Password for influxdb [env INFLUX_PASSWORD].")
    db.add_argument("-d", "--database", default=None, help="Influx database [env INFLUX_DATABASE, default: test].")
    db.add_argument("-s", "--server", default=None, help="The influxdb server [env INFLUX_SERVER, default: http://localhost:8086].")
    db.add_argument("--timeout", type=float, default=10.0, help="Seconds per write attempt [default: 10].")

    m = c.add_argument_group("mapping")
    m.add_argument("-S", "--series", default=DEFAULT_SERIES, help="Name of the measurement series [default: series].")
    m.add_argument("-m", "--measure", default=None, help="Column (name or index) of the measured value. Default: every column not used as tag or time.")
    m.add_argument("-t", "--tags", default="", help="Comma separated list of tag columns.")
    m.add_argument("-T", "--time", default=None, help="Name of the timestamp column. Default: submission time.")
    m.add_argument("-f", "--format", default=DEFAULT_TIME_FORMAT, help="The strftime-style timestamp format [default: %%F %%H:%%M:%%S].")

    f = c.add_argument_group("csv")
    f.add_argument("-D", "--delimiter", default=",", help="Use another csv delimiter [default: ,].")
    f.add_argument("--skip-rows", type=int, default=0, help="Remove first NUM lines from file [default: 0].")
    f.add_argument("--no-header", action="store_true", help="Input has no header row; columns are referenced by index.")

    b = c.add_argument_group("batching")
    b.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_POINTS, help="Max points per write request.")
    b.add_argument("--batch-bytes", type=int, default=DEFAULT_BATCH_BYTES, help="Max bytes per write request.")
    b.add_argument("--retries", type=int, default=3, help="Attempts per batch before it is given up [default: 3].")
    b.add_argument("--integer-suffix", action="store_true", help="Write integers as line-protocol integers (`42i`).")
    return c


def build_parser() -> argparse.ArgumentParser:
    common = _common_options()

    p = argparse.ArgumentParser(prog="x-influx", description="Import CSV data into influxdb.")
    p.add_argument("-V", "--version", action="version", version=VERSION_TEXT)
    sub = p.add_subparsers(dest="cmd", required=True)

    # import cmd
    imp = sub.add_parser("import", parents=[common], help="Import one or more CSV files.")
    imp.add_argument("files", nargs="+", help="Path(s) to input CSV file(s).")
    imp.add_argument("--workers", type=int, default=1, help="Files imported in parallel [default: 1].")
    imp.add_argument(
        "--max-failure-rate",
        type=float,
        default=None,
        help="Exit with status 3 when a file's share of rejected rows and lost points exceeds RATE (0..1).",
    )

    # interactive cmd
    sub.add_parser("interactive", aliases=["i"], parents=[common], help="Type a single record by hand.")

    # batch cmd (reserved)
    sub.add_parser("batch", parents=[common], help="Reserved, not implemented.")

    return p


def config_from_args(args: argparse.Namespace) -> ImportConfig:
    """One immutable config for the whole invocation."""
    return ImportConfig(
        connection=ConnectionSettings.from_env(
            server=args.server,
            database=args.database,
            user=args.user,
            password=args.password,
            timeout=args.timeout,
        ),
        mapping=MappingSettings(
            series=args.series,
            measure=args.measure,
            tags=args.tags,
            time=args.time,
            time_format=args.format,
        ),
        csv=CsvSettings(delimiter="\t" if args.delimiter == r"\t" else args.delimiter, skip_rows=args.skip_rows, has_header=not args.no_header),
        batch=BatchSettings(
            max_points=args.batch_size,
            max_bytes=args.batch_bytes,
            max_attempts=args.retries,
            integer_suffix=args.integer_suffix,
        ),
    )


def main(argv: list[str] | None = None) -> int:
    """
    A CLI for importing delimited records into influxdb.

    The `cmd` options are:
    ## import:
    Converts every row of the given CSV file(s) into a point and writes them in batches.
    - `x-influx import -S power -m "P in kW" -T timestamp -f "%d.%m.%Y %R" -D ";" data.csv`

    A results summary (and the first rejected rows) prints in the terminal upon completion.

    ## interactive (or `i`):
    Prompts for one record (value, time, tags) and writes it. Any failure is fatal.

    ## batch:
    Reserved for a future mode; exits with status 2.
    """
    p = build_parser()
    args = p.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT)

    if args.cmd == "batch":
        print("x-influx: batch mode is not implemented", file=sys.stderr)
        return EXIT_USAGE

    for name in ("batch_size", "batch_bytes", "retries"):
        if getattr(args, name) < 1:
            p.error(f"--{name.replace('_', '-')} must be >= 1")
    config = config_from_args(args)

    if args.cmd == "import":
        run = import_files(
            config,
            [Path(f) for f in args.files],
            lambda: connect(config.connection),
            workers=args.workers,
        )
        for f in run.files:
            print(f.render_one_line())
            for line in f.render_rejects():
                print(line)
        if len(run.files) > 1:
            print(run.render_one_line())
        return run.exit_code(args.max_failure_rate)

    if args.cmd in ("interactive", "i"):
        print("Interactive mode...")
        try:
            with connect(config.connection) as transport:
                summary = import_interactive(config, transport)
        except (XInfluxError, EOFError) as e:
            print(f"x-influx: {str(e) or 'no input'}", file=sys.stderr)
            return EXIT_FATAL
        print(summary.render_one_line())
        return 0

    return EXIT_USAGE
