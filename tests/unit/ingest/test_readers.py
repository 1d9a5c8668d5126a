from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from x_influx.config import CsvSettings, MappingSettings
from x_influx.errors import ConfigurationError
from x_influx.ingest.readers import CsvRowSource, read_interactive_row, split_rows


def test_skip_rows_without_header_passes_the_rest_in_order() -> None:
    """N=2 over a 5-row source: exactly 3 rows, in source order."""
    records = [["r1"], ["r2"], ["r3"], ["r4"], ["r5"]]
    rows = split_rows(records, skip_rows=2, has_header=False)

    got = list(rows.rows)
    assert [r.values for r in got] == [("r3",), ("r4",), ("r5",)]
    assert [r.source_row for r in got] == [1, 2, 3]
    assert rows.header is None
    assert rows.width == 1


def test_skip_rows_then_header() -> None:
    """Skipped rows come before the header."""
    records = [["junk"], ["a", "b"], ["1", "2"]]
    rows = split_rows(records, skip_rows=1)
    assert rows.header == ("a", "b")
    assert [r.values for r in rows.rows] == [("1", "2")]


def test_zero_skip_is_a_noop_and_blank_records_are_ignored() -> None:
    rows = split_rows([["a"], [], ["1"], [], ["2"]])
    assert [r.values for r in rows.rows] == [("1",), ("2",)]


def test_missing_header_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        split_rows([["a"]], skip_rows=3)


def test_empty_headerless_input() -> None:
    rows = split_rows([], has_header=False)
    assert rows.width == 0
    assert list(rows.rows) == []


def test_csv_row_source_reads_a_file(write_csv: Callable[..., Path]) -> None:
    """Delimiter and quoting come from the csv reader."""
    path = write_csv('timestamp;Profilwert kWh;Status\n01.01.2016 00:15;108;"a;b"\n')
    with CsvRowSource(path, CsvSettings(delimiter=";")) as rows:
        assert rows.header == ("timestamp", "Profilwert kWh", "Status")
        got = list(rows.rows)
    assert got[0].values == ("01.01.2016 00:15", "108", "a;b")


@pytest.mark.parametrize("settings", [CsvSettings(delimiter=";;"), CsvSettings(delimiter=""), CsvSettings(skip_rows=-1)])
def test_invalid_csv_settings(settings: CsvSettings) -> None:
    with pytest.raises(ConfigurationError):
        CsvRowSource(Path("unused.csv"), settings)


def test_interactive_row_prompts_for_each_role() -> None:
    """Measure, time and every tag are asked for, in that order."""
    answers = iter(["23.5", "2018-01-01 10:00:00", "sensorA", " hall 1 "])
    asked: list[str] = []

    def prompt(msg: str) -> str:
        asked.append(msg)
        return next(answers)

    settings = MappingSettings(measure="temp", time="ts", tags="sensor,hall")
    rows = read_interactive_row(settings, prompt)

    assert rows.header == ("temp", "ts", "sensor", "hall")
    assert [r.values for r in rows.rows] == [("23.5", "2018-01-01 10:00:00", "sensorA", "hall 1")]
    assert asked[0] == "Measurement [temp]: "
    assert asked[1] == "Time [ts][%F %H:%M:%S]: "


def test_interactive_row_without_time_or_measure() -> None:
    rows = read_interactive_row(MappingSettings(), lambda msg: "1")
    assert rows.header == ("value",)
    assert [r.values for r in rows.rows] == [("1",)]
