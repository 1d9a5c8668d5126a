from __future__ import annotations

import pytest

from x_influx.config import MappingSettings
from x_influx.errors import EmptyPointError, RejectCode, RowShapeError, TimestampParseError
from x_influx.parsing.columns import resolve_columns
from x_influx.parsing.points import Point, PointBuilder
from x_influx.parsing.types import RawRow
from x_influx.parsing.values import Float, Integer, Text

JAN1_10H = 1_514_800_800 * 1_000_000_000


def _builder(header: tuple[str, ...], **settings: str) -> PointBuilder:
    return PointBuilder(resolve_columns(MappingSettings(**settings), header=header))


def _row(*values: str, n: int = 1) -> RawRow:
    return RawRow(source_row=n, values=values)


def test_sensor_row_to_line() -> None:
    """time=col0, tags=[col1], fields=[col2] with the default format."""
    b = _builder(("col0", "col1", "col2"), series="series", tags="col1", time="col0")
    point = b.build(_row("2018-01-01 10:00:00", "sensorA", "23.5"))

    assert point.tags == {"col1": "sensorA"}
    assert point.fields == {"col2": Float(23.5)}
    assert point.timestamp == JAN1_10H
    assert point.to_line() == f"series,col1=sensorA col2=23.5 {JAN1_10H}"


def test_malformed_timestamp_rejects_row() -> None:
    b = _builder(("col0", "col1", "col2"), tags="col1", time="col0")
    with pytest.raises(TimestampParseError) as e:
        b.build(_row("not-a-date", "sensorA", "23.5", n=7))
    assert e.value.code is RejectCode.invalid_timestamp
    assert e.value.source_row == 7


def test_tags_are_text_and_not_type_inferred() -> None:
    """Numeric-looking tag values stay strings."""
    b = _builder(("plz", "value"), tags="plz")
    point = b.build(_row("01067", "3"))
    assert point.tags == {"plz": "01067"}
    assert point.fields == {"value": Integer(3)}


def test_empty_tag_is_dropped() -> None:
    b = _builder(("a", "b", "value"), tags="a,b")
    point = b.build(_row("", "x", "1"))
    assert point.tags == {"b": "x"}


def test_empty_field_next_to_a_value_is_empty_text() -> None:
    """Only all-empty rows are rejected; a single empty value is still a field."""
    b = _builder(("a", "b"))
    point = b.build(_row("1.5", ""))
    assert point.fields == {"a": Float(1.5), "b": Text("")}
    assert point.to_line() == 'series a=1.5,b=""'


def test_all_empty_fields_raise_empty_point() -> None:
    b = _builder(("tag", "a", "b"), tags="tag")
    with pytest.raises(EmptyPointError) as e:
        b.build(_row("x", "", ""))
    assert e.value.code is RejectCode.empty_point


def test_fields_keep_column_order_and_tags_sort_by_key() -> None:
    """Serialized tags are lexicographic regardless of input column order."""
    b = _builder(("zone", "b_field", "area", "a_field"), tags="zone,area")
    point = b.build(_row("z1", "2", "north", "1"))
    assert point.to_line() == "series,area=north,zone=z1 b_field=2,a_field=1"


def test_headerless_keys() -> None:
    """Without a header, keys are `column_<index>`."""
    pb = PointBuilder(resolve_columns(MappingSettings(tags="0"), header=None, width=2))
    assert pb.build(_row("x", "true")).to_line() == "series,column_0=x column_1=true"


def test_short_rows_are_padded_and_long_rows_rejected() -> None:
    b = _builder(("a", "b", "c"))
    assert b.build(_row("1")).fields == {"a": Integer(1), "b": Text(""), "c": Text("")}
    with pytest.raises(RowShapeError):
        b.build(_row("1", "2", "3", "4"))


def test_try_build_returns_the_error() -> None:
    b = _builder(("a",))
    res = b.try_build(_row(""))
    assert isinstance(res, EmptyPointError)


def test_line_escaping() -> None:
    """Reserved characters in names and tag values are escaped."""
    b = _builder(("site name", "reading"), series="my series", tags="site name")
    line = b.build(_row("a,b=c", "hello world")).to_line()
    assert line == r'my\ series,site\ name=a\,b\=c reading="hello world"'


def test_default_timestamp_and_no_timestamp() -> None:
    p = Point(series="s", fields={"v": Integer(1)})
    assert p.to_line() == "s v=1"
    assert p.to_line(default_timestamp=5) == "s v=1 5"
    assert Point(series="s", fields={"v": Integer(1)}, timestamp=3).to_line(default_timestamp=5) == "s v=1 3"


def test_point_invariants() -> None:
    with pytest.raises(EmptyPointError):
        Point(series="s", fields={})
    with pytest.raises(ValueError):
        Point(series="s", fields={"k": Integer(1)}, tags={"k": "x"})


def _split_unescaped(s: str, sep: str) -> list[str]:
    out, cur, esc = [], "", False
    for ch in s:
        if esc:
            cur += ch
            esc = False
        elif ch == "\\":
            cur += ch
            esc = True
        elif ch == sep:
            out.append(cur)
            cur = ""
        else:
            cur += ch
    out.append(cur)
    return out


def test_serialized_keys_round_trip() -> None:
    """Re-parsing the tag and field sections gives back the point's keys."""
    b = _builder(("t b", "t,a", "f=1", "f2"), tags="0,1")
    point = b.build(_row("x y", "1,2", "3.5", "on"))
    series_tags, fields, *_ = _split_unescaped(point.to_line(), " ")
    tag_pairs = _split_unescaped(series_tags, ",")[1:]
    field_pairs = _split_unescaped(fields, ",")

    def unescape(s: str) -> str:
        return s.replace("\\ ", " ").replace("\\,", ",").replace("\\=", "=")

    tags = dict(tuple(unescape(x) for x in _split_unescaped(p, "=")) for p in tag_pairs)
    field_keys = [unescape(_split_unescaped(p, "=")[0]) for p in field_pairs]

    assert tags == dict(point.tags)
    assert field_keys == list(point.fields)
