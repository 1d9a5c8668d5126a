from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping

from x_influx.errors import EmptyPointError, RowError, RowShapeError, TimestampParseError
from .columns import ColumnMapping
from .timestamps import resolve_timestamp
from .types import RawRow
from .values import TypedValue, escape_key, escape_measurement, escape_tag_value, infer_value, render_value

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Point:
    """
    One measurement event: series, tag set, field set and an optional timestamp (ns).

    A point without fields is invalid, and a key is never both a tag and a field.
    """
    series: str
    fields: Mapping[str, TypedValue]
    tags: Mapping[str, str] = field(default_factory=dict)
    timestamp: int | None = None

    def __post_init__(self) -> None:
        if not self.series:
            raise ValueError("point series must not be empty")
        if not self.fields:
            raise EmptyPointError("point has no field values")
        clash = sorted(set(self.tags) & set(self.fields))
        if clash:
            raise ValueError(f"keys used as both tag and field: {clash}")

    def to_line(self, *, default_timestamp: int | None = None, integer_suffix: bool = False) -> str:
        """
        Render as one line of line protocol: `series,tags fields [timestamp]`.

        Tags are sorted by key; fields keep discovery order. `default_timestamp`
        is used when the point carries none; without either the timestamp is
        left for the server to assign.
        """
        parts = [escape_measurement(self.series)]
        for k in sorted(self.tags):
            parts.append(f",{escape_key(k)}={escape_tag_value(self.tags[k])}")

        fields = ",".join(
            f"{escape_key(k)}={render_value(v, integer_suffix=integer_suffix)}" for k, v in self.fields.items()
        )
        line = f"{''.join(parts)} {fields}"

        ts = self.timestamp if self.timestamp is not None else default_timestamp
        if ts is not None:
            line += f" {ts:d}"
        return line


@dataclass(frozen=True, slots=True)
class PointBuilder:
    """
    Build exactly one `Point` per `RawRow`, or raise a `RowError`.

    Error order is always:
    - 1st: `malformed_row` (row wider than the header)
    - 2nd: `empty_point` (no non-empty field value)
    - 3rd: `invalid_timestamp`
    """
    mapping: ColumnMapping

    def build(self, row: RawRow) -> Point:
        m = self.mapping
        values = row.values
        if len(values) > m.width:
            raise RowShapeError(
                f"row has {len(values)} values, expected at most {m.width}", source_row=row.source_row
            )
        if len(values) < m.width:
            # missing trailing values are empty values.
            values = values + ("",) * (m.width - len(values))

        ## -- fields, in column order. A row needs at least one non-empty value.
        if all(values[i] == "" for i in m.value_columns):
            raise EmptyPointError("row has no non-empty field value", source_row=row.source_row)
        fields: dict[str, TypedValue] = {m.keys[i]: infer_value(values[i]) for i in m.value_columns}

        ## -- tags, configured order, always text; empty tags are dropped.
        tags: dict[str, str] = {}
        for i in m.tag_columns:
            if values[i] != "":
                tags[m.keys[i]] = values[i]

        timestamp: int | None = None
        if m.time_column is not None:
            try:
                timestamp = resolve_timestamp(values[m.time_column], m.time_format)
            except TimestampParseError as e:
                e.source_row = row.source_row
                raise

        point = Point(series=m.series, fields=fields, tags=tags, timestamp=timestamp)
        logger.debug("row %d -> %r", row.source_row, point)
        return point

    def try_build(self, row: RawRow) -> Point | RowError:
        """Either the point, or the per-row error that rejected it."""
        try:
            return self.build(row)
        except RowError as e:
            return e
