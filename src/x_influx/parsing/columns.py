from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from x_influx.config import MappingSettings
from x_influx.errors import ColumnNotFound, ConfigurationError
from x_influx.parsing.timestamps import check_time_format


@dataclass(frozen=True, slots=True)
class ColumnMapping:
    """
    The user's mapping resolved against one input's header/row shape.

    Every role is a zero-based column index. `tag_columns`, `time_column` and
    `value_columns` never share a column.
    """
    series: str
    keys: tuple[str, ...]               # tag/field key per column
    tag_columns: tuple[int, ...]        # configured order
    value_columns: tuple[int, ...]      # column order
    time_column: int | None
    time_format: str
    measure_column: int | None = None

    @property
    def width(self) -> int:
        """Number of columns the mapping was resolved against."""
        return len(self.keys)


def column_key(header: Sequence[str] | None, index: int) -> str:
    """Key for a column: its header name, or `column_<index>` without one."""
    if header is not None and index < len(header):
        name = header[index].strip()
        if name:
            return name
    return f"column_{index}"


def _lookup(ref: str, *, role: str, header: Sequence[str] | None, width: int) -> int | ColumnNotFound:
    """
    Resolve one reference: header name first, then a zero-based index.

    Returns the index, or the problem describing why it did not resolve.
    """
    if header is not None:
        names = [h.strip() for h in header]
        if ref in names:
            return names.index(ref)

    if not (ref.isascii() and ref.isdigit()):
        return ColumnNotFound(role, ref)
    idx = int(ref)
    if idx >= width:
        return ColumnNotFound(role, ref, f"index out of range (input has {width} columns)")
    return idx


def resolve_columns(settings: MappingSettings, *, header: Sequence[str] | None, width: int | None = None) -> ColumnMapping:
    """
    Resolve `settings` against a header (or, without one, against the row `width`).

    Collects every problem before raising, so one `ConfigurationError` names
    all unresolved tags, not only the first.
    """
    if width is None:
        if header is None:
            raise ValueError("either header or width is required")
        width = len(header)

    problems: list[ColumnNotFound | str] = []
    claimed: dict[int, str] = {}        # index -> role that owns it

    if not settings.series.strip():
        problems.append("series name must not be empty")

    def claim(ref: str, role: str) -> int | None:
        res = _lookup(ref, role=role, header=header, width=width)
        if isinstance(res, ColumnNotFound):
            problems.append(res)
            return None
        owner = claimed.get(res)
        if owner is not None:
            problems.append(ColumnNotFound(role, ref, f"already used as {owner} column"))
            return None
        claimed[res] = role
        return res

    time_col = claim(settings.time, "time") if settings.time else None
    if settings.time:
        try:
            check_time_format(settings.time_format)
        except ConfigurationError as e:
            problems.extend(e.problems)
    measure_col = claim(settings.measure, "measure") if settings.measure else None

    tag_cols: list[int] = []
    for ref in settings.tag_list():
        idx = claim(ref, "tag")
        if idx is not None:
            tag_cols.append(idx)

    if measure_col is not None:
        value_cols = [measure_col]
    elif settings.measure:
        value_cols = []     # unresolved measure, already reported
    else:
        value_cols = [i for i in range(width) if i not in claimed]
        if not value_cols:
            problems.append("no columns left for field values")

    keys = tuple(column_key(header, i) for i in range(width))

    # tag and field keys share one namespace inside a point.
    seen: set[str] = set()
    for i in [*tag_cols, *value_cols]:
        if keys[i] in seen:
            problems.append(f"duplicate column name {keys[i]!r}")
        seen.add(keys[i])

    if problems:
        raise ConfigurationError(problems)

    return ColumnMapping(
        series=settings.series,
        keys=keys,
        tag_columns=tuple(tag_cols),
        value_columns=tuple(value_cols),
        time_column=time_col,
        time_format=settings.time_format,
        measure_column=measure_col,
    )
