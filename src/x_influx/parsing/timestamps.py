from __future__ import annotations

import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache

from x_influx.errors import ConfigurationError, TimestampParseError

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NS_PER_SECOND = 1_000_000_000

# strftime shorthands that `datetime.strptime` does not understand.
_SHORTHANDS = {
    "F": "%Y-%m-%d",
    "T": "%H:%M:%S",
    "R": "%H:%M",
    "D": "%m/%d/%y",
}

# `%f`, `%.f`, `%3f`, `%.6f`... fractional seconds, up to nanoseconds.
_DIRECTIVE_RE = re.compile(r"%(\.?[369]?f|.)", re.DOTALL)


@dataclass(frozen=True, slots=True)
class _CompiledFormat:
    """A user format split into a `strptime` format and an optional fraction matcher."""
    strptime_format: str
    fraction: re.Pattern[str] | None     # `None` when the format has no fractional seconds


def _fraction_regex(token: str) -> str:
    """Regex for one fractional-second directive, wrapped in the `frac_token` group."""
    dotted = token.startswith(".")
    width = token.strip(".f")
    digits = f"[0-9]{{{width}}}" if width else "[0-9]{1,9}"
    if dotted and not width:
        # `%.f` also accepts whole seconds without a dot.
        return rf"(?P<frac_token>(?:\.(?P<frac>{digits}))?)"
    dot = r"\." if dotted else ""
    return rf"(?P<frac_token>{dot}(?P<frac>{digits}))"


@lru_cache(maxsize=64)
def _compile(fmt: str) -> _CompiledFormat:
    """
    Expand shorthands and pull the fractional-second directive out of `fmt`.

    `datetime` only holds microseconds, so fractions are parsed separately and
    added back as integer nanoseconds.
    """
    out: list[str] = []
    rx: list[str] = []
    has_fraction = False
    pos = 0
    for m in _DIRECTIVE_RE.finditer(fmt):
        literal = fmt[pos:m.start()]
        out.append(literal)
        rx.append(re.escape(literal))
        pos = m.end()

        token = m.group(1)
        if token.endswith("f"):
            if has_fraction:
                raise ConfigurationError([f"time format {fmt!r}: more than one fractional-second directive"])
            has_fraction = True
            rx.append(_fraction_regex(token))
        elif token == "%":
            out.append("%%")
            rx.append("%")
        else:
            out.append(_SHORTHANDS.get(token, "%" + token))
            rx.append(".+?")

    tail = fmt[pos:]
    out.append(tail)
    rx.append(re.escape(tail))

    fraction = re.compile("".join(rx), re.DOTALL) if has_fraction else None
    return _CompiledFormat(strptime_format="".join(out), fraction=fraction)


def _is_format_error(e: ValueError) -> bool:
    msg = str(e)
    return "bad directive" in msg or "stray %" in msg


def check_time_format(fmt: str) -> None:
    """
    Raise `ConfigurationError` when `fmt` could never parse any input.

    `strptime` builds its pattern before matching, so matching an empty string is
    enough to surface unknown directives.
    """
    compiled = _compile(fmt)
    try:
        datetime.strptime("", compiled.strptime_format)
    except ValueError as e:
        if _is_format_error(e):
            raise ConfigurationError([f"time format {fmt!r}: {e}"]) from e


def _to_ns(dt: datetime) -> int:
    """Nanoseconds since the epoch using integer arithmetic only."""
    # assumption, UTC for timestamps without an offset.
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    delta = dt - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * _NS_PER_SECOND + delta.microseconds * 1_000


def resolve_timestamp(raw: str, fmt: str) -> int:
    """
    Parse `raw` against the strftime-style `fmt` into nanoseconds since the epoch (UTC).

    Supports the `%F`, `%T`, `%R` and `%D` shorthands and fractional seconds
    (`%f`, `%.f`, `%3f`, `%.9f`...) with nanosecond precision.

    Raises `TimestampParseError` on mismatch or impossible calendar values,
    `ConfigurationError` when the format itself is unusable.
    """
    compiled = _compile(fmt)
    text = raw.strip()

    nanos = 0
    if compiled.fraction is not None:
        m = compiled.fraction.fullmatch(text)
        if m is None:
            raise TimestampParseError(raw, fmt)
        frac = m.group("frac")
        if frac:
            nanos = int(frac.ljust(9, "0"))
        text = text[:m.start("frac_token")] + text[m.end("frac_token"):]

    try:
        dt = datetime.strptime(text, compiled.strptime_format)
    except ValueError as e:
        if _is_format_error(e):
            raise ConfigurationError([f"time format {fmt!r}: {e}"]) from e
        # mismatch, or Feb 30 and friends.
        raise TimestampParseError(raw, fmt) from e

    return _to_ns(dt) + nanos


def now_ns() -> int:
    """The current instant, used when rows carry no timestamp."""
    return time.time_ns()
