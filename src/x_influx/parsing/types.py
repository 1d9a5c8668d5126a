from __future__ import annotations

from dataclasses import dataclass

from x_influx.errors import RejectCode, RowError


@dataclass(frozen=True, slots=True)
class RawRow:
    """One tokenized input row, index-aligned with the header."""
    source_row: int                 # 1-based data row, header and skipped rows not counted
    values: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class RejectRow:
    """Rejected row's contents."""
    reason_code: RejectCode
    detail: str
    source_row: int
    values: tuple[str, ...]         # the raw unmutated row

    @classmethod
    def from_error(cls, row: RawRow, err: RowError) -> "RejectRow":
        return cls(reason_code=err.code, detail=err.detail, source_row=row.source_row, values=row.values)

    def render(self, delimiter: str = ",") -> str:
        return f"row {self.source_row} [{self.reason_code.value}] {self.detail}: {delimiter.join(self.values)!r}"
