"""
Repayment Summary sheet parser.

Each data row is one credit to the bank account:
    Date | Name of Bond | ISIN | No. of Units | Amount in Bank |
    Principal Repaid | Interest Paid (Before TDS Deduction) |
    Interest Paid (After TDS Deduction) | TDS Deducted

The sheet is optional.  A missing sheet or header means "no repayments yet",
never a failed upload.
"""

from typing import Dict, List, Optional, Sequence

from .config import REPAYMENT_COLUMNS, REPAYMENT_HEADER_TOKENS
from .errors import HeaderNotFoundError, RowParseError
from .models import RepaymentEntry
from .row_extractor import (
    cell_number, cell_text, first_cell, is_blank_row, is_dmy, locate_header,
    parse_dmy, row_value,
)
from .workbook_reader import Cell

_FIRST_CELL_SKIP = ("total", "date", "grand")
_NAME_CELL_SKIP = ("total", "name of bond")


def _is_skipped_row(row: Sequence[Cell], column_map: Dict[str, int]) -> bool:
    head = cell_text(first_cell(row)).lower()
    name = cell_text(row_value(row, column_map, "bond_name")).lower()
    if not head or not name:
        return True
    if any(t in head for t in _FIRST_CELL_SKIP):
        return True
    return any(t in name for t in _NAME_CELL_SKIP)


def _build_repayment(row: Sequence[Cell], column_map: Dict[str, int],
                     row_index: int) -> Optional[RepaymentEntry]:
    try:
        date_text = cell_text(row_value(row, column_map, "date"))
        # Strict D/M/YYYY only; anything else is dropped, not guessed at
        if not is_dmy(date_text) or parse_dmy(date_text) is None:
            return None

        def number(field):
            return cell_number(row_value(row, column_map, field))

        return RepaymentEntry(
            date=date_text,
            bond_name=cell_text(row_value(row, column_map, "bond_name")),
            isin=cell_text(row_value(row, column_map, "isin")),
            units=number("units"),
            amount_in_bank=number("amount_in_bank"),
            principal_repaid=number("principal_repaid"),
            interest_paid_before_tds=number("interest_paid_before_tds"),
            interest_paid_after_tds=number("interest_paid_after_tds"),
            tds_deducted=number("tds_deducted"),
        )
    except Exception as e:
        raise RowParseError(row_index, str(e)) from e


def parse_repayments(rows: Sequence[Sequence[Cell]], header_index: int,
                     column_map: Dict[str, int]) -> List[RepaymentEntry]:
    """Convert every data row after the header. An empty result is fine."""
    entries: List[RepaymentEntry] = []
    dropped = 0

    for i in range(header_index + 1, len(rows)):
        row = rows[i]
        if is_blank_row(row) or _is_skipped_row(row, column_map):
            continue
        try:
            entry = _build_repayment(row, column_map, i)
        except RowParseError as e:
            print(f"[Repayments] WARNING: skipping row: {e}")
            continue
        if entry is None:
            dropped += 1
            continue
        entries.append(entry)

    if dropped:
        print(f"[Repayments] {dropped} row(s) dropped for a malformed date")
    return entries


def parse_repayment_sheet(rows: Optional[Sequence[Sequence[Cell]]],
                          sheet: str = "Repayment Summary") -> List[RepaymentEntry]:
    """Locate the header and parse the sheet; [] when there is nothing to parse."""
    if not rows:
        return []
    try:
        header_index, column_map = locate_header(
            rows, REPAYMENT_HEADER_TOKENS, REPAYMENT_COLUMNS,
            require_all=True, sheet=sheet,
        )
    except HeaderNotFoundError as e:
        print(f"[Repayments] {e}; continuing without repayment data")
        return []
    entries = parse_repayments(rows, header_index, column_map)
    print(f"[Repayments] Parsed {len(entries)} repayment row(s) from '{sheet}'")
    return entries
