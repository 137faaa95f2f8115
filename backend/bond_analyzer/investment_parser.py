"""
Investment Summary sheet parser.

Each data row is one tranche purchase:
    Bond Name | ISIN | No. of Units | Invested Amount | Face Value |
    Acquisition Cost | Date of Investment | Maturity Date | XIRR |
    Frequency of Interest | Frequency of Principal

Rows after the header that are blank, subtotal / "Total" lines or repeated
headers are skipped.  A single bad row is logged and dropped; the upload only
fails when nothing usable is left.
"""

import re
from datetime import date
from typing import Dict, List, Optional, Sequence

from .config import INVESTMENT_COLUMNS, INVESTMENT_HEADER_TOKENS
from .errors import EmptyResultError, RowParseError
from .models import BondInvestment
from .row_extractor import (
    cell_number, cell_text, first_cell, is_blank_row, locate_header,
    month_label, parse_dmy, row_value,
)
from .workbook_reader import Cell


# ═══════════════════════════════════════════════════════════
#  DERIVED FIELDS
# ═══════════════════════════════════════════════════════════

# "-2" or "-2 Jul'23" at the end of the name
_TRANCHE_SUFFIX = re.compile(r"-\d+(?:\s+[A-Za-z]{3}['’]\d{2})?\s*$")
# "Jul'23" left at the end
_ISSUE_DATE_SUFFIX = re.compile(r"\s*\b[A-Za-z]+['’]\d{2}\s*$")
# "07" left at the end
_NUMBER_SUFFIX = re.compile(r"\s+\d+\s*$")


def extract_issuer(bond_name: str) -> str:
    """Issuer label for a bond series: the name without tranche / issue-date suffixes.

    "ABC Finance-2 Jul'23" → "ABC Finance", "XYZ Corp 07" → "XYZ Corp".
    """
    name = (bond_name or "").strip()
    issuer = _TRANCHE_SUFFIX.sub("", name)
    issuer = _ISSUE_DATE_SUFFIX.sub("", issuer)
    issuer = _NUMBER_SUFFIX.sub("", issuer)
    issuer = issuer.strip()
    return issuer or name


def format_month_year(value: str) -> str:
    """DD/MM/YYYY → "Jul 2023". Unparseable input is returned unchanged."""
    d = parse_dmy(value)
    if d is None:
        return value
    return month_label(d)


def is_matured(value: str, today: Optional[date] = None) -> bool:
    """Maturity date strictly before today. Unknown dates count as not matured."""
    d = parse_dmy(value)
    if d is None:
        return False
    return d < (today or date.today())


# ═══════════════════════════════════════════════════════════
#  ROW PARSING
# ═══════════════════════════════════════════════════════════

def _is_trailer_row(row: Sequence[Cell]) -> bool:
    """Blank first cell, "Total" lines and repeated header lines."""
    head = first_cell(row)
    if head is None:
        return True
    text = cell_text(head).lower()
    if not text:
        return True
    return "total" in text or "bond name" in text


def _build_investment(row: Sequence[Cell], column_map: Dict[str, int],
                      row_index: int, today: Optional[date]) -> Optional[BondInvestment]:
    """One data row → BondInvestment, or None when the row is not an investment."""
    def text(field):
        return cell_text(row_value(row, column_map, field))

    def number(field):
        return cell_number(row_value(row, column_map, field))

    try:
        bond_name = text("bond_name")
        if not bond_name:
            return None

        invested = number("invested_amount")
        if invested <= 0:
            return None

        date_of_investment = text("date_of_investment")
        maturity_date = text("maturity_date")
        return BondInvestment(
            bond_name=bond_name,
            isin=text("isin"),
            units=number("units"),
            invested_amount=invested,
            face_value=number("face_value"),
            acquisition_cost=number("acquisition_cost"),
            date_of_investment=date_of_investment,
            maturity_date=maturity_date,
            xirr=number("xirr"),
            interest_frequency=text("interest_frequency"),
            principal_frequency=text("principal_frequency"),
            bond_issuer=extract_issuer(bond_name),
            matured=is_matured(maturity_date, today),
            month_year=format_month_year(date_of_investment),
        )
    except Exception as e:
        raise RowParseError(row_index, str(e)) from e


def parse_investments(rows: Sequence[Sequence[Cell]], header_index: int,
                      column_map: Dict[str, int],
                      today: Optional[date] = None) -> List[BondInvestment]:
    """Convert every data row after the header.

    Raises EmptyResultError when no row produced a record.
    """
    investments: List[BondInvestment] = []
    skipped = 0

    for i in range(header_index + 1, len(rows)):
        row = rows[i]
        if is_blank_row(row) or _is_trailer_row(row):
            continue
        try:
            inv = _build_investment(row, column_map, i, today)
        except RowParseError as e:
            print(f"[Investments] WARNING: skipping row: {e}")
            skipped += 1
            continue
        if inv is not None:
            investments.append(inv)

    if skipped:
        print(f"[Investments] {skipped} malformed row(s) skipped")
    if not investments:
        raise EmptyResultError()
    return investments


def parse_investment_sheet(rows: Sequence[Sequence[Cell]], sheet: str = "Investment Summary",
                           today: Optional[date] = None) -> List[BondInvestment]:
    """Locate the header and parse the whole sheet.

    HeaderNotFoundError and EmptyResultError propagate: without investments
    there is nothing to show.
    """
    header_index, column_map = locate_header(
        rows, INVESTMENT_HEADER_TOKENS, INVESTMENT_COLUMNS, sheet=sheet,
    )
    missing = [f for f in ("bond_name", "invested_amount") if f not in column_map]
    if missing:
        print(f"[Investments] WARNING: header row {header_index} has no column for {', '.join(missing)}")
    investments = parse_investments(rows, header_index, column_map, today=today)
    print(f"[Investments] Parsed {len(investments)} investment row(s) from '{sheet}'")
    return investments
