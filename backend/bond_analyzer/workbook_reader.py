"""
Workbook access on top of openpyxl.

Turns uploaded bytes into plain row lists so the parsers never touch
openpyxl objects.  A row is a list of heterogeneous cell values:
str, int, float, datetime, date or None.
"""

import io
import zipfile
from datetime import datetime, date
from typing import List, Optional, Sequence, Union

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from .config import INVESTMENT_SHEET_TOKENS, REPAYMENT_SHEET_TOKENS
from .errors import FileReadError

Cell = Union[str, int, float, datetime, date, None]
Row = List[Cell]


def open_workbook(data: bytes):
    """Load workbook bytes read-only with cached formula values."""
    if not data:
        raise FileReadError("The uploaded file is empty")
    try:
        return openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise FileReadError(f"Could not read the workbook: {e}") from e


def find_sheet(sheet_names: Sequence[str], tokens: Sequence[str],
               fallback_first: bool = False) -> Optional[str]:
    """Pick the first sheet whose lowercased name contains a token.

    Tokens are tried in priority order, so "investment summary" beats a bare
    "summary" even when the latter sheet comes first in the workbook.
    """
    for token in tokens:
        for name in sheet_names:
            if token in name.lower():
                return name
    if fallback_first and sheet_names:
        return sheet_names[0]
    return None


def sheet_rows(wb, sheet_name: str) -> List[Row]:
    """All rows of a sheet as lists of raw values (trailing empties kept)."""
    ws = wb[sheet_name]
    return [list(r) for r in ws.iter_rows(values_only=True)]


def read_bond_sheets(data: bytes) -> dict:
    """Open the upload and return the raw rows of both sheets.

    Returns {"investment_sheet", "investment_rows", "repayment_sheet",
    "repayment_rows"}; the repayment entries are None when the workbook has
    no repayment sheet.
    """
    wb = open_workbook(data)
    try:
        names = list(wb.sheetnames)
        inv_name = find_sheet(names, INVESTMENT_SHEET_TOKENS, fallback_first=True)
        if inv_name is None:
            raise FileReadError("The workbook has no worksheets")
        # "repayment summary" also contains "summary"; never hand it to both parsers
        rep_name = find_sheet(names, REPAYMENT_SHEET_TOKENS)
        if rep_name == inv_name:
            others = [n for n in names if n != rep_name]
            inv_name = find_sheet(others, INVESTMENT_SHEET_TOKENS, fallback_first=True) or inv_name

        return {
            "investment_sheet": inv_name,
            "investment_rows": sheet_rows(wb, inv_name),
            "repayment_sheet": rep_name,
            "repayment_rows": sheet_rows(wb, rep_name) if rep_name else None,
        }
    finally:
        wb.close()
