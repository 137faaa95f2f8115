"""
Header location and cell coercion shared by both sheet parsers.

Platform exports put a few title / disclaimer lines above the real table and
word the column headers slightly differently between versions, so the header
row is located by substring search and columns are mapped by substring too.
"""

import re
from datetime import datetime, date
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

from .errors import HeaderNotFoundError
from .workbook_reader import Cell

_DMY_RE = re.compile(r'^(\d{1,2})/(\d{1,2})/(\d{4})$')
_NON_NUMERIC_RE = re.compile(r'[^\d.\-]')

# English month names; strftime("%b") follows the process locale
MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
MONTH_NAMES = ("January", "February", "March", "April", "May", "June", "July",
               "August", "September", "October", "November", "December")


# ═══════════════════════════════════════════════════════════
#  CELL COERCION
# ═══════════════════════════════════════════════════════════

def cell_text(cell: Cell) -> str:
    """Render any cell value as trimmed text.

    Real date cells (openpyxl gives datetime) come back in the DD/MM/YYYY
    export format so that downstream date handling sees a single format.
    """
    if cell is None:
        return ""
    if isinstance(cell, datetime):
        return cell.strftime("%d/%m/%Y")
    if isinstance(cell, date):
        return cell.strftime("%d/%m/%Y")
    if isinstance(cell, bool):
        return str(cell)
    if isinstance(cell, float) and cell.is_integer():
        return str(int(cell))
    return str(cell).strip()


def cell_number(cell: Cell) -> float:
    """Best-effort numeric value of a cell; anything unreadable is 0.0.

    Text is stripped to digits, '.' and '-' first, so "₹1,00,000.00" → 100000.0.
    """
    if cell is None or isinstance(cell, bool):
        return 0.0
    if isinstance(cell, (int, float)):
        return float(cell)
    if isinstance(cell, (datetime, date)):
        return 0.0
    cleaned = _NON_NUMERIC_RE.sub("", str(cell))
    if not cleaned:
        return 0.0
    try:
        return float(cleaned)
    except ValueError:
        # "1.2.3", "--", "5-": keep the leading numeric prefix
        m = re.match(r'-?\d*\.?\d+|-?\d+', cleaned)
        return float(m.group(0)) if m else 0.0


def parse_dmy(value) -> Optional[date]:
    """Parse a DD/MM/YYYY (or D/M/YYYY) string into a date.

    Returns None for anything else, including impossible dates like 31/02/2024.
    Never raises.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    m = _DMY_RE.match(value.strip())
    if not m:
        return None
    day, month, year = (int(g) for g in m.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def month_label(d: date, full: bool = False) -> str:
    """"Jul 2023" (or "July 2023" with full=True), independent of LC_TIME."""
    names = MONTH_NAMES if full else MONTH_ABBR
    return f"{names[d.month - 1]} {d.year}"


def parse_month_label(label: str) -> Optional[Tuple[int, int]]:
    """"Jul 2023" / "July 2023" → (2023, 7); None when unreadable."""
    parts = (label or "").split()
    if len(parts) != 2 or not parts[1].isdigit():
        return None
    name = parts[0].lower()
    for i, (abbr, full) in enumerate(zip(MONTH_ABBR, MONTH_NAMES)):
        if name in (abbr.lower(), full.lower()):
            return int(parts[1]), i + 1
    return None


def is_dmy(text: str) -> bool:
    """True when text literally has the D/M/YYYY shape."""
    return bool(_DMY_RE.match((text or "").strip()))


# ═══════════════════════════════════════════════════════════
#  HEADER LOCATION
# ═══════════════════════════════════════════════════════════

def _lower_cells(row: Optional[Sequence[Cell]]) -> list:
    if not row:
        return []
    return [c.lower().strip() if isinstance(c, str) else "" for c in row]


def is_header_row(row: Optional[Sequence[Cell]], tokens: Iterable[str],
                  require_all: bool = False) -> bool:
    """Header test: any token in any cell, or (require_all) every token in some cell."""
    cells = _lower_cells(row)
    if not cells:
        return False
    tokens = list(tokens)
    if require_all:
        return all(any(t in c for c in cells) for t in tokens)
    return any(t in c for c in cells for t in tokens)


def build_column_map(header: Sequence[Cell],
                     columns: Mapping[str, Tuple[Sequence[str], Sequence[str]]]) -> Dict[str, int]:
    """Map field name → column index by substring match on the header cells.

    `columns` is {field: (aliases, excluded)}.  For each field (in order) the
    first unclaimed header cell containing an alias and none of the excluded
    substrings wins.  Fields with no matching cell are simply left out.
    """
    cells = _lower_cells(header)
    claimed = set()
    column_map: Dict[str, int] = {}
    for field, (aliases, excluded) in columns.items():
        for idx, text in enumerate(cells):
            if not text or idx in claimed:
                continue
            if any(x in text for x in excluded):
                continue
            if any(a in text for a in aliases):
                column_map[field] = idx
                claimed.add(idx)
                break
    return column_map


def locate_header(rows: Sequence[Sequence[Cell]], tokens: Iterable[str],
                  columns: Mapping[str, Tuple[Sequence[str], Sequence[str]]],
                  require_all: bool = False,
                  sheet: str = "sheet") -> Tuple[int, Dict[str, int]]:
    """Find the header row and build its column map.

    Raises HeaderNotFoundError when no row passes the header test.
    """
    tokens = list(tokens)
    for i, row in enumerate(rows or []):
        if is_header_row(row, tokens, require_all=require_all):
            return i, build_column_map(row, columns)
    raise HeaderNotFoundError(sheet, tokens)


def row_value(row: Sequence[Cell], column_map: Mapping[str, int], field: str) -> Cell:
    """Cell for a mapped field, None when the column is unmapped or the row is short."""
    idx = column_map.get(field)
    if idx is None or idx >= len(row):
        return None
    return row[idx]


def first_cell(row: Sequence[Cell]) -> Cell:
    return row[0] if row else None


def is_blank_row(row: Optional[Sequence[Cell]]) -> bool:
    if not row:
        return True
    return all(c is None or (isinstance(c, str) and not c.strip()) for c in row)
