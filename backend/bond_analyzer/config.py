"""
Runtime settings for the bond analyzer backend.

Sheet / header recognition tokens live here so that a platform changing its
export wording only needs an edit in one place.  A couple of limits can be
overridden through environment variables.
"""

import os

# ═══════════════════════════════════════════════════════════
#  UPLOAD LIMITS
# ═══════════════════════════════════════════════════════════

MAX_UPLOAD_MB = float(os.environ.get("BOND_ANALYZER_MAX_UPLOAD_MB", "10"))
MAX_UPLOAD_BYTES = int(MAX_UPLOAD_MB * 1024 * 1024)

ACCEPTED_EXTENSIONS = (".xlsx", ".xlsm")

CORS_ORIGINS = [
    o.strip()
    for o in os.environ.get(
        "BOND_ANALYZER_CORS_ORIGINS",
        "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173",
    ).split(",")
    if o.strip()
]


# ═══════════════════════════════════════════════════════════
#  SHEET SELECTION
# ═══════════════════════════════════════════════════════════

# Tried in order; the investment sheet falls back to the first worksheet.
INVESTMENT_SHEET_TOKENS = ("investment summary", "summary")
REPAYMENT_SHEET_TOKENS = ("repayment summary", "repayment")


# ═══════════════════════════════════════════════════════════
#  HEADER RECOGNITION
# ═══════════════════════════════════════════════════════════

# Any one of these in a row marks the investment header.
INVESTMENT_HEADER_TOKENS = ("bond name", "isin")

# All of these must appear in the same row for the repayment header.
REPAYMENT_HEADER_TOKENS = ("date", "name of bond")

# field → (substrings that identify the column, substrings that disqualify it)
# Declaration order matters: a header cell is claimed by the first field.
INVESTMENT_COLUMNS = {
    "bond_name":           (("bond name",), ()),
    "isin":                (("isin",), ()),
    "units":               (("no. of units", "units"), ()),
    "invested_amount":     (("invested amount",), ()),
    "face_value":          (("face value",), ()),
    "acquisition_cost":    (("acquisition cost",), ()),
    "date_of_investment":  (("date of investment",), ()),
    "maturity_date":       (("maturity date",), ()),
    "xirr":                (("xirr",), ()),
    "interest_frequency":  (("frequency of interest",), ()),
    "principal_frequency": (("frequency of principal",), ()),
}

REPAYMENT_COLUMNS = {
    "date":                     (("date",), ("maturity",)),
    "bond_name":                (("name of bond",), ()),
    "isin":                     (("isin",), ()),
    "units":                    (("no. of units", "units"), ()),
    "amount_in_bank":           (("amount in bank",), ()),
    "principal_repaid":         (("principal repaid",), ()),
    "interest_paid_before_tds": (("interest paid (before tds deduction)", "before tds"), ()),
    "interest_paid_after_tds":  (("interest paid (after tds deduction)", "after tds"), ()),
    "tds_deducted":             (("tds deducted",), ()),
}

# Date format used by the platform exports (DD/MM/YYYY).
SOURCE_DATE_FORMAT = "%d/%m/%Y"
