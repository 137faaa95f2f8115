"""
In-memory session store for the uploaded portfolio.

Holds the parsed investment and repayment records for the current session.
An upload is parsed completely before anything is swapped in, so a failed
upload leaves the previous data untouched.  Only one upload is processed at a
time; a second one arriving meanwhile is rejected.
"""

import threading
from datetime import date
from typing import List, Optional, Tuple

from .aggregation import (
    bond_details, build_analysis, issuer_rollups, portfolio_summary,
)
from .config import ACCEPTED_EXTENSIONS, MAX_UPLOAD_BYTES
from .errors import FileReadError, UploadInProgressError
from .investment_parser import parse_investment_sheet
from .models import (
    BondAnalysis, BondDetails, BondInvestment, IssuerRollup, JoinPolicy,
    PortfolioSummary, RepaymentEntry, UploadResult, ViewState,
)
from .repayment_parser import parse_repayment_sheet
from .workbook_reader import read_bond_sheets


class BondPortfolioStore:
    def __init__(self):
        self._upload_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._investments: Tuple[BondInvestment, ...] = ()
        self._repayments: Tuple[RepaymentEntry, ...] = ()
        self._source: Optional[str] = None

    # ── Upload ────────────────────────────────────────────

    def load_workbook(self, data: bytes, filename: str = "upload.xlsx",
                      today: Optional[date] = None) -> UploadResult:
        """Parse an uploaded workbook and replace the session data.

        Raises FileReadError / HeaderNotFoundError / EmptyResultError on fatal
        problems and UploadInProgressError when another upload is running.
        """
        if not self._upload_lock.acquire(blocking=False):
            raise UploadInProgressError()
        try:
            if not filename.lower().endswith(ACCEPTED_EXTENSIONS):
                raise FileReadError(
                    f"Unsupported file type '{filename}': upload an .xlsx workbook"
                )
            if len(data) > MAX_UPLOAD_BYTES:
                raise FileReadError(
                    f"File too large ({len(data) / 1024 / 1024:.1f} MB)"
                )

            sheets = read_bond_sheets(data)
            investments = parse_investment_sheet(
                sheets["investment_rows"], sheet=sheets["investment_sheet"], today=today,
            )
            repayments = parse_repayment_sheet(
                sheets["repayment_rows"], sheet=sheets["repayment_sheet"] or "Repayment Summary",
            )

            with self._state_lock:
                self._investments = tuple(investments)
                self._repayments = tuple(repayments)
                self._source = filename

            print(f"[Store] Loaded '{filename}': {len(investments)} investments, "
                  f"{len(repayments)} repayments")
            return UploadResult(
                success=True,
                message=f"Processed {len(investments)} bond investments",
                investments=len(investments),
                repayments=len(repayments),
                investment_sheet=sheets["investment_sheet"],
                repayment_sheet=sheets["repayment_sheet"],
            )
        finally:
            self._upload_lock.release()

    def clear(self):
        with self._state_lock:
            self._investments = ()
            self._repayments = ()
            self._source = None

    # ── Snapshot access ───────────────────────────────────

    def snapshot(self) -> Tuple[List[BondInvestment], List[RepaymentEntry]]:
        """Consistent copy of both record sets."""
        with self._state_lock:
            return list(self._investments), list(self._repayments)

    @property
    def source(self) -> Optional[str]:
        return self._source

    # ── Derived views ─────────────────────────────────────

    def summary(self) -> PortfolioSummary:
        investments, repayments = self.snapshot()
        return portfolio_summary(investments, repayments)

    def analysis(self, view: ViewState, today: Optional[date] = None) -> BondAnalysis:
        investments, repayments = self.snapshot()
        return build_analysis(investments, repayments, view, today=today)

    def issuers(self, policy: JoinPolicy = JoinPolicy.STRICT) -> List[IssuerRollup]:
        investments, repayments = self.snapshot()
        return issuer_rollups(investments, repayments, policy)

    def details(self, bond_name: str, isin: str,
                policy: JoinPolicy = JoinPolicy.STRICT,
                as_of: Optional[date] = None) -> Optional[BondDetails]:
        investments, repayments = self.snapshot()
        return bond_details(investments, repayments, bond_name, isin, policy, as_of=as_of)


portfolio_store = BondPortfolioStore()
