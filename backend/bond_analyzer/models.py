from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Set, Tuple, Any
from enum import Enum


# ═══════════════════════════════════════════════════════════
#  VIEW ENUMS
# ═══════════════════════════════════════════════════════════

class DurationFilter(str, Enum):
    THIS_YEAR = "This Year"
    LAST_YEAR = "Last Year"
    ALL_TIME = "All Time"


class DurationView(str, Enum):
    YEARS = "Years"
    QUARTERS = "Quarters"
    MONTHS = "Months"


class ViewType(str, Enum):
    INVESTMENT = "Investment"
    INTEREST_PAID = "Interest Paid"
    PRINCIPAL_PAID = "Principal Paid"
    PRINCIPAL_AND_INTEREST_PAID = "Principal & Interest Paid"


class JoinPolicy(str, Enum):
    """How repayment rows are attributed to a bond series.

    strict: bond name AND isin must both match.
    loose:  bond name OR isin matching is enough (degraded mode).
    """
    STRICT = "strict"
    LOOSE = "loose"


class SortField(str, Enum):
    ISSUER = "issuer"
    INVESTMENT = "investment"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


# ═══════════════════════════════════════════════════════════
#  PARSED RECORDS
# ═══════════════════════════════════════════════════════════

class BondInvestment(BaseModel):
    """One row of the Investment Summary sheet (a single tranche purchase)."""
    bond_name: str = Field(..., min_length=1)
    isin: str = ""
    units: float = 0.0
    invested_amount: float = Field(..., gt=0)
    face_value: float = 0.0
    acquisition_cost: float = 0.0
    date_of_investment: str = ""       # DD/MM/YYYY as exported
    maturity_date: str = ""            # DD/MM/YYYY as exported
    xirr: float = 0.0                  # percentage points, 10.5 == 10.5%
    interest_frequency: str = ""       # Monthly / Quarterly / Annually / On Maturity ...
    principal_frequency: str = ""
    bond_issuer: str = ""              # bond_name without tranche / issue-date suffix
    matured: bool = False
    month_year: str = ""               # "Jul 2023"

    @property
    def series_key(self) -> Tuple[str, str]:
        return (self.bond_name, self.isin)


class RepaymentEntry(BaseModel):
    """One row of the Repayment Summary sheet."""
    date: str                          # DD/MM/YYYY, validated by the parser
    bond_name: str
    isin: str = ""
    units: float = 0.0
    amount_in_bank: float = 0.0
    principal_repaid: float = 0.0
    interest_paid_before_tds: float = 0.0
    interest_paid_after_tds: float = 0.0
    tds_deducted: float = 0.0


# ═══════════════════════════════════════════════════════════
#  DERIVED / VIEW MODELS
# ═══════════════════════════════════════════════════════════

class ViewState(BaseModel):
    """Everything the dashboard lets the user toggle, passed in explicitly."""
    duration_filter: DurationFilter = DurationFilter.ALL_TIME
    duration_view: DurationView = DurationView.MONTHS
    view_type: ViewType = ViewType.INVESTMENT
    sort_field: SortField = SortField.ISSUER
    sort_direction: SortDirection = SortDirection.ASC
    expanded_issuers: Set[str] = Field(default_factory=set)
    join_policy: JoinPolicy = JoinPolicy.STRICT


class RepaymentScheduleEntry(BaseModel):
    date: str
    principal_payment: float = 0.0
    interest_payment: float = 0.0
    total_payment: float = 0.0
    principal_balance: float = 0.0
    status: str = "Paid"


class SeriesRow(BaseModel):
    """A bond series line under an issuer in the analysis table."""
    bond_name: str
    total: float = 0.0
    periods: Dict[str, float] = Field(default_factory=dict)


class IssuerRow(BaseModel):
    issuer: str
    total: float = 0.0
    bond_count: int = 0               # active tranches in the filtered set
    expanded: bool = False
    periods: Dict[str, float] = Field(default_factory=dict)
    bonds: List[SeriesRow] = Field(default_factory=list)


class BondAnalysis(BaseModel):
    """Table + chart payload for one ViewState."""
    view: ViewState
    periods: List[str] = Field(default_factory=list)
    pivot: Dict[str, Dict[str, Dict[str, float]]] = Field(default_factory=dict)
    issuers: List[IssuerRow] = Field(default_factory=list)
    grand_total: float = 0.0
    unique_issuers: int = 0
    active_avg_xirr: float = 0.0
    overall_avg_xirr: float = 0.0
    average_per_period: float = 0.0
    chart: List[Dict[str, Any]] = Field(default_factory=list)


class PortfolioSummary(BaseModel):
    total_investment: float = 0.0
    total_value: float = 0.0          # no valuation model: equals invested amount
    total_bonds: int = 0
    active_bonds: int = 0
    matured_bonds: int = 0
    unique_issuers: int = 0
    overall_avg_xirr: float = 0.0
    total_principal_repaid: float = 0.0
    total_interest_before_tds: float = 0.0
    total_interest_after_tds: float = 0.0
    total_tds_deducted: float = 0.0


class IssuerRollup(BaseModel):
    issuer: str
    invested: float = 0.0
    principal_repaid: float = 0.0
    principal_remaining: float = 0.0
    interest_before_tds: float = 0.0
    interest_after_tds: float = 0.0
    series_count: int = 0


class BondDetails(BaseModel):
    """Figures behind the per-bond details dialog."""
    bond_name: str
    isin: str
    issuer: str
    matured: bool = False
    xirr: float = 0.0
    date_of_investment: str = ""
    maturity_date: str = ""
    interest_frequency: str = ""
    principal_frequency: str = ""
    tranches: int = 0
    total_units: float = 0.0
    total_investment: float = 0.0
    principal_repaid: float = 0.0
    principal_remaining: float = 0.0
    interest_before_tds: float = 0.0
    interest_after_tds: float = 0.0
    schedule: List[RepaymentScheduleEntry] = Field(default_factory=list)
    missed_interest_months: List[str] = Field(default_factory=list)


# ═══════════════════════════════════════════════════════════
#  UPLOAD MODELS
# ═══════════════════════════════════════════════════════════

class WorkbookUpload(BaseModel):
    """Workbook as base64-encoded string (avoids python-multipart dependency)."""
    file_base64: str
    filename: str = "investment_summary.xlsx"


class UploadResult(BaseModel):
    success: bool = True
    message: str = ""
    investments: int = 0
    repayments: int = 0
    investment_sheet: str = ""
    repayment_sheet: Optional[str] = None
