"""
Bond Investment Analyzer - FastAPI Backend
"""
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from typing import List
import base64
import binascii
import traceback

from .config import CORS_ORIGINS
from .errors import BondAnalyzerError, UploadInProgressError
from .models import (
    BondAnalysis, BondDetails, BondInvestment, DurationFilter, DurationView,
    IssuerRollup, JoinPolicy, PortfolioSummary, RepaymentEntry, SortDirection,
    SortField, UploadResult, ViewState, ViewType, WorkbookUpload,
)
from .portfolio_store import portfolio_store as store
from starlette.requests import Request
from starlette.responses import JSONResponse

app = FastAPI(title="Bond Investment Analyzer", version="1.0.0")


# ── Global exception handler: logs unhandled errors to console ──
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    print(f"[ERROR] {request.method} {request.url.path} → {type(exc).__name__}: {exc}")
    traceback.print_exc()
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal error: {str(exc)[:200]}"},
    )


# CORS for React dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ══════════════════════════════════════════════════════════
#  UPLOAD
# ══════════════════════════════════════════════════════════

@app.post("/api/bonds/upload", response_model=UploadResult)
def upload_workbook(req: WorkbookUpload):
    """Parse an Investment Summary workbook and replace the session data.

    The response message doubles as the success notification
    ("Processed N bond investments"); failures carry the reason in `detail`.
    """
    try:
        data = base64.b64decode(req.file_base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Invalid base64 file data")

    try:
        return store.load_workbook(data, req.filename)
    except UploadInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except BondAnalyzerError as e:
        print(f"[Upload] Rejected '{req.filename}': {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        print(f"[Upload] Workbook read error: {e}")
        traceback.print_exc()
        raise HTTPException(status_code=400, detail="Please check your file format and try again.")


@app.delete("/api/bonds")
def clear_portfolio():
    """Forget the uploaded data (same as reloading the page)."""
    store.clear()
    return {"message": "Portfolio cleared"}


# ══════════════════════════════════════════════════════════
#  RECORDS
# ══════════════════════════════════════════════════════════

@app.get("/api/bonds", response_model=List[BondInvestment])
def get_investments():
    investments, _ = store.snapshot()
    return investments


@app.get("/api/bonds/repayments", response_model=List[RepaymentEntry])
def get_repayments():
    _, repayments = store.snapshot()
    return repayments


# ══════════════════════════════════════════════════════════
#  AGGREGATES
# ══════════════════════════════════════════════════════════

@app.get("/api/bonds/summary", response_model=PortfolioSummary)
def get_summary():
    """Header cards: total investment, active / matured counts, issuers, XIRR."""
    return store.summary()


@app.get("/api/bonds/analysis", response_model=BondAnalysis)
def get_analysis(
    duration_filter: DurationFilter = DurationFilter.ALL_TIME,
    duration_view: DurationView = DurationView.MONTHS,
    view_type: ViewType = ViewType.INVESTMENT,
    sort_field: SortField = SortField.ISSUER,
    sort_direction: SortDirection = SortDirection.ASC,
    expanded: List[str] = Query(default=[]),
    join_policy: JoinPolicy = JoinPolicy.STRICT,
):
    """Pivot table + chart rows for the selected filter / granularity / view."""
    view = ViewState(
        duration_filter=duration_filter,
        duration_view=duration_view,
        view_type=view_type,
        sort_field=sort_field,
        sort_direction=sort_direction,
        expanded_issuers=set(expanded),
        join_policy=join_policy,
    )
    return store.analysis(view)


@app.get("/api/bonds/issuers", response_model=List[IssuerRollup])
def get_issuer_rollups(join_policy: JoinPolicy = JoinPolicy.STRICT):
    """Per-issuer invested / repaid / remaining principal and interest received."""
    return store.issuers(join_policy)


@app.get("/api/bonds/details", response_model=BondDetails)
def get_bond_details(bond_name: str, isin: str = "",
                     join_policy: JoinPolicy = JoinPolicy.STRICT):
    """Repayment schedule, balances and missed interest months for one bond series."""
    details = store.details(bond_name, isin, join_policy)
    if details is None:
        raise HTTPException(status_code=404, detail=f"Bond not found: {bond_name} ({isin or 'no ISIN'})")
    return details
