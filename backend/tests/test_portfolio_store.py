# Purpose: Workbook upload through the session store: sheet selection, fatal vs absorbed errors and serialized uploads.

from datetime import date

import pytest

from bond_analyzer.errors import (
    EmptyResultError, FileReadError, HeaderNotFoundError, UploadInProgressError,
)
from bond_analyzer.models import DurationView, ViewState
from bond_analyzer.portfolio_store import BondPortfolioStore
from bond_analyzer.workbook_reader import find_sheet
from conftest import INVESTMENT_HEADER, build_workbook

TODAY = date(2024, 6, 15)


@pytest.fixture
def store():
    return BondPortfolioStore()


def test_upload_parses_both_sheets(store, sample_workbook_bytes):
    result = store.load_workbook(sample_workbook_bytes, "report.xlsx", today=TODAY)

    assert result.success
    assert result.message == "Processed 3 bond investments"
    assert result.investments == 3
    assert result.repayments == 2
    assert result.investment_sheet == "Investment Summary Report"
    assert result.repayment_sheet == "Repayment Summary"

    investments, repayments = store.snapshot()
    assert investments[0].invested_amount == 100000
    assert investments[0].xirr == 10.5
    assert investments[2].bond_issuer == "XYZ Corp"
    assert investments[2].matured is True
    assert [r.date for r in repayments] == ["05/02/2023", "5/3/2023"]


def test_end_to_end_months_pivot(store, sample_workbook_bytes):
    store.load_workbook(sample_workbook_bytes, "report.xlsx", today=TODAY)
    analysis = store.analysis(ViewState(duration_view=DurationView.MONTHS), today=TODAY)

    buckets = analysis.pivot["ABC"]["ABC-1"]
    assert len(buckets) == 2
    assert sum(buckets.values()) == 150000
    assert analysis.issuers[0].total == 150000
    assert "XYZ Corp" not in analysis.pivot

    details = store.details("ABC-1", "INE000A01001", as_of=date(2023, 4, 20))
    assert details.principal_repaid == 3000
    assert details.principal_remaining == 147000
    assert details.missed_interest_months == []


def test_missing_repayment_sheet_is_not_an_error(store):
    data = build_workbook({"Sheet1": [INVESTMENT_HEADER, ["ABC-1", "INE1", 1, 1000]]})
    result = store.load_workbook(data, "plain.xlsx", today=TODAY)
    assert result.investments == 1
    assert result.repayments == 0
    assert result.repayment_sheet is None


def test_repayment_sheet_without_header_degrades_to_empty(store):
    data = build_workbook({
        "Investment Summary": [INVESTMENT_HEADER, ["ABC-1", "INE1", 1, 1000]],
        "Repayment Summary": [["nothing to see here"]],
    })
    assert store.load_workbook(data, "x.xlsx", today=TODAY).repayments == 0


def test_fatal_errors_leave_previous_data_untouched(store, sample_workbook_bytes):
    store.load_workbook(sample_workbook_bytes, "report.xlsx", today=TODAY)

    no_header = build_workbook({"Summary": [["just", "numbers"], [1, 2]]})
    with pytest.raises(HeaderNotFoundError):
        store.load_workbook(no_header, "bad.xlsx", today=TODAY)

    no_rows = build_workbook({"Summary": [INVESTMENT_HEADER, ["Total", "", "", 0]]})
    with pytest.raises(EmptyResultError):
        store.load_workbook(no_rows, "empty.xlsx", today=TODAY)

    assert len(store.snapshot()[0]) == 3
    assert store.source == "report.xlsx"


def test_unreadable_files(store):
    with pytest.raises(FileReadError):
        store.load_workbook(b"not a zip file", "report.xlsx")
    with pytest.raises(FileReadError):
        store.load_workbook(b"", "report.xlsx")
    with pytest.raises(FileReadError):
        store.load_workbook(b"\xd0\xcf\x11\xe0", "legacy.xls")


def test_concurrent_upload_is_rejected(store, sample_workbook_bytes):
    store._upload_lock.acquire()
    try:
        with pytest.raises(UploadInProgressError):
            store.load_workbook(sample_workbook_bytes, "report.xlsx")
    finally:
        store._upload_lock.release()
    assert store.load_workbook(sample_workbook_bytes, "report.xlsx", today=TODAY).success


def test_new_upload_replaces_everything(store, sample_workbook_bytes):
    store.load_workbook(sample_workbook_bytes, "report.xlsx", today=TODAY)
    data = build_workbook({"Summary": [INVESTMENT_HEADER, ["NEW-1", "INE9", 1, 5000]]})
    store.load_workbook(data, "new.xlsx", today=TODAY)

    investments, repayments = store.snapshot()
    assert [i.bond_name for i in investments] == ["NEW-1"]
    assert repayments == []
    assert store.summary().total_investment == 5000


def test_find_sheet_prefers_specific_tokens():
    names = ["Summary", "Investment Summary Report", "Repayment Summary"]
    assert find_sheet(names, ("investment summary", "summary")) == "Investment Summary Report"
    assert find_sheet(names, ("repayment summary", "repayment")) == "Repayment Summary"
    assert find_sheet(["Data"], ("summary",), fallback_first=True) == "Data"
    assert find_sheet(["Data"], ("summary",)) is None
