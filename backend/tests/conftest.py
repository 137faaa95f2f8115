# Add backend/ to sys.path so `bond_analyzer` imports without installation
import io
import os
import sys

import openpyxl
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from bond_analyzer.models import BondInvestment, RepaymentEntry  # noqa: E402

INVESTMENT_HEADER = [
    "Bond Name", "ISIN", "No. of Units", "Invested Amount", "Face Value",
    "Acquisition Cost", "Date of Investment", "Maturity Date", "XIRR (%)",
    "Frequency of Interest", "Frequency of Principal",
]

REPAYMENT_HEADER = [
    "Date", "Name of Bond", "ISIN", "No. of Units", "Amount in Bank",
    "Principal Repaid", "Interest Paid (Before TDS Deduction)",
    "Interest Paid (After TDS Deduction)", "TDS Deducted",
]


def build_workbook(sheets: dict) -> bytes:
    """Materialize {sheet_name: [rows]} as xlsx bytes."""
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(title=name)
        for row in rows:
            ws.append(list(row))
    buf = io.BytesIO()
    wb.save(buf)
    wb.close()
    return buf.getvalue()


def make_investment(bond_name="ABC-1", isin="INE000A01001", invested_amount=100000.0,
                    date_of_investment="01/01/2023", maturity_date="01/01/2030",
                    xirr=10.0, interest_frequency="Monthly", issuer=None,
                    month_year=None, matured=False, units=10.0) -> BondInvestment:
    from bond_analyzer.investment_parser import extract_issuer, format_month_year
    return BondInvestment(
        bond_name=bond_name,
        isin=isin,
        units=units,
        invested_amount=invested_amount,
        face_value=invested_amount,
        acquisition_cost=invested_amount,
        date_of_investment=date_of_investment,
        maturity_date=maturity_date,
        xirr=xirr,
        interest_frequency=interest_frequency,
        principal_frequency="Monthly",
        bond_issuer=issuer or extract_issuer(bond_name),
        matured=matured,
        month_year=month_year or format_month_year(date_of_investment),
    )


def make_repayment(date="05/02/2023", bond_name="ABC-1", isin="INE000A01001",
                   principal=0.0, interest_before=0.0, interest_after=None) -> RepaymentEntry:
    after = interest_before * 0.9 if interest_after is None else interest_after
    return RepaymentEntry(
        date=date,
        bond_name=bond_name,
        isin=isin,
        units=10,
        amount_in_bank=principal + after,
        principal_repaid=principal,
        interest_paid_before_tds=interest_before,
        interest_paid_after_tds=after,
        tds_deducted=interest_before - after,
    )


@pytest.fixture
def sample_workbook_bytes():
    """Investment + repayment sheets shaped like a platform export."""
    investment_rows = [
        ["Investment Summary Report"],
        ["Generated for: Test User"],
        [],
        INVESTMENT_HEADER,
        ["ABC-1", "INE000A01001", 10, "₹1,00,000.00", 100000, 100500, "01/01/2023",
         "01/01/2030", "10.5%", "Monthly", "Monthly"],
        ["ABC-1", "INE000A01001", 5, 50000, 50000, 50200, "01/06/2023",
         "01/01/2030", 10.5, "Monthly", "Monthly"],
        ["XYZ Corp 07", "INE111B02002", 20, 200000, 200000, 200000, "15/03/2022",
         "15/03/2024", 11.0, "Quarterly", "On Maturity"],
        ["Total", "", 35, 350000, "", "", "", "", "", "", ""],
    ]
    repayment_rows = [
        ["Repayment Summary"],
        REPAYMENT_HEADER,
        ["05/02/2023", "ABC-1", "INE000A01001", 10, 1900, 1000, 1000, 900, 100],
        ["2023-03-05", "ABC-1", "INE000A01001", 10, 1900, 1000, 1000, 900, 100],
        ["5/3/2023", "ABC-1", "INE000A01001", 10, 2900, 2000, 1000, 900, 100],
        ["Grand Total", "", "", "", 4800, 3000, 2000, 1800, 200],
    ]
    return build_workbook({
        "Investment Summary Report": investment_rows,
        "Repayment Summary": repayment_rows,
    })
