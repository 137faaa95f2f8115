# Purpose: Investment Summary parsing: row filtering, numeric coercion and derived issuer / month / maturity fields.

from datetime import date

import pytest

from bond_analyzer.errors import EmptyResultError, HeaderNotFoundError
from bond_analyzer.investment_parser import (
    extract_issuer, format_month_year, is_matured, parse_investment_sheet,
)
from conftest import INVESTMENT_HEADER

TODAY = date(2024, 6, 15)


def _row(name="ABC-1", isin="INE000A01001", amount=100000, invested="01/01/2023",
         maturity="01/01/2030", xirr=10.5):
    return [name, isin, 10, amount, amount, amount, invested, maturity, xirr, "Monthly", "Monthly"]


@pytest.mark.parametrize(
    "bond_name, issuer",
    [
        ("ABC Finance-2 Jul'23", "ABC Finance"),
        ("XYZ Corp 07", "XYZ Corp"),
        ("Plain Bond", "Plain Bond"),
        ("ABC-1", "ABC"),
        ("Vivriti Capital-12", "Vivriti Capital"),
        ("Northern Arc Jan'24", "Northern Arc"),
        ("  Spaced Name-3  ", "Spaced Name"),
    ],
)
def test_extract_issuer(bond_name, issuer):
    assert extract_issuer(bond_name) == issuer


def test_format_month_year():
    assert format_month_year("01/07/2023") == "Jul 2023"
    assert format_month_year("15/12/2024") == "Dec 2024"
    assert format_month_year("sometime") == "sometime"


def test_is_matured_is_strict_and_tolerant():
    assert is_matured("14/06/2024", TODAY)
    assert not is_matured("15/06/2024", TODAY)
    assert not is_matured("01/01/2030", TODAY)
    assert not is_matured("", TODAY)
    assert not is_matured("not a date", TODAY)


def test_parse_keeps_tranches_and_derives_fields():
    rows = [INVESTMENT_HEADER, _row(), _row(amount=50000, invested="01/06/2023")]
    investments = parse_investment_sheet(rows, today=TODAY)

    assert len(investments) == 2
    first = investments[0]
    assert first.bond_name == "ABC-1"
    assert first.bond_issuer == "ABC"
    assert first.month_year == "Jan 2023"
    assert first.matured is False
    assert first.xirr == 10.5
    assert investments[1].month_year == "Jun 2023"
    assert sum(i.invested_amount for i in investments) == 150000


def test_rows_with_zero_amount_or_blank_name_are_rejected():
    rows = [
        INVESTMENT_HEADER,
        _row(amount=0),
        _row(name=None),
        ["", "INE000A01001", 10, 1000],
        _row(name="Good Bond-1", amount="₹25,000"),
    ]
    investments = parse_investment_sheet(rows, today=TODAY)
    assert [i.bond_name for i in investments] == ["Good Bond-1"]
    assert investments[0].invested_amount == 25000.0


def test_total_and_repeated_header_rows_are_skipped():
    rows = [
        INVESTMENT_HEADER,
        _row(),
        ["Sub Total", "", "", 100000],
        INVESTMENT_HEADER,
        _row(name="DEF-2"),
        [],
        ["Grand Total", "", "", 200000],
    ]
    investments = parse_investment_sheet(rows, today=TODAY)
    assert [i.bond_name for i in investments] == ["ABC-1", "DEF-2"]


def test_matured_flag_uses_today():
    rows = [INVESTMENT_HEADER, _row(maturity="01/01/2024")]
    assert parse_investment_sheet(rows, today=TODAY)[0].matured is True


def test_missing_optional_columns_default_to_zero_and_empty():
    rows = [["Bond Name", "Invested Amount"], ["ABC-1", 5000]]
    inv = parse_investment_sheet(rows, today=TODAY)[0]
    assert inv.isin == ""
    assert inv.units == 0.0
    assert inv.xirr == 0.0
    assert inv.month_year == ""
    assert inv.matured is False


def test_no_header_is_fatal():
    with pytest.raises(HeaderNotFoundError):
        parse_investment_sheet([["Some", "Random"], ["Data", 1]])


def test_no_valid_rows_is_fatal():
    rows = [INVESTMENT_HEADER, _row(amount=0), ["Total", "", "", 0]]
    with pytest.raises(EmptyResultError, match="No valid bond data found"):
        parse_investment_sheet(rows, today=TODAY)


class _UnreadableCell:
    def __str__(self):
        raise RuntimeError("cell could not be rendered")


def test_row_that_fails_to_build_is_skipped_and_parsing_continues(capsys):
    rows = [
        INVESTMENT_HEADER,
        _row(name="ABC-1"),
        _row(name="BAD-1", isin=_UnreadableCell()),
        _row(name="DEF-2"),
    ]
    investments = parse_investment_sheet(rows, today=TODAY)

    assert [i.bond_name for i in investments] == ["ABC-1", "DEF-2"]
    out = capsys.readouterr().out
    assert "Row 2" in out
    assert "cell could not be rendered" in out
    assert "1 malformed row(s) skipped" in out


def test_all_rows_failing_to_build_is_fatal():
    rows = [INVESTMENT_HEADER, _row(isin=_UnreadableCell())]
    with pytest.raises(EmptyResultError):
        parse_investment_sheet(rows, today=TODAY)
