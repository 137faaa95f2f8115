"""
Portfolio aggregation: pivots, totals and investment ↔ repayment reconciliation.

Everything here is a pure function of (investments, repayments, view
selection).  Nothing is cached, so recomputing after a new upload can never
return stale figures.

Pivot shape (what the analysis table and chart consume):
    {issuer: {bond_name: {period_label: amount}}}

Period labels by DurationView:
    Years    → "2023"
    Quarters → "Q3 2023"
    Months   → "Jul 2023"

Reconciliation joins repayments to a bond series by (bond name, ISIN) under
JoinPolicy.STRICT, or by bond name OR ISIN under JoinPolicy.LOOSE.
"""

import math
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from dateutil.relativedelta import relativedelta

from .models import (
    BondAnalysis, BondDetails, BondInvestment, DurationFilter, DurationView,
    IssuerRollup, IssuerRow, JoinPolicy, PortfolioSummary, RepaymentEntry,
    RepaymentScheduleEntry, SeriesRow, SortDirection, SortField, ViewState,
    ViewType,
)
from .row_extractor import month_label, parse_dmy, parse_month_label

Pivot = Dict[str, Dict[str, Dict[str, float]]]
SeriesLike = Union[BondInvestment, Sequence[BondInvestment]]

UNKNOWN_PERIOD = "Unknown"


# ═══════════════════════════════════════════════════════════
#  FILTERING
# ═══════════════════════════════════════════════════════════

def filter_active(investments: Iterable[BondInvestment],
                  duration_filter: DurationFilter = DurationFilter.ALL_TIME,
                  today: Optional[date] = None) -> List[BondInvestment]:
    """Non-matured investments made in the selected year window.

    Matured bonds are dropped under every filter.  Investments with an
    unreadable date only survive "All Time".
    """
    today = today or date.today()
    result = []
    for inv in investments or []:
        if inv.matured:
            continue
        if duration_filter == DurationFilter.ALL_TIME:
            result.append(inv)
            continue
        invested_on = parse_dmy(inv.date_of_investment)
        if invested_on is None:
            continue
        wanted = today.year if duration_filter == DurationFilter.THIS_YEAR else today.year - 1
        if invested_on.year == wanted:
            result.append(inv)
    return result


# ═══════════════════════════════════════════════════════════
#  TIME BUCKETS
# ═══════════════════════════════════════════════════════════

def bucket_key(d: Optional[date], duration_view: DurationView,
               month_year: Optional[str] = None) -> str:
    """Period label for a date under the selected granularity."""
    if duration_view == DurationView.MONTHS and month_year:
        return month_year
    if d is None:
        return UNKNOWN_PERIOD
    if duration_view == DurationView.YEARS:
        return str(d.year)
    if duration_view == DurationView.QUARTERS:
        return f"Q{math.ceil(d.month / 3)} {d.year}"
    return month_label(d)


def period_sort_key(label: str, duration_view: DurationView) -> Tuple[int, int, str]:
    """Chronological sort key for a period label; unreadable labels sort last."""
    try:
        if duration_view == DurationView.YEARS:
            return (0, int(label), label)
        if duration_view == DurationView.QUARTERS:
            q, year = label.split(" ")
            return (0, int(year) * 4 + int(q.replace("Q", "")), label)
        parsed = parse_month_label(label)
        if parsed is None:
            return (1, 0, str(label))
        year, month = parsed
        return (0, year * 12 + month, label)
    except (ValueError, AttributeError):
        return (1, 0, str(label))


def sorted_periods(pivot: Pivot, duration_view: DurationView) -> List[str]:
    """Every period label used anywhere in the pivot, oldest first."""
    periods = {p for bonds in pivot.values() for buckets in bonds.values() for p in buckets}
    return sorted(periods, key=lambda p: period_sort_key(p, duration_view))


# ═══════════════════════════════════════════════════════════
#  PIVOT
# ═══════════════════════════════════════════════════════════

def repayment_amount(entry: RepaymentEntry, view_type: ViewType) -> float:
    """The part of a repayment that counts toward the selected view."""
    if view_type == ViewType.INTEREST_PAID:
        return entry.interest_paid_after_tds
    if view_type == ViewType.PRINCIPAL_PAID:
        return entry.principal_repaid
    if view_type == ViewType.PRINCIPAL_AND_INTEREST_PAID:
        return entry.principal_repaid + entry.interest_paid_after_tds
    return 0.0


def _pivot_row_for(entry: RepaymentEntry,
                   issuer_by_series: Dict[Tuple[str, str], str],
                   policy: Optional[JoinPolicy]) -> Optional[Tuple[str, str]]:
    """(issuer, bond_name) row a repayment counts toward, or None.

    Without a policy the repayment goes to the series with the same bond
    name.  Under a policy, a series with the same bond name wins over one
    matched by ISIN only; ties resolve to the smallest series key.
    """
    if policy is None:
        candidates = sorted(key for key in issuer_by_series if key[0] == entry.bond_name)
    else:
        candidates = sorted(
            key for key in issuer_by_series
            if matches_series(entry, key[0], key[1], policy)
        )
    if not candidates:
        return None
    same_name = [key for key in candidates if key[0] == entry.bond_name]
    name, isin = (same_name or candidates)[0]
    return issuer_by_series[(name, isin)], name


def build_pivot(filtered: Iterable[BondInvestment],
                duration_view: DurationView = DurationView.MONTHS,
                view_type: ViewType = ViewType.INVESTMENT,
                repayments: Optional[Iterable[RepaymentEntry]] = None,
                policy: Optional[JoinPolicy] = None) -> Pivot:
    """issuer → bond name → period → summed amount.

    Investment view buckets invested_amount by investment date.  The paid
    views bucket repayments by payment date, attributing each to a filtered
    investment: by bond name when no policy is given, by (bond name, ISIN)
    under JoinPolicy.STRICT, by bond name or ISIN under JoinPolicy.LOOSE.
    Repayments for bonds not in the filtered set are ignored.

    Amounts are collected first and summed with math.fsum so the result does
    not depend on row order.
    """
    parts: Dict[str, Dict[str, Dict[str, List[float]]]] = defaultdict(
        lambda: defaultdict(lambda: defaultdict(list))
    )
    filtered = list(filtered or [])

    if view_type == ViewType.INVESTMENT:
        for inv in filtered:
            invested_on = parse_dmy(inv.date_of_investment)
            key = bucket_key(invested_on, duration_view, inv.month_year or None)
            parts[inv.bond_issuer][inv.bond_name][key].append(inv.invested_amount)
    else:
        issuer_by_series = {inv.series_key: inv.bond_issuer for inv in filtered}
        for entry in repayments or []:
            row = _pivot_row_for(entry, issuer_by_series, policy)
            if row is None:
                continue
            issuer, name = row
            key = bucket_key(parse_dmy(entry.date), duration_view)
            parts[issuer][name][key].append(repayment_amount(entry, view_type))

    return {
        issuer: {
            name: {period: math.fsum(vals) for period, vals in buckets.items()}
            for name, buckets in bonds.items()
        }
        for issuer, bonds in parts.items()
    }


def series_total(pivot: Pivot, issuer: str, bond_name: str) -> float:
    return math.fsum(pivot.get(issuer, {}).get(bond_name, {}).values())


def issuer_total(pivot: Pivot, issuer: str) -> float:
    """Sum over every bond series and period of one issuer (0 if absent)."""
    return math.fsum(
        amount
        for buckets in pivot.get(issuer, {}).values()
        for amount in buckets.values()
    )


def issuer_totals(pivot: Pivot) -> Dict[str, float]:
    return {issuer: issuer_total(pivot, issuer) for issuer in pivot}


def grand_total(pivot: Pivot) -> float:
    return math.fsum(issuer_totals(pivot).values())


def issuer_period_totals(pivot: Pivot, issuer: str) -> Dict[str, float]:
    """Per-period totals of one issuer across its bond series."""
    parts: Dict[str, List[float]] = defaultdict(list)
    for buckets in pivot.get(issuer, {}).values():
        for period, amount in buckets.items():
            parts[period].append(amount)
    return {period: math.fsum(vals) for period, vals in parts.items()}


def sort_issuers(pivot: Pivot, field: SortField = SortField.ISSUER,
                 direction: SortDirection = SortDirection.ASC) -> List[str]:
    """Issuer names ordered for the table (by name or by total)."""
    reverse = direction == SortDirection.DESC
    if field == SortField.INVESTMENT:
        totals = issuer_totals(pivot)
        return sorted(pivot, key=lambda i: (totals[i], i.lower()), reverse=reverse)
    return sorted(pivot, key=lambda i: (i.lower(), i), reverse=reverse)


def chart_data(pivot: Pivot, periods: Sequence[str]) -> List[dict]:
    """Stacked-bar rows: {"period": label, issuer: amount, ...}; zero issuers omitted."""
    per_issuer = {issuer: issuer_period_totals(pivot, issuer) for issuer in pivot}
    rows = []
    for period in periods:
        row = {"period": period}
        for issuer, totals in per_issuer.items():
            amount = totals.get(period, 0.0)
            if amount > 0:
                row[issuer] = amount
        rows.append(row)
    return rows


def average_per_period(pivot: Pivot, periods: Sequence[str]) -> float:
    if not periods:
        return 0.0
    return grand_total(pivot) / len(periods)


def average_xirr(investments: Iterable[BondInvestment]) -> float:
    """Arithmetic mean XIRR; 0 for an empty set."""
    values = [inv.xirr for inv in investments or []]
    if not values:
        return 0.0
    return math.fsum(values) / len(values)


# ═══════════════════════════════════════════════════════════
#  RECONCILIATION  (investments ↔ repayments)
# ═══════════════════════════════════════════════════════════

def _as_series(series: SeriesLike) -> List[BondInvestment]:
    if isinstance(series, BondInvestment):
        return [series]
    return list(series or [])


def matches_series(entry: RepaymentEntry, bond_name: str, isin: str,
                   policy: JoinPolicy = JoinPolicy.STRICT) -> bool:
    """Does this repayment belong to the (bond_name, isin) series?

    An empty ISIN never matches on its own under the loose policy.
    """
    if policy == JoinPolicy.LOOSE:
        return entry.bond_name == bond_name or bool(isin and entry.isin == isin)
    return entry.bond_name == bond_name and entry.isin == isin


def series_investments(investments: Iterable[BondInvestment],
                       bond_name: str, isin: str) -> List[BondInvestment]:
    """All tranches of one bond series."""
    return [inv for inv in investments or [] if inv.bond_name == bond_name and inv.isin == isin]


def matching_repayments(series: SeriesLike, repayments: Iterable[RepaymentEntry],
                        policy: JoinPolicy = JoinPolicy.STRICT) -> List[RepaymentEntry]:
    keys = {inv.series_key for inv in _as_series(series)}
    return [
        entry for entry in repayments or []
        if any(matches_series(entry, name, isin, policy) for name, isin in keys)
    ]


def total_invested(series: SeriesLike) -> float:
    return math.fsum(inv.invested_amount for inv in _as_series(series))


def principal_repaid(series: SeriesLike, repayments: Iterable[RepaymentEntry],
                     policy: JoinPolicy = JoinPolicy.STRICT) -> float:
    return math.fsum(e.principal_repaid for e in matching_repayments(series, repayments, policy))


def remaining_principal(series: SeriesLike, repayments: Iterable[RepaymentEntry],
                        policy: JoinPolicy = JoinPolicy.STRICT) -> float:
    """Invested minus principal repaid, floored at zero."""
    return max(0.0, total_invested(series) - principal_repaid(series, repayments, policy))


def interest_paid_rollup(series: SeriesLike, repayments: Iterable[RepaymentEntry],
                         before_tds: bool = False,
                         policy: JoinPolicy = JoinPolicy.STRICT) -> float:
    """Interest received for the series, after TDS unless before_tds is set."""
    matched = matching_repayments(series, repayments, policy)
    if before_tds:
        return math.fsum(e.interest_paid_before_tds for e in matched)
    return math.fsum(e.interest_paid_after_tds for e in matched)


def group_series(investments: Iterable[BondInvestment]) -> Dict[Tuple[str, str], List[BondInvestment]]:
    """(bond_name, isin) → tranches, in first-seen order."""
    groups: Dict[Tuple[str, str], List[BondInvestment]] = {}
    for inv in investments or []:
        groups.setdefault(inv.series_key, []).append(inv)
    return groups


def issuer_rollups(investments: Iterable[BondInvestment],
                   repayments: Iterable[RepaymentEntry],
                   policy: JoinPolicy = JoinPolicy.STRICT) -> List[IssuerRollup]:
    """Per-issuer invested / repaid / remaining / interest figures.

    Remaining principal is floored per series before summing, so an
    over-repaid series never hides another series' outstanding balance.
    """
    repayments = list(repayments or [])
    by_issuer: Dict[str, List[List[BondInvestment]]] = defaultdict(list)
    for tranches in group_series(investments).values():
        by_issuer[tranches[0].bond_issuer].append(tranches)

    rollups = []
    for issuer in sorted(by_issuer, key=lambda i: (i.lower(), i)):
        all_series = by_issuer[issuer]
        rollups.append(IssuerRollup(
            issuer=issuer,
            invested=round(math.fsum(total_invested(s) for s in all_series), 2),
            principal_repaid=round(math.fsum(principal_repaid(s, repayments, policy) for s in all_series), 2),
            principal_remaining=round(math.fsum(remaining_principal(s, repayments, policy) for s in all_series), 2),
            interest_before_tds=round(math.fsum(
                interest_paid_rollup(s, repayments, before_tds=True, policy=policy) for s in all_series), 2),
            interest_after_tds=round(math.fsum(
                interest_paid_rollup(s, repayments, policy=policy) for s in all_series), 2),
            series_count=len(all_series),
        ))
    return rollups


def repayment_schedule(series: SeriesLike, repayments: Iterable[RepaymentEntry],
                       policy: JoinPolicy = JoinPolicy.STRICT) -> List[RepaymentScheduleEntry]:
    """Realized repayments of a series, oldest first, with running principal balance.

    Only payments actually received are listed; nothing is projected.
    """
    invested = total_invested(series)
    matched = matching_repayments(series, repayments, policy)
    matched.sort(key=lambda e: parse_dmy(e.date) or date.max)

    schedule = []
    repaid_so_far: List[float] = []
    for entry in matched:
        repaid_so_far.append(entry.principal_repaid)
        schedule.append(RepaymentScheduleEntry(
            date=entry.date,
            principal_payment=entry.principal_repaid,
            interest_payment=entry.interest_paid_before_tds,
            total_payment=entry.principal_repaid + entry.interest_paid_before_tds,
            principal_balance=max(0.0, invested - math.fsum(repaid_so_far)),
            status="Paid",
        ))
    return schedule


def missed_interest_months(investment: BondInvestment,
                           repayments: Iterable[RepaymentEntry],
                           as_of: Optional[date] = None,
                           policy: JoinPolicy = JoinPolicy.STRICT) -> List[str]:
    """Months with no interest credit for a monthly-interest bond.

    Expected months run from the month after investment up to the earlier of
    as_of and maturity.  The as_of month itself is never reported since its
    payment may still arrive.  Labels look like "November 2023".
    """
    if (investment.interest_frequency or "").strip().lower() != "monthly":
        return []
    invested_on = parse_dmy(investment.date_of_investment)
    if invested_on is None:
        return []

    as_of = as_of or date.today()
    maturity = parse_dmy(investment.maturity_date)
    end = as_of if maturity is None or as_of < maturity else maturity
    current_month = as_of.replace(day=1)

    paid_months = set()
    for entry in matching_repayments(investment, repayments, policy):
        paid_on = parse_dmy(entry.date)
        if paid_on is not None and entry.interest_paid_before_tds > 0:
            paid_months.add((paid_on.year, paid_on.month))

    missed: List[str] = []
    month = invested_on.replace(day=1) + relativedelta(months=1)
    while month <= end:
        if month < current_month and (month.year, month.month) not in paid_months:
            label = month_label(month, full=True)
            if label not in missed:
                missed.append(label)
        month += relativedelta(months=1)
    return missed


# ═══════════════════════════════════════════════════════════
#  VIEW BUNDLES
# ═══════════════════════════════════════════════════════════

def portfolio_summary(investments: Sequence[BondInvestment],
                      repayments: Sequence[RepaymentEntry]) -> PortfolioSummary:
    """Header cards: totals, active / matured counts, issuers, average XIRR."""
    investments = list(investments or [])
    repayments = list(repayments or [])
    total = math.fsum(inv.invested_amount for inv in investments)
    matured = sum(1 for inv in investments if inv.matured)
    return PortfolioSummary(
        total_investment=round(total, 2),
        total_value=round(total, 2),
        total_bonds=len(investments),
        active_bonds=len(investments) - matured,
        matured_bonds=matured,
        unique_issuers=len({inv.bond_issuer for inv in investments}),
        overall_avg_xirr=round(average_xirr(investments), 2),
        total_principal_repaid=round(math.fsum(e.principal_repaid for e in repayments), 2),
        total_interest_before_tds=round(math.fsum(e.interest_paid_before_tds for e in repayments), 2),
        total_interest_after_tds=round(math.fsum(e.interest_paid_after_tds for e in repayments), 2),
        total_tds_deducted=round(math.fsum(e.tds_deducted for e in repayments), 2),
    )


def build_analysis(investments: Sequence[BondInvestment],
                   repayments: Sequence[RepaymentEntry],
                   view: Optional[ViewState] = None,
                   today: Optional[date] = None) -> BondAnalysis:
    """Everything the analysis table and chart need for one view selection."""
    view = view or ViewState()
    filtered = filter_active(investments, view.duration_filter, today=today)
    pivot = build_pivot(filtered, view.duration_view, view.view_type, repayments,
                        policy=view.join_policy)
    periods = sorted_periods(pivot, view.duration_view)

    rows = []
    for issuer in sort_issuers(pivot, view.sort_field, view.sort_direction):
        expanded = issuer in view.expanded_issuers
        bonds = []
        if expanded:
            bonds = [
                SeriesRow(bond_name=name, total=series_total(pivot, issuer, name), periods=dict(buckets))
                for name, buckets in sorted(pivot[issuer].items())
            ]
        rows.append(IssuerRow(
            issuer=issuer,
            total=issuer_total(pivot, issuer),
            bond_count=sum(1 for inv in filtered if inv.bond_issuer == issuer),
            expanded=expanded,
            periods=issuer_period_totals(pivot, issuer),
            bonds=bonds,
        ))

    return BondAnalysis(
        view=view,
        periods=periods,
        pivot=pivot,
        issuers=rows,
        grand_total=grand_total(pivot),
        unique_issuers=len(pivot),
        active_avg_xirr=round(average_xirr(filtered), 2),
        overall_avg_xirr=round(average_xirr(investments), 2),
        average_per_period=average_per_period(pivot, periods),
        chart=chart_data(pivot, periods),
    )


def bond_details(investments: Sequence[BondInvestment],
                 repayments: Sequence[RepaymentEntry],
                 bond_name: str, isin: str,
                 policy: JoinPolicy = JoinPolicy.STRICT,
                 as_of: Optional[date] = None) -> Optional[BondDetails]:
    """Details-dialog figures for one bond series; None if the series is unknown."""
    series = series_investments(investments, bond_name, isin)
    if not series:
        return None
    series.sort(key=lambda inv: parse_dmy(inv.date_of_investment) or date.max)
    first = series[0]
    repayments = list(repayments or [])
    return BondDetails(
        bond_name=bond_name,
        isin=isin,
        issuer=first.bond_issuer,
        matured=first.matured,
        xirr=first.xirr,
        date_of_investment=first.date_of_investment,
        maturity_date=first.maturity_date,
        interest_frequency=first.interest_frequency,
        principal_frequency=first.principal_frequency,
        tranches=len(series),
        total_units=math.fsum(inv.units for inv in series),
        total_investment=round(total_invested(series), 2),
        principal_repaid=round(principal_repaid(series, repayments, policy), 2),
        principal_remaining=round(remaining_principal(series, repayments, policy), 2),
        interest_before_tds=round(interest_paid_rollup(series, repayments, before_tds=True, policy=policy), 2),
        interest_after_tds=round(interest_paid_rollup(series, repayments, policy=policy), 2),
        schedule=repayment_schedule(series, repayments, policy),
        missed_interest_months=missed_interest_months(first, repayments, as_of=as_of, policy=policy),
    )
