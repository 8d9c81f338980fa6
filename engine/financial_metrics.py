"""
Derived financial metrics for deals and financial summaries.

Ratios are kept at full precision so threshold checks see the real value;
rounding happens only when values are formatted for reports.
"""
from typing import List, Optional

from models.deal import Deal, FinancialSummary, KeyMetrics, OccupancyMetrics, Tenant


def safe_ratio(numerator: float, denominator: float) -> float:
    """numerator / denominator, 0 when the denominator is 0"""
    if not denominator:
        return 0.0
    return numerator / denominator


def expense_ratio(total_revenue: float, total_expenses: float) -> float:
    """Expenses as a percentage of revenue (0 when there is no revenue)"""
    if not total_revenue:
        return 0.0
    return total_expenses * 100 / total_revenue


def price_per_unit(asking_price: float, total_units: int) -> float:
    if total_units <= 0:
        return 0.0
    return asking_price / total_units


def noi_per_unit(net_operating_income: float, total_units: int) -> float:
    if total_units <= 0:
        return 0.0
    return net_operating_income / total_units


def debt_service_coverage(net_operating_income: float, debt_service: float) -> Optional[float]:
    """DSCR, or None when debt service is unknown"""
    if debt_service <= 0:
        return None
    return net_operating_income / debt_service


def market_rent_coverage(tenants: List[Tenant]) -> Optional[float]:
    """
    In-place rent as a percentage of market rent, over units reporting both.
    None when no unit has market rent data.
    """
    reporting = [t for t in tenants if t.market_rent and t.monthly_rent > 0]
    if not reporting:
        return None
    in_place = sum(t.monthly_rent for t in reporting)
    market = sum(t.market_rent for t in reporting)
    return in_place * 100 / market


def occupancy_metrics(tenants: List[Tenant], total_units: int = 0) -> OccupancyMetrics:
    """
    Occupancy from rent-roll tenants. Notice units count as occupied.
    An empty tenant list means occupancy is unknown (0).
    """
    units = total_units if total_units > 0 else len(tenants)
    if not tenants:
        return OccupancyMetrics(total_units=units)

    occupied = len([t for t in tenants if t.is_occupied])
    total_rent = sum(t.monthly_rent for t in tenants)
    return OccupancyMetrics(
        total_units=units,
        occupied_units=occupied,
        occupancy_rate=occupied * 100 / len(tenants),
        avg_rent_per_unit=total_rent / len(tenants),
    )


def recompute_summary(
    summary: FinancialSummary,
    tenants: List[Tenant],
    total_units: int = 0,
) -> FinancialSummary:
    """Refresh every derived field of the summary in place and return it"""
    summary.net_operating_income = round(summary.total_revenue - summary.total_expenses, 2)
    summary.cash_flow = round(summary.net_operating_income - summary.debt_service, 2)
    summary.occupancy_metrics = occupancy_metrics(tenants, total_units)

    units = summary.occupancy_metrics.total_units
    summary.key_metrics = KeyMetrics(
        expense_ratio=expense_ratio(summary.total_revenue, summary.total_expenses),
        income_per_unit=safe_ratio(summary.total_revenue, units),
        expense_per_unit=safe_ratio(summary.total_expenses, units),
        noi_per_unit=noi_per_unit(summary.net_operating_income, units),
    )
    return summary


def apply_to_deal(deal: Deal, summary: FinancialSummary) -> Deal:
    """Copy summary-derived values onto the deal's snapshot fields"""
    if deal.basic_info.total_units <= 0:
        deal.basic_info.total_units = summary.occupancy_metrics.total_units
    deal.basic_info.price_per_unit = price_per_unit(deal.basic_info.asking_price, deal.basic_info.total_units)

    deal.financial_data.annual_gross_rent = summary.total_revenue
    deal.financial_data.net_operating_income = summary.net_operating_income
    deal.financial_data.operating_expenses = summary.total_expenses
    deal.financial_data.expense_ratio = summary.key_metrics.expense_ratio
    deal.financial_data.occupancy_rate = summary.occupancy_metrics.occupancy_rate
    return deal
