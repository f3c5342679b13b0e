"""
Sales Aggregation.

Turns daily ``SalesRecord`` rows into the period totals consumed by the
incentive engine, and resolves the dashboard's date filters into
concrete inclusive windows.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from tracker.exceptions import InvalidInputError
from tracker.models.evaluation import EvaluationInput, derive_commission_rate
from tracker.models.sales_data import SalesRecord
from tracker.models.service_models import AccountPerformance


def resolve_window(
    today: date,
    preset_days: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> tuple[date, date]:
    """Resolve a date filter into an inclusive ``(start, end)`` window.

    An explicit range wins over a preset.  A preset of *n* days covers
    the *n* days ending on *today*.  With neither, the window is the
    single day *today*.

    Raises:
        InvalidInputError: On a non-positive preset or a reversed range.
    """
    if start_date is not None or end_date is not None:
        start = start_date or end_date
        end = end_date or start_date
        if start > end:
            raise InvalidInputError(f"Start date {start} is after end date {end}.")
        return start, end

    if preset_days is None:
        return today, today
    if preset_days < 1:
        raise InvalidInputError(f"Preset window must be at least one day, got {preset_days}.")
    return today - timedelta(days=preset_days - 1), today


def aggregate_sales(
    account_id: str,
    records: Iterable[SalesRecord],
    start_date: date,
    end_date: date,
) -> AccountPerformance:
    """Sum *account_id*'s records dated inside ``[start_date, end_date]``.

    Records for other accounts or outside the window are ignored, so the
    caller may pass an unfiltered feed.
    """
    count = clicks = orders = products = buyers = commission = revenue = 0
    for record in records:
        if record.account_id != account_id:
            continue
        if not start_date <= record.date <= end_date:
            continue
        count += 1
        clicks += record.clicks
        orders += record.orders
        products += record.products_sold
        buyers += record.new_buyers
        commission += record.gross_commission
        revenue += record.total_purchases

    rate: Decimal = derive_commission_rate(commission, revenue)
    return AccountPerformance(
        account_id=account_id,
        start_date=start_date,
        end_date=end_date,
        record_count=count,
        clicks=clicks,
        orders=orders,
        products_sold=products,
        new_buyers=buyers,
        period_commission=commission,
        period_revenue=revenue,
        commission_rate=rate,
    )


def to_evaluation_input(
    performance: AccountPerformance,
    nominal_rate: Optional[Decimal] = None,
) -> EvaluationInput:
    """Build the engine input for an aggregated period.

    *nominal_rate* is the account's agreed commission rate; without it
    the rate observed in the sales data picks the rule band.
    """
    return EvaluationInput(
        account_id=performance.account_id,
        period_commission=performance.period_commission,
        period_revenue=performance.period_revenue,
        commission_rate=nominal_rate if nominal_rate is not None else performance.commission_rate,
        period_start=performance.start_date,
        period_end=performance.end_date,
    )
