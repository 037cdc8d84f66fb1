"""Pure analytics over a built NAV series.

Every function takes an ordered list of ``SeriesPoint`` (oldest first, the first
point being the scheme baseline) and returns fresh values; nothing here keeps
state between calls. Short or empty series degrade to ``None``, ``0`` or the
``"-"`` no-data marker instead of raising.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date

from app.schemas.portfolio import (
    CashFlowOut,
    DrawdownCurvePointOut,
    EquityCurvePointOut,
    MonthCellOut,
    MonthlyYearOut,
    QuarterlyYearOut,
    QuarterValuesOut,
    TrailingReturnsOut,
)
from app.services.series import SeriesPoint
from app.utils.decimal_math import NO_DATA, money_str, parse_amount, round2


ANNUALIZE_AFTER_DAYS = 365

# Trailing horizons in trading-day points, approximating calendar periods.
TRAILING_HORIZONS: dict[str, int] = {
    "5d": 5,
    "10d": 10,
    "15d": 15,
    "1m": 21,
    "3m": 63,
    "6m": 126,
    "1y": 252,
    "2y": 504,
    "5y": 1260,
}

MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)
QUARTER_KEYS = ("q1", "q2", "q3", "q4")


@dataclass(frozen=True)
class Exposure:
    date: date
    portfolio_value: float
    nav: float
    drawdown: float


@dataclass(frozen=True)
class DrawdownMetrics:
    curve: list[DrawdownCurvePointOut]
    mdd: float
    current_dd: float


@dataclass
class _Bucket:
    start_nav: float
    end_nav: float
    cash: float = 0.0
    capital_in_out: float = 0.0

    @property
    def percent(self) -> float | None:
        if self.start_nav == 0:
            return None
        return (self.end_nav / self.start_nav - 1) * 100


def _ratio_return(end: float, start: float) -> float | None:
    if start == 0:
        return None
    return (end / start - 1) * 100


def amount_deposited(points: Sequence[SeriesPoint]) -> float:
    return sum(point.capital_in_out for point in points)


def total_profit(points: Sequence[SeriesPoint]) -> float:
    return sum(point.pnl for point in points)


def latest_exposure(points: Sequence[SeriesPoint]) -> Exposure | None:
    for point in reversed(points):
        if point.baseline:
            continue
        return Exposure(
            date=point.date,
            portfolio_value=point.portfolio_value,
            nav=point.nav,
            drawdown=point.drawdown,
        )
    return None


def total_return(points: Sequence[SeriesPoint]) -> float | None:
    """Absolute return under a year of history, CAGR from a year onwards."""
    if len(points) < 2:
        return 0.0
    first, last = points[0], points[-1]
    if first.nav == 0:
        return None
    days = (last.date - first.date).days
    if days < ANNUALIZE_AFTER_DAYS:
        return (last.nav / first.nav - 1) * 100
    return ((last.nav / first.nav) ** (ANNUALIZE_AFTER_DAYS / days) - 1) * 100


def running_peaks(points: Sequence[SeriesPoint]) -> list[float]:
    peaks: list[float] = []
    peak = points[0].nav if points else 0.0
    for point in points:
        peak = max(peak, point.nav)
        peaks.append(peak)
    return peaks


def drawdown_metrics(points: Sequence[SeriesPoint]) -> DrawdownMetrics:
    if not points:
        return DrawdownMetrics(curve=[], mdd=0.0, current_dd=0.0)

    curve: list[DrawdownCurvePointOut] = []
    mdd = 0.0
    for point, peak in zip(points, running_peaks(points)):
        value = (point.nav - peak) / peak * 100 if peak != 0 else 0.0
        mdd = min(mdd, value)
        curve.append(DrawdownCurvePointOut(date=point.date.isoformat(), drawdown=value))
    return DrawdownMetrics(curve=curve, mdd=mdd, current_dd=curve[-1].drawdown)


def trailing_return(points: Sequence[SeriesPoint], horizon: int) -> float | None:
    if len(points) <= horizon:
        return None
    return _ratio_return(points[-1].nav, points[len(points) - 1 - horizon].nav)


def trailing_returns(
    points: Sequence[SeriesPoint],
    mdd: float = 0.0,
    current_dd: float = 0.0,
) -> TrailingReturnsOut:
    values: dict[str, float | None] = {
        key: round2(trailing_return(points, horizon)) for key, horizon in TRAILING_HORIZONS.items()
    }
    since_inception = _ratio_return(points[-1].nav, points[0].nav) if points else None
    return TrailingReturnsOut.model_validate(
        {
            **values,
            "sinceInception": round2(since_inception),
            "MDD": round2(mdd),
            "currentDD": round2(current_dd),
        }
    )


def equity_curve(points: Sequence[SeriesPoint]) -> list[EquityCurvePointOut]:
    return [EquityCurvePointOut(date=point.date.isoformat(), nav=point.nav) for point in points]


def cash_flows(points: Sequence[SeriesPoint]) -> list[CashFlowOut]:
    return [
        CashFlowOut(date=point.date.isoformat(), amount=point.capital_in_out, dividend=0.0)
        for point in points
        if point.capital_in_out != 0
    ]


def _bucketize(
    points: Sequence[SeriesPoint],
    key: Callable[[date], tuple[int, int]],
) -> dict[int, dict[int, _Bucket]]:
    """Group every point after the baseline into (year, sub-period) buckets.

    A bucket opens at the NAV of the point just before its first point, which is
    the previous bucket's closing NAV (or the baseline for the first bucket).
    """
    table: dict[int, dict[int, _Bucket]] = {}
    for index in range(1, len(points)):
        point = points[index]
        year, sub = key(point.date)
        year_buckets = table.setdefault(year, {})
        bucket = year_buckets.get(sub)
        if bucket is None:
            start_nav = points[index - 1].nav or point.nav
            bucket = _Bucket(start_nav=start_nav, end_nav=point.nav)
            year_buckets[sub] = bucket
        bucket.end_nav = point.nav
        bucket.cash += point.pnl
        bucket.capital_in_out += point.capital_in_out
    return table


def _month_key(day: date) -> tuple[int, int]:
    return day.year, day.month


def _quarter_key(day: date) -> tuple[int, int]:
    return day.year, (day.month - 1) // 3 + 1


def _pct_str(value: float | None) -> str:
    return NO_DATA if value is None else money_str(value)


def _empty_month() -> MonthCellOut:
    return MonthCellOut(percent=NO_DATA, cash=NO_DATA, capital_in_out=NO_DATA)


def _monthly_year(
    months: dict[str, MonthCellOut],
    percents: Sequence[float],
    cash: float,
    capital_in_out: float,
) -> MonthlyYearOut:
    return MonthlyYearOut(
        months=months,
        total_percent=round2(sum(percents)) if percents else NO_DATA,
        total_cash=round2(cash),
        total_capital_in_out=round2(capital_in_out),
    )


def _monthly_year_from_cells(months: dict[str, MonthCellOut]) -> MonthlyYearOut:
    return _monthly_year(
        months,
        [parse_amount(cell.percent) for cell in months.values() if cell.percent != NO_DATA],
        sum(parse_amount(cell.cash) for cell in months.values()),
        sum(parse_amount(cell.capital_in_out) for cell in months.values()),
    )


def monthly_pnl(points: Sequence[SeriesPoint]) -> dict[str, MonthlyYearOut]:
    """Monthly P&L per year. Year totals are summed from the unrounded buckets."""
    table = _bucketize(points, _month_key)
    result: dict[str, MonthlyYearOut] = {}
    for year in sorted(table):
        buckets = table[year]
        months: dict[str, MonthCellOut] = {}
        for month_index, month_name in enumerate(MONTH_NAMES, start=1):
            bucket = buckets.get(month_index)
            if bucket is None:
                months[month_name] = _empty_month()
                continue
            months[month_name] = MonthCellOut(
                percent=_pct_str(bucket.percent),
                cash=money_str(bucket.cash),
                capital_in_out=money_str(bucket.capital_in_out),
            )
        result[str(year)] = _monthly_year(
            months,
            [bucket.percent for bucket in buckets.values() if bucket.percent is not None],
            sum(bucket.cash for bucket in buckets.values()),
            sum(bucket.capital_in_out for bucket in buckets.values()),
        )
    return result


def _quarterly_year(
    percent: dict[str, str],
    cash: dict[str, str],
    percents: Sequence[float],
    cash_total: float,
) -> QuarterlyYearOut:
    year_cash = money_str(cash_total)
    return QuarterlyYearOut(
        percent=QuarterValuesOut(**percent, total=money_str(sum(percents)) if percents else NO_DATA),
        cash=QuarterValuesOut(**cash, total=year_cash),
        year_cash=year_cash,
    )


def _quarterly_year_from_cells(percent: dict[str, str], cash: dict[str, str]) -> QuarterlyYearOut:
    return _quarterly_year(
        percent,
        cash,
        [parse_amount(percent[quarter]) for quarter in QUARTER_KEYS if percent[quarter] != NO_DATA],
        sum(parse_amount(cash[quarter]) for quarter in QUARTER_KEYS),
    )


def quarterly_pnl(points: Sequence[SeriesPoint]) -> dict[str, QuarterlyYearOut]:
    table = _bucketize(points, _quarter_key)
    result: dict[str, QuarterlyYearOut] = {}
    for year in sorted(table):
        buckets = table[year]
        percent: dict[str, str] = {}
        cash: dict[str, str] = {}
        for quarter_index, quarter in enumerate(QUARTER_KEYS, start=1):
            bucket = buckets.get(quarter_index)
            percent[quarter] = NO_DATA if bucket is None else _pct_str(bucket.percent)
            cash[quarter] = NO_DATA if bucket is None else money_str(bucket.cash)
        result[str(year)] = _quarterly_year(
            percent,
            cash,
            [bucket.percent for bucket in buckets.values() if bucket.percent is not None],
            sum(bucket.cash for bucket in buckets.values()),
        )
    return result


# ── composite merges ──


def _sum_cells(left: str, right: str) -> str:
    if left == NO_DATA:
        return right
    if right == NO_DATA:
        return left
    return money_str(parse_amount(left) + parse_amount(right))


def _month_present(cell: MonthCellOut) -> bool:
    return any(value != NO_DATA for value in (cell.percent, cell.cash, cell.capital_in_out))


def merge_monthly_pnl(tables: Sequence[dict[str, MonthlyYearOut]]) -> dict[str, MonthlyYearOut]:
    """Fold component monthly tables, oldest component first.

    A year seen in one table only is copied as is. In a shared year, each
    month's percent, cash and capital flow are summed across components and
    the year totals are recomputed from the months.
    """
    merged: dict[str, MonthlyYearOut] = {}
    for table in tables:
        for year, incoming in table.items():
            existing = merged.get(year)
            if existing is None:
                merged[year] = incoming.model_copy(deep=True)
                continue
            months: dict[str, MonthCellOut] = {}
            for month_name in MONTH_NAMES:
                left = existing.months.get(month_name, _empty_month())
                right = incoming.months.get(month_name, _empty_month())
                if not _month_present(right):
                    months[month_name] = left
                elif not _month_present(left):
                    months[month_name] = right
                else:
                    months[month_name] = MonthCellOut(
                        percent=_sum_cells(left.percent, right.percent),
                        cash=_sum_cells(left.cash, right.cash),
                        capital_in_out=_sum_cells(left.capital_in_out, right.capital_in_out),
                    )
            merged[year] = _monthly_year_from_cells(months)
    return dict(sorted(merged.items()))


def merge_quarterly_pnl(tables: Sequence[dict[str, QuarterlyYearOut]]) -> dict[str, QuarterlyYearOut]:
    """Quarterly counterpart of :func:`merge_monthly_pnl`.

    Shared-year percentages are arithmetic sums of the quarter percentages,
    not a recomputation from the combined NAV series.
    """
    merged: dict[str, QuarterlyYearOut] = {}
    for table in tables:
        for year, incoming in table.items():
            existing = merged.get(year)
            if existing is None:
                merged[year] = incoming.model_copy(deep=True)
                continue
            percent: dict[str, str] = {}
            cash: dict[str, str] = {}
            for quarter in QUARTER_KEYS:
                percent[quarter] = _sum_cells(getattr(existing.percent, quarter), getattr(incoming.percent, quarter))
                cash[quarter] = _sum_cells(getattr(existing.cash, quarter), getattr(incoming.cash, quarter))
            merged[year] = _quarterly_year_from_cells(percent, cash)
    return dict(sorted(merged.items()))
