from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, timedelta
import logging

from app.schemas.portfolio import FrozenBundle
from app.services.record_store import RecordStore


logger = logging.getLogger("navboard.series")

BASELINE_NAV = 100.0


@dataclass(frozen=True)
class SeriesPoint:
    date: date
    nav: float
    drawdown: float = 0.0
    pnl: float = 0.0
    capital_in_out: float = 0.0
    portfolio_value: float = 0.0
    baseline: bool = False

    def with_nav(self, nav: float) -> SeriesPoint:
        return replace(self, nav=nav)


def baseline_point(first_day: date) -> SeriesPoint:
    return SeriesPoint(date=first_day - timedelta(days=1), nav=BASELINE_NAV, baseline=True)


def build_historical_series(
    store: RecordStore,
    system_tag: str,
    start_date: date | None = None,
    end_date: date | None = None,
    *,
    qcode: str | None = None,
) -> list[SeriesPoint]:
    """Daily points for a live scheme, oldest first, led by a synthetic NAV-100 day.

    ``RecordStoreError`` from the store propagates; an empty window returns ``[]``.
    """
    records = store.list_records(system_tag, start_date, end_date, qcode=qcode)
    records = sorted(
        (
            record
            for record in records
            if (start_date is None or record.date >= start_date)
            and (end_date is None or record.date <= end_date)
        ),
        key=lambda record: record.date,
    )
    if not records:
        logger.debug("No records for %s in window %s..%s.", system_tag, start_date, end_date)
        return []

    points = [baseline_point(records[0].date)]
    points.extend(
        SeriesPoint(
            date=record.date,
            nav=record.nav,
            drawdown=abs(record.drawdown),
            pnl=record.pnl,
            capital_in_out=record.capital_in_out,
            portfolio_value=record.portfolio_value,
        )
        for record in records
    )
    logger.debug("Built %s points for %s.", len(points), system_tag)
    return points


def frozen_series(bundle: FrozenBundle) -> list[SeriesPoint]:
    """Replay an archived equity curve as series points.

    The archive already starts at its own inception point, so no baseline is added.
    """
    drawdown_by_date = {point.date: point.drawdown for point in bundle.data.drawdown_curve}
    points = [
        SeriesPoint(
            date=date.fromisoformat(point.date),
            nav=point.nav,
            drawdown=abs(drawdown_by_date.get(point.date, 0.0)),
        )
        for point in bundle.data.equity_curve
    ]
    points.sort(key=lambda point: point.date)
    return points
