from datetime import date

import pytest

from app.core.config import DATA_DIR
from app.services.frozen_archive import load_bundle
from app.services.record_store import DailyRecord, RecordStoreError
from app.services.series import BASELINE_NAV, build_historical_series, frozen_series


class _ListStore:
    def __init__(self, records: list[DailyRecord]) -> None:
        self.records = records
        self.calls: list[tuple] = []

    def list_records(self, system_tag, start_date=None, end_date=None, *, qcode=None):
        self.calls.append((system_tag, start_date, end_date, qcode))
        return [record for record in self.records if record.system_tag == system_tag]

    def clear_cache(self) -> None:
        return None


class _BrokenStore:
    def list_records(self, system_tag, start_date=None, end_date=None, *, qcode=None):
        raise RecordStoreError("database unavailable")

    def clear_cache(self) -> None:
        return None


def _record(day: date, nav: float, **values) -> DailyRecord:
    return DailyRecord(system_tag="Zerodha Total Portfolio", date=day, nav=nav, **values)


def test_series_starts_with_baseline_day_before_first_record() -> None:
    store = _ListStore(
        [
            _record(date(2026, 1, 14), 100.9, drawdown=-0.2),
            _record(date(2026, 1, 12), 100.4, capital_in_out=5_000_000, portfolio_value=5_020_000),
            _record(date(2026, 1, 13), 101.1, pnl=3500),
        ]
    )

    points = build_historical_series(store, "Zerodha Total Portfolio", qcode="QAC00053")

    assert points[0].baseline
    assert points[0].date == date(2026, 1, 11)
    assert points[0].nav == BASELINE_NAV
    assert [point.date for point in points[1:]] == [date(2026, 1, 12), date(2026, 1, 13), date(2026, 1, 14)]
    assert points[1].capital_in_out == 5_000_000
    assert points[1].portfolio_value == 5_020_000
    assert points[2].pnl == 3500
    assert points[3].drawdown == pytest.approx(0.2)
    assert store.calls == [("Zerodha Total Portfolio", None, None, "QAC00053")]


def test_series_applies_date_window() -> None:
    store = _ListStore([_record(date(2026, 1, day), 100 + day) for day in range(10, 20)])

    points = build_historical_series(
        store,
        "Zerodha Total Portfolio",
        start_date=date(2026, 1, 12),
        end_date=date(2026, 1, 14),
    )

    assert [point.date for point in points] == [
        date(2026, 1, 11),
        date(2026, 1, 12),
        date(2026, 1, 13),
        date(2026, 1, 14),
    ]


def test_empty_store_gives_empty_series() -> None:
    assert build_historical_series(_ListStore([]), "Zerodha Total Portfolio") == []
    assert build_historical_series(_ListStore([_record(date(2026, 1, 5), 101)]), "Other Tag") == []


def test_store_failure_propagates() -> None:
    with pytest.raises(RecordStoreError):
        build_historical_series(_BrokenStore(), "Zerodha Total Portfolio")


def test_frozen_series_replays_archived_curves() -> None:
    bundle = load_bundle(DATA_DIR / "frozen" / "scheme_qtf.json")

    points = frozen_series(bundle)

    assert len(points) == len(bundle.data.equity_curve)
    assert points[0].date == date(2025, 8, 25)
    assert points[0].nav == 100
    assert not points[0].baseline
    assert points[-1].date == date(2026, 1, 9)
    assert points[-1].nav == pytest.approx(113.57)
    assert points[-1].drawdown == pytest.approx(0.07)
    assert max(point.drawdown for point in points) == pytest.approx(2.53)
