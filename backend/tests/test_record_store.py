from datetime import date
from decimal import Decimal
import logging
import threading
import time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.db.base import Base
from app.models.records import MasterSheetRecord
from app.services.record_store import CsvRecordStore, RecordStoreError, SqlRecordStore


def _session_factory(create_schema: bool = True) -> sessionmaker:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    if create_schema:
        Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def _row(day: date, nav: str | None, **values) -> MasterSheetRecord:
    values.setdefault("qcode", "QAC00053")
    values.setdefault("system_tag", "Zerodha Total Portfolio")
    return MasterSheetRecord(date=day, nav=Decimal(nav) if nav is not None else None, **values)


def test_sql_store_filters_orders_and_converts() -> None:
    factory = _session_factory()
    with factory() as db:
        db.add_all(
            [
                _row(date(2026, 1, 14), "101.25", pnl=Decimal("1250.50"), drawdown=Decimal("-0.15")),
                _row(date(2026, 1, 12), "100.40", capital_in_out=Decimal("5000000.00")),
                _row(date(2026, 1, 13), None),
                _row(date(2026, 1, 15), "102.00", system_tag="Zerodha Total Portfolio A"),
                _row(date(2026, 1, 16), "99.00", qcode="QAC00041"),
            ]
        )
        db.commit()

    records = SqlRecordStore(factory).list_records("Zerodha Total Portfolio", qcode="QAC00053")

    assert [record.date for record in records] == [date(2026, 1, 12), date(2026, 1, 14)]
    assert records[0].capital_in_out == 5_000_000.0
    assert records[1].nav == pytest.approx(101.25)
    assert records[1].pnl == pytest.approx(1250.50)
    assert records[1].drawdown == pytest.approx(-0.15)
    assert isinstance(records[1].nav, float)


def test_sql_store_honours_window() -> None:
    factory = _session_factory()
    with factory() as db:
        db.add_all([_row(date(2026, 2, day), f"{100 + day}.00") for day in range(1, 11)])
        db.commit()

    store = SqlRecordStore(factory)
    records = store.list_records("Zerodha Total Portfolio", date(2026, 2, 3), date(2026, 2, 5))

    assert [record.date.day for record in records] == [3, 4, 5]
    assert store.list_records("Unknown Tag") == []


def test_sql_store_wraps_database_errors() -> None:
    store = SqlRecordStore(_session_factory(create_schema=False))

    with pytest.raises(RecordStoreError):
        store.list_records("Zerodha Total Portfolio")


CSV_HEADER = "qcode,System Tag,Date,NAV,Portfolio Value,Capital In Out,PnL,Drawdown\n"


def test_csv_store_reads_and_caches(tmp_path) -> None:
    sheet = tmp_path / "mastersheet.csv"
    sheet.write_text(
        CSV_HEADER
        + "QAC00053,Zerodha Total Portfolio,2026-01-13,101.10,5050000,0,3500,-0.1\n"
        + "QAC00053,Zerodha Total Portfolio,2026-01-12,100.40,5020000,5000000,20000,0\n"
        + "QAC00041,Zerodha Total Portfolio A,2026-01-12,99.80,1000000,0,-200,-0.2\n",
        encoding="utf-8",
    )
    store = CsvRecordStore(sheet)

    assert not store.is_loaded
    records = store.list_records("Zerodha Total Portfolio")

    assert store.is_loaded
    assert [record.date for record in records] == [date(2026, 1, 12), date(2026, 1, 13)]
    assert records[0].capital_in_out == 5_000_000
    assert records[1].pnl == 3500
    assert records[1].portfolio_value == 5_050_000

    sheet.write_text(CSV_HEADER, encoding="utf-8")
    assert len(store.list_records("Zerodha Total Portfolio")) == 2

    store.clear_cache()
    assert not store.is_loaded
    assert store.list_records("Zerodha Total Portfolio") == []


def test_csv_store_filters_window_and_qcode(tmp_path) -> None:
    sheet = tmp_path / "mastersheet.csv"
    rows = "".join(
        f"QAC00053,Zerodha Total Portfolio,2026-03-{day:02d},{100 + day},0,0,0,0\n" for day in range(1, 8)
    )
    sheet.write_text(CSV_HEADER + rows, encoding="utf-8")
    store = CsvRecordStore(sheet)

    windowed = store.list_records("Zerodha Total Portfolio", date(2026, 3, 2), date(2026, 3, 4))

    assert [record.date.day for record in windowed] == [2, 3, 4]
    assert store.list_records("Zerodha Total Portfolio", qcode="QAC00041") == []
    assert len(store.list_records("Zerodha Total Portfolio", qcode="QAC00053")) == 7


def test_csv_store_skips_unusable_rows(tmp_path) -> None:
    sheet = tmp_path / "mastersheet.csv"
    sheet.write_text(
        CSV_HEADER
        + "QAC00053,Zerodha Total Portfolio,not-a-date,101,0,0,0,0\n"
        + "QAC00053,,2026-01-12,101,0,0,0,0\n"
        + "QAC00053,Zerodha Total Portfolio,2026-01-13,,0,0,0,0\n"
        + "QAC00053,Zerodha Total Portfolio,2026-01-14,102.5,0,0,0,0\n",
        encoding="utf-8",
    )

    records = CsvRecordStore(sheet).list_records("Zerodha Total Portfolio")

    assert [record.date for record in records] == [date(2026, 1, 14)]


def test_csv_store_reports_missing_file_and_columns(tmp_path) -> None:
    with pytest.raises(RecordStoreError):
        CsvRecordStore(tmp_path / "missing.csv").list_records("Zerodha Total Portfolio")

    sheet = tmp_path / "mastersheet.csv"
    sheet.write_text("qcode,nav\nQAC00053,101\n", encoding="utf-8")
    with pytest.raises(RecordStoreError):
        CsvRecordStore(sheet).list_records("Zerodha Total Portfolio")


def test_csv_store_skips_and_counts_unparseable_nav(tmp_path, caplog) -> None:
    sheet = tmp_path / "mastersheet.csv"
    sheet.write_text(
        CSV_HEADER
        + "QAC00053,Zerodha Total Portfolio,2026-01-12,abc,0,0,0,0\n"
        + "QAC00053,Zerodha Total Portfolio,2026-01-13,,0,0,0,0\n"
        + "QAC00053,Zerodha Total Portfolio,2026-01-14,102.5,0,0,0,0\n",
        encoding="utf-8",
    )

    with caplog.at_level(logging.WARNING, logger="navboard.store"):
        records = CsvRecordStore(sheet).list_records("Zerodha Total Portfolio")

    assert [(record.date, record.nav) for record in records] == [(date(2026, 1, 14), 102.5)]
    assert "Skipped 1 master sheet rows" in caplog.text


def test_csv_store_wraps_undecodable_bytes(tmp_path) -> None:
    sheet = tmp_path / "mastersheet.csv"
    sheet.write_bytes(
        CSV_HEADER.encode("utf-8") + b"QAC00053,Zerodha Total Portfolio,2026-01-12,\xff\xfe,0,0,0,0\n"
    )

    with pytest.raises(RecordStoreError):
        CsvRecordStore(sheet).list_records("Zerodha Total Portfolio")


class _CountingCsvStore(CsvRecordStore):
    def __init__(self, path) -> None:
        super().__init__(path)
        self.decodes = 0

    def _decode(self):
        self.decodes += 1
        time.sleep(0.1)
        return super()._decode()


def test_csv_store_decodes_once_under_concurrent_reads(tmp_path) -> None:
    sheet = tmp_path / "mastersheet.csv"
    sheet.write_text(CSV_HEADER + "QAC00053,Zerodha Total Portfolio,2026-01-12,100.4,0,0,0,0\n", encoding="utf-8")
    store = _CountingCsvStore(sheet)
    barrier = threading.Barrier(4)
    counts: list[int] = []

    def read() -> None:
        barrier.wait()
        counts.append(len(store.list_records("Zerodha Total Portfolio")))

    threads = [threading.Thread(target=read) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.decodes == 1
    assert counts == [1, 1, 1, 1]

    store.clear_cache()
    store.list_records("Zerodha Total Portfolio")
    assert store.decodes == 2
