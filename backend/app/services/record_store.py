from __future__ import annotations

import csv
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
import logging
from pathlib import Path
import threading
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.models.records import MasterSheetRecord


logger = logging.getLogger("navboard.store")


class RecordStoreError(Exception):
    """The record store could not be read. Distinct from a store with no rows."""


@dataclass(frozen=True)
class DailyRecord:
    system_tag: str
    date: date
    nav: float
    portfolio_value: float = 0.0
    capital_in_out: float = 0.0
    pnl: float = 0.0
    drawdown: float = 0.0
    prev_nav: float = 0.0
    prev_portfolio_value: float = 0.0
    prev_pnl: float = 0.0
    daily_pnl_percent: float = 0.0
    exposure_value: float = 0.0
    prev_exposure_value: float = 0.0
    qcode: str | None = None


class RecordStore(Protocol):
    def list_records(
        self,
        system_tag: str,
        start_date: date | None = None,
        end_date: date | None = None,
        *,
        qcode: str | None = None,
    ) -> list[DailyRecord]: ...

    def clear_cache(self) -> None: ...


def _as_float(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, Decimal):
        return float(value)
    text = str(value).strip()
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        return 0.0


def _in_window(day: date, start_date: date | None, end_date: date | None) -> bool:
    if start_date is not None and day < start_date:
        return False
    if end_date is not None and day > end_date:
        return False
    return True


class SqlRecordStore:
    """Reads the ``master_sheet`` table through a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def _query(
        self,
        session: Session,
        system_tag: str,
        start_date: date | None,
        end_date: date | None,
        qcode: str | None,
    ) -> list[MasterSheetRecord]:
        stmt = select(MasterSheetRecord).where(
            MasterSheetRecord.system_tag == system_tag,
            MasterSheetRecord.nav.is_not(None),
        )
        if qcode is not None:
            stmt = stmt.where(MasterSheetRecord.qcode == qcode)
        if start_date is not None:
            stmt = stmt.where(MasterSheetRecord.date >= start_date)
        if end_date is not None:
            stmt = stmt.where(MasterSheetRecord.date <= end_date)
        stmt = stmt.order_by(MasterSheetRecord.date.asc(), MasterSheetRecord.id.asc())
        return list(session.scalars(stmt).all())

    def list_records(
        self,
        system_tag: str,
        start_date: date | None = None,
        end_date: date | None = None,
        *,
        qcode: str | None = None,
    ) -> list[DailyRecord]:
        try:
            with self._session_factory() as session:
                rows = self._query(session, system_tag, start_date, end_date, qcode)
        except SQLAlchemyError as exc:
            raise RecordStoreError(f"Failed to read records for {system_tag!r}.") from exc

        return [
            DailyRecord(
                system_tag=row.system_tag,
                date=row.date,
                nav=_as_float(row.nav),
                portfolio_value=_as_float(row.portfolio_value),
                capital_in_out=_as_float(row.capital_in_out),
                pnl=_as_float(row.pnl),
                drawdown=_as_float(row.drawdown),
                prev_nav=_as_float(row.prev_nav),
                prev_portfolio_value=_as_float(row.prev_portfolio_value),
                prev_pnl=_as_float(row.prev_pnl),
                daily_pnl_percent=_as_float(row.daily_pnl_percent),
                exposure_value=_as_float(row.exposure_value),
                prev_exposure_value=_as_float(row.prev_exposure_value),
                qcode=row.qcode,
            )
            for row in rows
        ]

    def clear_cache(self) -> None:
        # Every read goes to the database.
        return None


CSV_NUMERIC_COLUMNS = (
    "portfolio_value",
    "capital_in_out",
    "nav",
    "prev_nav",
    "pnl",
    "daily_pnl_percent",
    "exposure_value",
    "prev_portfolio_value",
    "prev_exposure_value",
    "prev_pnl",
    "drawdown",
)


def _normalize_header(name: str) -> str:
    return name.strip().lower().replace(" ", "_").replace("-", "_")


def _parse_nav(value: str | None) -> float | None:
    text = (value or "").strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _parse_day(value: str | None) -> date | None:
    text = (value or "").strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


class CsvRecordStore:
    """Master-sheet CSV export decoded once per process and served from memory.

    The file is append-only upstream, so the decoded rows are kept until
    ``clear_cache`` is called after an out-of-band refresh.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._by_tag: dict[str, list[DailyRecord]] | None = None
        self._lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._by_tag is not None

    def _decode(self) -> dict[str, list[DailyRecord]]:
        try:
            with self._path.open("r", encoding="utf-8", newline="") as handle:
                reader = csv.DictReader(handle)
                if reader.fieldnames is None:
                    return {}
                reader.fieldnames = [_normalize_header(name) for name in reader.fieldnames]
                if "system_tag" not in reader.fieldnames or "date" not in reader.fieldnames:
                    raise RecordStoreError(
                        f"{self._path} must contain system_tag and date columns."
                    )
                by_tag: dict[str, list[DailyRecord]] = {}
                skipped = 0
                for row in reader:
                    day = _parse_day(row.get("date"))
                    system_tag = (row.get("system_tag") or "").strip()
                    if day is None or not system_tag:
                        skipped += 1
                        continue
                    nav = _parse_nav(row.get("nav"))
                    if nav is None:
                        if (row.get("nav") or "").strip():
                            skipped += 1
                        continue
                    values = {column: _as_float(row.get(column)) for column in CSV_NUMERIC_COLUMNS}
                    values["nav"] = nav
                    qcode = (row.get("qcode") or "").strip() or None
                    by_tag.setdefault(system_tag, []).append(
                        DailyRecord(system_tag=system_tag, date=day, qcode=qcode, **values)
                    )
        except OSError as exc:
            raise RecordStoreError(f"Cannot read master sheet at {self._path}.") from exc
        except (csv.Error, UnicodeDecodeError) as exc:
            raise RecordStoreError(f"Malformed master sheet at {self._path}: {exc}") from exc

        for records in by_tag.values():
            records.sort(key=lambda record: record.date)
        if skipped:
            logger.warning("Skipped %s master sheet rows without a valid date, system tag or NAV.", skipped)
        logger.info(
            "Loaded %s master sheet rows for %s system tags from %s.",
            sum(len(records) for records in by_tag.values()),
            len(by_tag),
            self._path,
        )
        return by_tag

    def _load(self) -> dict[str, list[DailyRecord]]:
        by_tag = self._by_tag
        if by_tag is not None:
            return by_tag
        with self._lock:
            if self._by_tag is None:
                self._by_tag = self._decode()
            return self._by_tag

    def list_records(
        self,
        system_tag: str,
        start_date: date | None = None,
        end_date: date | None = None,
        *,
        qcode: str | None = None,
    ) -> list[DailyRecord]:
        rows = self._load().get(system_tag, [])
        return [
            row
            for row in rows
            if _in_window(row.date, start_date, end_date) and (qcode is None or row.qcode in (None, qcode))
        ]

    def clear_cache(self) -> None:
        with self._lock:
            self._by_tag = None
        logger.info("Cleared master sheet cache for %s.", self._path)
