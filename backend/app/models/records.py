from __future__ import annotations

import datetime
from decimal import Decimal

from sqlalchemy import Date, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class MasterSheetRecord(Base):
    """One daily row of the master sheet feed. Written upstream, read-only here."""

    __tablename__ = "master_sheet"
    __table_args__ = (
        UniqueConstraint("qcode", "system_tag", "date", name="uq_master_sheet_qcode_tag_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    qcode: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    system_tag: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False, index=True)

    nav: Mapped[Decimal | None] = mapped_column(Numeric(24, 6), nullable=True)
    prev_nav: Mapped[Decimal | None] = mapped_column(Numeric(24, 6), nullable=True)
    portfolio_value: Mapped[Decimal | None] = mapped_column(Numeric(24, 2), nullable=True)
    prev_portfolio_value: Mapped[Decimal | None] = mapped_column(Numeric(24, 2), nullable=True)
    exposure_value: Mapped[Decimal | None] = mapped_column(Numeric(24, 2), nullable=True)
    prev_exposure_value: Mapped[Decimal | None] = mapped_column(Numeric(24, 2), nullable=True)
    capital_in_out: Mapped[Decimal | None] = mapped_column(Numeric(24, 2), nullable=True)
    pnl: Mapped[Decimal | None] = mapped_column(Numeric(24, 2), nullable=True)
    prev_pnl: Mapped[Decimal | None] = mapped_column(Numeric(24, 2), nullable=True)
    daily_pnl_percent: Mapped[Decimal | None] = mapped_column(Numeric(12, 6), nullable=True)
    drawdown: Mapped[Decimal | None] = mapped_column(Numeric(12, 6), nullable=True)
