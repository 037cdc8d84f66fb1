from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EquityCurvePointOut(WireModel):
    date: str
    nav: float


class DrawdownCurvePointOut(WireModel):
    date: str
    drawdown: float


class CashFlowOut(WireModel):
    date: str
    amount: float
    dividend: float = 0.0


class TrailingReturnsOut(WireModel):
    five_days: float | None = Field(default=None, alias="5d")
    ten_days: float | None = Field(default=None, alias="10d")
    fifteen_days: float | None = Field(default=None, alias="15d")
    one_month: float | None = Field(default=None, alias="1m")
    three_months: float | None = Field(default=None, alias="3m")
    six_months: float | None = Field(default=None, alias="6m")
    one_year: float | None = Field(default=None, alias="1y")
    two_years: float | None = Field(default=None, alias="2y")
    five_years: float | None = Field(default=None, alias="5y")
    since_inception: float | None = None
    mdd: float = Field(default=0.0, alias="MDD")
    current_dd: float = Field(default=0.0, alias="currentDD")


class MonthCellOut(WireModel):
    percent: str
    cash: str
    capital_in_out: str


class MonthlyYearOut(WireModel):
    months: dict[str, MonthCellOut]
    total_percent: float | str
    total_cash: float
    total_capital_in_out: float


class QuarterValuesOut(WireModel):
    q1: str
    q2: str
    q3: str
    q4: str
    total: str


class QuarterlyYearOut(WireModel):
    percent: QuarterValuesOut
    cash: QuarterValuesOut
    year_cash: str


class PortfolioAnalyticsOut(WireModel):
    amount_deposited: str
    current_exposure: str
    return_: str = Field(alias="return")
    total_profit: str
    trailing_returns: TrailingReturnsOut
    drawdown: str
    max_drawdown: str
    equity_curve: list[EquityCurvePointOut]
    drawdown_curve: list[DrawdownCurvePointOut]
    quarterly_pnl: dict[str, QuarterlyYearOut]
    monthly_pnl: dict[str, MonthlyYearOut]
    cash_flows: list[CashFlowOut]
    strategy_name: str


class FiltersAppliedOut(WireModel):
    account_type: str | None = None
    broker: str | None = None
    start_date: str | None = None
    end_date: str | None = None


class MetadataOut(WireModel):
    icode: str
    account_count: int = 1
    last_updated: str
    filters_applied: FiltersAppliedOut = Field(default_factory=FiltersAppliedOut)
    inception_date: str | None = None
    data_as_of_date: str | None = None
    strategy_name: str
    is_active: bool


class SchemeEntryOut(WireModel):
    data: PortfolioAnalyticsOut
    metadata: MetadataOut


class SchemeFailureOut(WireModel):
    error: str
    message: str
    metadata: MetadataOut


class FrozenBundle(WireModel):
    """Archived analytics of a closed scheme, stored in the same shape as live output."""

    data: PortfolioAnalyticsOut
    metadata: MetadataOut


class SchemeConfigOut(WireModel):
    name: str
    kind: Literal["frozen", "live", "composite"]
    is_active: bool
    system_tag: str | None = None
    start_date: str | None = None
    components: list[str] = Field(default_factory=list)
