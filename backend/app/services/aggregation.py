from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
import logging
import time

from app.schemas.portfolio import (
    CashFlowOut,
    FiltersAppliedOut,
    MetadataOut,
    MonthlyYearOut,
    PortfolioAnalyticsOut,
    QuarterlyYearOut,
    SchemeEntryOut,
    SchemeFailureOut,
)
from app.services import metrics
from app.services.combiner import combine_series
from app.services.record_store import RecordStore
from app.services.registry import (
    CompositeScheme,
    FrozenScheme,
    LiveScheme,
    SchemeConfig,
    SchemeRegistry,
)
from app.services.series import SeriesPoint, build_historical_series, frozen_series
from app.utils.decimal_math import NO_DATA, money_str, parse_amount


logger = logging.getLogger("navboard.aggregation")

SchemeResult = SchemeEntryOut | SchemeFailureOut


@dataclass(frozen=True)
class DateWindow:
    start_date: date | None = None
    end_date: date | None = None

    def for_live(self, scheme: LiveScheme) -> DateWindow:
        starts = [day for day in (scheme.start_date, self.start_date) if day is not None]
        return DateWindow(start_date=max(starts) if starts else None, end_date=self.end_date)

    def filters(self) -> FiltersAppliedOut:
        return FiltersAppliedOut(
            start_date=self.start_date.isoformat() if self.start_date else None,
            end_date=self.end_date.isoformat() if self.end_date else None,
        )


@dataclass
class SchemeView:
    """Everything a scheme contributes before the top-level metrics are run."""

    points: list[SeriesPoint]
    amount_deposited: float
    total_profit: float
    exposure: metrics.Exposure | None
    cash_flows: list[CashFlowOut] = field(default_factory=list)
    monthly_pnl: dict[str, MonthlyYearOut] = field(default_factory=dict)
    quarterly_pnl: dict[str, QuarterlyYearOut] = field(default_factory=dict)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PortfolioAggregator:
    def __init__(
        self,
        registry: SchemeRegistry,
        store: RecordStore,
        *,
        clock: Callable[[], str] = _utc_now_iso,
    ) -> None:
        self._registry = registry
        self._store = store
        self._clock = clock

    def aggregate(
        self,
        account_code: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> dict[str, SchemeResult]:
        """Analytics for every scheme of an account, in registry display order.

        A scheme that fails is reported as a failure entry; the others are
        unaffected.
        """
        window = DateWindow(start_date=start_date, end_date=end_date)
        started = time.monotonic()
        results: dict[str, SchemeResult] = {}
        for config in self._registry.schemes_for(account_code):
            try:
                results[config.display_name] = self._entry(config, window)
            except Exception as exc:
                logger.exception(
                    "Failed to aggregate scheme %s for account %s.",
                    config.display_name,
                    account_code,
                )
                results[config.display_name] = SchemeFailureOut(
                    error="Failed to compute scheme analytics",
                    message=str(exc) or exc.__class__.__name__,
                    metadata=self._metadata(config, window, points=[]),
                )
        logger.info(
            "Aggregated %s schemes for %s in %.2fms",
            len(results),
            account_code,
            (time.monotonic() - started) * 1000,
        )
        return results

    def aggregate_scheme(
        self,
        account_code: str,
        scheme_name: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> SchemeEntryOut:
        config = self._registry.scheme(account_code, scheme_name)
        return self._entry(config, DateWindow(start_date=start_date, end_date=end_date))

    # ── per scheme ──

    def _entry(self, config: SchemeConfig, window: DateWindow) -> SchemeEntryOut:
        source = config.source
        if isinstance(source, FrozenScheme):
            bundle = source.bundle
            return SchemeEntryOut(
                data=bundle.data.model_copy(deep=True),
                metadata=bundle.metadata.model_copy(update={"is_active": config.is_active}, deep=True),
            )

        view = self._view(config, window)
        drawdown = metrics.drawdown_metrics(view.points)
        data = PortfolioAnalyticsOut(
            amount_deposited=money_str(view.amount_deposited),
            current_exposure=money_str(view.exposure.portfolio_value if view.exposure else None),
            return_=money_str(metrics.total_return(view.points), missing=NO_DATA),
            total_profit=money_str(view.total_profit),
            trailing_returns=metrics.trailing_returns(view.points, drawdown.mdd, drawdown.current_dd),
            drawdown=money_str(drawdown.current_dd),
            max_drawdown=money_str(drawdown.mdd),
            equity_curve=metrics.equity_curve(view.points),
            drawdown_curve=drawdown.curve,
            quarterly_pnl=view.quarterly_pnl,
            monthly_pnl=view.monthly_pnl,
            cash_flows=view.cash_flows,
            strategy_name=config.display_name,
        )
        return SchemeEntryOut(data=data, metadata=self._metadata(config, window, points=view.points))

    def _metadata(self, config: SchemeConfig, window: DateWindow, *, points: list[SeriesPoint]) -> MetadataOut:
        inception = next((point.date for point in points if not point.baseline), None)
        latest = metrics.latest_exposure(points)
        return MetadataOut(
            icode=config.display_name,
            account_count=1,
            last_updated=self._clock(),
            filters_applied=window.filters(),
            inception_date=inception.isoformat() if inception else None,
            data_as_of_date=latest.date.isoformat() if latest else None,
            strategy_name=config.display_name,
            is_active=config.is_active,
        )

    def _view(self, config: SchemeConfig, window: DateWindow) -> SchemeView:
        source = config.source
        if isinstance(source, FrozenScheme):
            return self._frozen_view(source)
        if isinstance(source, LiveScheme):
            return self._live_view(config, source, window)
        if isinstance(source, CompositeScheme):
            return self._composite_view(config, source, window)
        raise TypeError(f"Unsupported scheme source {source!r}")

    def _frozen_view(self, source: FrozenScheme) -> SchemeView:
        data = source.bundle.data
        points = frozen_series(source.bundle)
        as_of = source.bundle.metadata.data_as_of_date
        exposure = None
        if points:
            exposure = metrics.Exposure(
                date=date.fromisoformat(as_of) if as_of else points[-1].date,
                portfolio_value=parse_amount(data.current_exposure),
                nav=points[-1].nav,
                drawdown=abs(parse_amount(data.drawdown)),
            )
        return SchemeView(
            points=points,
            amount_deposited=parse_amount(data.amount_deposited),
            total_profit=parse_amount(data.total_profit),
            exposure=exposure,
            cash_flows=[flow.model_copy() for flow in data.cash_flows],
            monthly_pnl=data.monthly_pnl,
            quarterly_pnl=data.quarterly_pnl,
        )

    def _live_view(self, config: SchemeConfig, source: LiveScheme, window: DateWindow) -> SchemeView:
        live_window = window.for_live(source)
        points = build_historical_series(
            self._store,
            source.system_tag,
            live_window.start_date,
            live_window.end_date,
            qcode=source.qcode,
        )
        logger.debug("Scheme %s: %s points from %s.", config.display_name, len(points), source.system_tag)
        return SchemeView(
            points=points,
            amount_deposited=metrics.amount_deposited(points),
            total_profit=metrics.total_profit(points),
            exposure=metrics.latest_exposure(points),
            cash_flows=metrics.cash_flows(points),
            monthly_pnl=metrics.monthly_pnl(points),
            quarterly_pnl=metrics.quarterly_pnl(points),
        )

    def _composite_view(self, config: SchemeConfig, source: CompositeScheme, window: DateWindow) -> SchemeView:
        views = [(component.display_name, self._view(component, window)) for component in source.components]
        points = combine_series([(name, view.points) for name, view in views])
        exposure = next((view.exposure for _, view in reversed(views) if view.exposure is not None), None)
        flows = sorted(
            (flow for _, view in views for flow in view.cash_flows),
            key=lambda flow: flow.date,
        )
        logger.debug(
            "Composite %s: %s points from %s components.",
            config.display_name,
            len(points),
            len(views),
        )
        return SchemeView(
            points=points,
            amount_deposited=sum(view.amount_deposited for _, view in views),
            total_profit=sum(view.total_profit for _, view in views),
            exposure=exposure,
            cash_flows=flows,
            monthly_pnl=metrics.merge_monthly_pnl([view.monthly_pnl for _, view in views]),
            quarterly_pnl=metrics.merge_quarterly_pnl([view.quarterly_pnl for _, view in views]),
        )
