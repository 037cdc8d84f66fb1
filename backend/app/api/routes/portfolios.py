from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_aggregator, get_record_store, get_registry
from app.schemas.common import MessageResponse
from app.schemas.portfolio import SchemeConfigOut, SchemeEntryOut, SchemeFailureOut
from app.services.aggregation import PortfolioAggregator
from app.services.record_store import RecordStore, RecordStoreError
from app.services.registry import SchemeRegistry, UnknownSchemeError


router = APIRouter(tags=["portfolio"])


def _check_window(start_date: date | None, end_date: date | None) -> None:
    if start_date is not None and end_date is not None and start_date > end_date:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="start_date must be on or before end_date.",
        )


@router.get("/accounts/{account_code}/schemes", response_model=list[SchemeConfigOut])
def list_schemes(
    account_code: str,
    registry: SchemeRegistry = Depends(get_registry),
) -> list[SchemeConfigOut]:
    try:
        return [config.describe() for config in registry.schemes_for(account_code)]
    except UnknownSchemeError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.get(
    "/accounts/{account_code}/portfolio",
    response_model=dict[str, SchemeEntryOut | SchemeFailureOut],
)
def get_portfolio(
    account_code: str,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    aggregator: PortfolioAggregator = Depends(get_aggregator),
) -> dict[str, SchemeEntryOut | SchemeFailureOut]:
    _check_window(start_date, end_date)
    try:
        return aggregator.aggregate(account_code, start_date=start_date, end_date=end_date)
    except UnknownSchemeError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.get("/accounts/{account_code}/portfolio/{scheme_name}", response_model=SchemeEntryOut)
def get_scheme_portfolio(
    account_code: str,
    scheme_name: str,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    aggregator: PortfolioAggregator = Depends(get_aggregator),
) -> SchemeEntryOut:
    _check_window(start_date, end_date)
    try:
        return aggregator.aggregate_scheme(
            account_code,
            scheme_name,
            start_date=start_date,
            end_date=end_date,
        )
    except UnknownSchemeError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RecordStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Record store unavailable.",
        ) from exc


@router.post("/cache/clear", response_model=MessageResponse)
def clear_record_cache(store: RecordStore = Depends(get_record_store)) -> MessageResponse:
    store.clear_cache()
    return MessageResponse(message="Record cache cleared.")
