from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from app.core.config import load_needs_settings
from app.core.db import get_db
from app.schemas.demand import AbcClass, AbcPortfolioResponse
from app.schemas.needs import DistributionMode, NeedsReport, NeedsRunParams
from app.services.feeds import DataUnavailableError
from app.services.needs_coordinator import NeedsRunCoordinator, StaleRunError
from app.services.needs_engine import build_abc_portfolio, build_needs_report

router = APIRouter()


def get_needs_coordinator(request: Request) -> NeedsRunCoordinator:
    return request.app.state.needs_coordinator


@router.get(
    "/report",
    response_model=NeedsReport,
)
def get_needs_report(
    period_end: date,
    window_months: int = Query(6),
    lead_time_days: int | None = Query(None, ge=0),
    distribution_mode: DistributionMode = Query(DistributionMode.PROPORTIONAL),
    tool_filter: str | None = Query(None),
    client_filter: str | None = Query(None),
    limit: int | None = Query(None, ge=1),
    db: Session = Depends(get_db),
):
    if window_months not in (3, 6, 12):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="window_months must be one of 3, 6, 12",
        )

    settings = load_needs_settings()
    if lead_time_days is None:
        lead_time_days = settings.default_lead_time_days

    params = NeedsRunParams(
        period_end=period_end,
        window_months=window_months,
        lead_time_days=lead_time_days,
        distribution_mode=distribution_mode,
        tool_filter=tool_filter,
        client_filter=client_filter,
    )

    try:
        return build_needs_report(db=db, params=params, settings=settings, limit=limit)
    except DataUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.get(
    "/abc",
    response_model=AbcPortfolioResponse,
)
def get_abc_portfolio(
    period_start: date,
    period_end: date,
    tool_filter: str | None = Query(None),
    client_filter: str | None = Query(None),
    abc_class: AbcClass | None = Query(None),
    db: Session = Depends(get_db),
):
    if period_start > period_end:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="period_start must not be after period_end",
        )

    try:
        return build_abc_portfolio(
            db=db,
            period_start=period_start,
            period_end=period_end,
            tool_filter=tool_filter,
            client_filter=client_filter,
            abc_class=abc_class,
        )
    except DataUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.post(
    "/runs",
    response_model=NeedsReport,
)
async def create_needs_run(
    params: NeedsRunParams,
    limit: int | None = Query(None, ge=1),
    coordinator: NeedsRunCoordinator = Depends(get_needs_coordinator),
):
    """Run a needs report; a newer run started meanwhile makes this one fail with 409."""

    try:
        return await coordinator.run(params, limit=limit)
    except StaleRunError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except DataUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
