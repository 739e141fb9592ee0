from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import JSONResponse

from firefeed.core.contracts import ErrorResponse, FeedResponse
from firefeed.core.keying import normalize_fire_request
from firefeed.services.fires import Fires

router = APIRouter()


def get_fires_service() -> Fires:
    raise RuntimeError("Fires must be provided by app dependency override")


@router.get(
    "/active-fires",
    response_model=FeedResponse,
    responses={500: {"model": ErrorResponse}},
)
@router.get(
    "/wfca/v1/active-fires",
    response_model=FeedResponse,
    responses={500: {"model": ErrorResponse}},
    include_in_schema=False,
)
def active_fires(
    background_tasks: BackgroundTasks,
    # raw strings: bad input is clamped/filtered, never rejected
    limit: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    svc: Fires = Depends(get_fires_service),
) -> JSONResponse:
    query = normalize_fire_request(limit, state, search)
    result = svc.feed(query)

    # sweep after the body has been sent
    background_tasks.add_task(svc.maybe_sweep)

    return JSONResponse(
        content=result.response.model_dump(),
        headers={
            "Cache-Control": f"public, max-age={svc.cache_ttl}",
            "X-Cache": "HIT" if result.cache_hit else "MISS",
        },
    )
