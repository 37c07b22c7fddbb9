"""FastAPI endpoints for on-demand catalog checks."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from rewardwatch.config import load_settings
from rewardwatch.errors import CatalogError
from rewardwatch.logging_config import get_logger
from rewardwatch.pipeline import (
    STATUS_NO_NEW_PRODUCTS,
    STATUS_NONE_ABOVE_THRESHOLD,
    RewardsMonitor,
    build_monitor,
)


LOGGER = get_logger(__name__)

app = FastAPI(title="Rewards Watch")


@lru_cache(maxsize=1)
def get_monitor() -> RewardsMonitor:
    """Dependency returning the process-wide monitor built from settings."""

    return build_monitor(load_settings())


_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def _as_int(value: int | str | None) -> int | None:
    """Read the leading integer of *value*, so ``"500.5"`` and ``"600abc"`` give 500 and 600."""

    if value is None:
        return None
    if isinstance(value, int):
        return value
    match = _LEADING_INT.match(value)
    if match is None:
        return None
    return int(match.group(1))


@app.exception_handler(404)
async def not_found_handler(request: Request, exc: HTTPException) -> PlainTextResponse:
    return PlainTextResponse(
        "Not found. Use /check-new-products or /fetch-current-data",
        status_code=404,
    )


@app.get("/check-new-products", response_model=None)
def check_new_products(
    min_points: str | None = Query(None, alias="minPoints", description="Minimum reward points."),
    monitor: RewardsMonitor = Depends(get_monitor),
) -> JSONResponse | PlainTextResponse:
    """Diff the live catalog against the stored snapshot without persisting."""

    threshold = _as_int(min_points) or 0
    try:
        result = monitor.check(threshold)
    except CatalogError as exc:
        LOGGER.error("Error in fetching or processing data: %s", exc)
        return PlainTextResponse("Error fetching or comparing data", status_code=500)
    except Exception:
        LOGGER.exception("Unexpected failure comparing catalog data")
        return PlainTextResponse("Error fetching or comparing data", status_code=500)

    if result.status == STATUS_NO_NEW_PRODUCTS:
        return PlainTextResponse("No new products", status_code=200)
    if result.status == STATUS_NONE_ABOVE_THRESHOLD:
        return PlainTextResponse(f"No new products above {threshold} points", status_code=200)
    return JSONResponse(content=result.to_payload())


@app.get("/fetch-current-data")
def fetch_current_data(monitor: RewardsMonitor = Depends(get_monitor)) -> JSONResponse:
    """Return the last persisted snapshot without fetching."""

    records: list[dict[str, Any]] = monitor.current_snapshot()
    return JSONResponse(content=records)
