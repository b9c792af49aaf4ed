from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from crosswatch.api.auth import verify_cron_secret
from crosswatch.core.config import parse_comma_list
from crosswatch.core.logger import Logger
from crosswatch.services.scanner import compute_indicator

router = APIRouter(prefix="/api", tags=["API"])
logger = Logger("API")

HISTORY_CACHE = "s-maxage=300, stale-while-revalidate=600"
QUOTE_CACHE = "s-maxage=60, stale-while-revalidate=120"


# Cron trigger
@router.api_route("/check-signals", methods=["GET", "POST"], dependencies=[Depends(verify_cron_secret)])
async def check_signals(request: Request):
    checker = request.app.state.signal_checker
    if checker is None:
        raise HTTPException(status_code=500, detail="KV storage not configured")

    try:
        report = await checker.run()
    except Exception as e:
        logger.error("Signal check failed", e)
        raise HTTPException(status_code=500, detail="Failed to check signals")

    result = report.to_dict()
    if report.message:
        result["checked"] = report.symbols_checked
    return result


# Price data
@router.get("/history")
async def get_history(
    request: Request,
    response: Response,
    symbol: Optional[str] = None,
    range_spec: Optional[str] = Query(None, alias="range"),
):
    if not symbol:
        raise HTTPException(status_code=400, detail="Symbol is required")

    data_service = request.app.state.data_service
    result = await data_service.resolve_history(symbol.upper(), range_spec or request.app.state.history_range)
    if not result:
        raise HTTPException(status_code=502, detail="All data providers failed")

    response.headers["Cache-Control"] = HISTORY_CACHE
    return {"symbol": symbol.upper(), **result.to_dict()}


@router.get("/quote")
async def get_quotes(request: Request, response: Response, symbols: Optional[str] = None):
    symbol_list = [s.upper() for s in parse_comma_list(symbols or "")]
    if not symbol_list:
        raise HTTPException(status_code=400, detail="Symbols are required")

    quotes = await request.app.state.data_service.resolve_quotes(symbol_list)
    response.headers["Cache-Control"] = QUOTE_CACHE
    return {"quotes": [q.to_dict() for q in quotes]}


# Chart data
@router.get("/signals")
async def get_signals(
    request: Request,
    response: Response,
    symbol: Optional[str] = None,
    range_spec: Optional[str] = Query(None, alias="range"),
):
    """Bars with ma10 plus every crossover in the range, for charting."""
    if not symbol:
        raise HTTPException(status_code=400, detail="Symbol is required")

    symbol = symbol.upper()
    result = await request.app.state.data_service.resolve_history(
        symbol, range_spec or request.app.state.history_range
    )
    if not result:
        raise HTTPException(status_code=502, detail="All data providers failed")

    detector = request.app.state.detector
    series = compute_indicator(result.history)
    latest = detector.detect_latest(series, symbol)

    response.headers["Cache-Control"] = HISTORY_CACHE
    return {
        "symbol": symbol,
        "name": result.name,
        "provider": result.provider,
        "detector": detector.signal_id,
        "bars": [b.to_dict() for b in series],
        "signals": [s.to_dict() for s in detector.detect_all(series, symbol)],
        "latest": latest.to_dict() if latest else None,
    }
