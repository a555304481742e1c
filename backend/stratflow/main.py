"""
STRATFLOW Backend Server
Thin FastAPI adapter around the backtest core
"""
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from stratflow import __version__
from stratflow.backtest import run_backtest
from stratflow.candles import fill_missing_candles
from stratflow.config import get_settings
from stratflow.indicators import compute
from stratflow.logger_config import init_logger
from stratflow.models import (
    BacktestError, BacktestRequest, BacktestResult,
    FillRequest, IndicatorRequest,
)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle"""
    init_logger(settings.log_level, settings.log_file)
    logger.info(f"STRATFLOW backend {__version__} ready")
    yield


app = FastAPI(title="STRATFLOW Backend", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def read_root():
    """Health check"""
    return {
        "status": "online",
        "service": "STRATFLOW Backend",
        "version": __version__,
    }


@app.post("/backtest", response_model=BacktestResult, responses={400: {"model": BacktestError}})
def backtest(request: BacktestRequest):
    """Run a single backtest; invalid input comes back as a 400 BacktestError"""
    params = request.params
    result = run_backtest(
        request.candles,
        request.nodes,
        request.edges,
        params.get("initialBalance", settings.initial_balance),
        params.get("commissionRatePct", settings.commission_pct),
        params.get("slippageRatePct", settings.slippage_pct),
    )
    if isinstance(result, BacktestError):
        return JSONResponse(status_code=400, content=result.model_dump())
    return result


@app.post("/indicators")
def indicators(request: IndicatorRequest) -> Dict[str, Any]:
    """Aligned indicator series for a price list"""
    config = request.config
    try:
        series = compute(request.prices, config.indicatorType, config.params())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"indicatorType": config.indicatorType, "series": series}


@app.post("/candles/fill")
def fill_candles(request: FillRequest) -> Dict[str, Any]:
    """Gap-fill a candle series"""
    try:
        filled = fill_missing_candles(request.candles, request.timeframe)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "candles": [c.model_dump() for c in filled],
        "filled": len(filled) - len(request.candles),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
