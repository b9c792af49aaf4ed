from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from crosswatch.api.routes import router
from crosswatch.core.config import Settings, settings
from crosswatch.core.kv_store import KVStore
from crosswatch.core.logger import Logger, configure_logging
from crosswatch.services.data_provider.service import DataProviderService
from crosswatch.services.device_store import DeviceStore
from crosswatch.services.push import ExpoPushClient
from crosswatch.services.scanner import MACrossoverDetector
from crosswatch.services.signal_checker import SignalChecker

logger = Logger("Main")


def build_services(app: FastAPI, client: httpx.AsyncClient, config: Settings) -> None:
    """Wire every component from explicit config onto app.state."""
    detector = MACrossoverDetector(lookback_days=config.SIGNAL_LOOKBACK_DAYS)
    data_service = DataProviderService.create(
        client,
        alpha_vantage_key=config.ALPHA_VANTAGE_KEY,
        fmp_key=config.FMP_KEY,
        quote_fallback_limit=config.QUOTE_FALLBACK_LIMIT,
    )

    signal_checker = None
    if config.kv_configured:
        store = DeviceStore(
            KVStore(client, config.KV_REST_API_URL, config.KV_REST_API_TOKEN),
            index_key=config.DEVICE_INDEX_KEY,
        )
        signal_checker = SignalChecker(
            store,
            data_service,
            ExpoPushClient(client, config.PUSH_API_URL),
            detector=detector,
            batch_size=config.FETCH_BATCH_SIZE,
            history_range=config.SIGNAL_HISTORY_RANGE,
        )
    else:
        logger.warn("KV storage not configured; check-signals is disabled")

    app.state.detector = detector
    app.state.data_service = data_service
    app.state.signal_checker = signal_checker
    app.state.history_range = config.HISTORY_DEFAULT_RANGE


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    logger.info("🚀 Starting crosswatch...")
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT) as client:
        build_services(app, client, settings)
        yield
        # Shutdown
        logger.info("🛑 Shutting down...")


app = FastAPI(lifespan=lifespan, title="Crosswatch API", version="1.0.0")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)


@app.get("/health")
async def health_check():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("crosswatch.main:app", host="0.0.0.0", port=settings.API_PORT)
