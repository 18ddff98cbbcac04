"""
Product Search Backend
FastAPI app exposing multi-provider product search and feed administration.
"""
import logging
import os
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env", override=False)

from database import get_session, init_db  # noqa: E402
from exceptions import ProductSearchError  # noqa: E402
from observability import metrics_registry, setup_logging  # noqa: E402
from observability.middleware import ObservabilityMiddleware  # noqa: E402
from routes.product_feeds import router as product_feeds_router  # noqa: E402
from routes.products import router as products_router  # noqa: E402

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Product Search Backend",
    description="Aggregated product search across retailer APIs, merchant feeds and a search index",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)

app.include_router(products_router)
app.include_router(product_feeds_router)

__all__ = ["app", "get_session"]


class HealthResponse(BaseModel):
    status: str
    version: str


@app.get("/health", response_model=HealthResponse)
async def health_check():
    return {"status": "healthy", "version": "0.1.0"}


@app.get("/metrics")
async def metrics():
    return Response(generate_latest(metrics_registry), media_type=CONTENT_TYPE_LATEST)


@app.exception_handler(ProductSearchError)
async def product_search_error_handler(request: Request, exc: ProductSearchError):
    logger.warning(f"[API] {request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    error_id = f"ERR-{datetime.utcnow().strftime('%Y%m%d%H%M%S')}-{id(exc)}"
    logger.exception(f"[API] Unhandled exception {error_id} on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "error_id": error_id,
            "message": "An unexpected error occurred. Please try again.",
        },
    )


@app.on_event("startup")
async def startup_event():
    logger.info(f"[API] Starting, environment={os.getenv('ENVIRONMENT', 'development')}")
    if os.getenv("INIT_DB_ON_STARTUP", "false").lower() == "true":
        await init_db()


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("[API] Shutting down")
