"""
CVR Forecast Backend — FastAPI Application Entry Point

Configures the FastAPI application, includes all routers, sets up CORS
and logging, and initializes the database on startup.

Architecture:
    - FastAPI application with auto-generated OpenAPI docs at /docs
    - All routers mounted under /api prefix
    - Database tables created on startup via lifespan event
    - One ForecastCache per application, held on app.state

Usage:
    python -m uvicorn cvr_backend.main:app --host 127.0.0.1 --port 8050
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .cache import ForecastCache
from .database import init_db
from .routers import categories, changes, contracts, forecasting, scenarios

logging.basicConfig(
    level=os.environ.get("CVR_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    - On startup: create tables if missing, start with an empty cache
    """
    init_db()
    app.state.forecast_cache = ForecastCache()
    yield
    app.state.forecast_cache.clear()


app = FastAPI(
    title="CVR Forecast API",
    description=(
        "REST API for contract value reconciliation forecasting. "
        "Supports baseline series, proposed changes, what-if scenarios, "
        "forecast generation, actuals/forecast split and scenario promotion."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",    # Vite dev server
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount all routers
app.include_router(contracts.router)    # /api/contracts (CRUD, periods, baseline)
app.include_router(categories.router)   # /api/cost-categories
app.include_router(changes.router)      # /api/contracts/{id}/changes, /api/changes
app.include_router(scenarios.router)    # /api/contracts/{id}/scenarios, /api/scenarios
app.include_router(forecasting.router)  # /api/contracts/{id}/forecast


@app.get("/")
def root():
    """Health check and API information endpoint."""
    return {
        "name": "CVR Forecast API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
        "endpoints": {
            "contracts": "/api/contracts",
            "baseline": "/api/contracts/{contract_id}/baseline",
            "changes": "/api/contracts/{contract_id}/changes",
            "scenarios": "/api/contracts/{contract_id}/scenarios",
            "scenario_forecast": "/api/scenarios/{scenario_id}/forecast",
            "forecast": "/api/contracts/{contract_id}/forecast/generate",
        },
    }


@app.get("/health")
def health_check():
    """Simple health check for monitoring."""
    return {"status": "healthy"}
