from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import CONFIG
from .routes import analytics as analytics_routes
from .routes import feedings as feeding_routes
from .routes import sleep as sleep_routes
from .sessions import SessionRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    app.state.sessions.shutdown()
    logger.info("session tickers cancelled")


app = FastAPI(
    title="CradleLog API",
    version="0.1.0",
    description="Feeding and sleep session tracking for family care logs",
    lifespan=lifespan,
)
app.state.sessions = SessionRegistry()

app.add_middleware(
    CORSMiddleware,
    allow_origins=CONFIG.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

app.include_router(feeding_routes.router)
app.include_router(sleep_routes.router)
app.include_router(analytics_routes.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
