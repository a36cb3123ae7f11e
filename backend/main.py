"""
NEAR Agents - Autonomous Trading Agent API
FastAPI backend for AI-planned token swaps on Ref Finance (NEAR testnet)
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.agent_router import router as agents_router
from api.metrics_router import router as metrics_router
from config.settings import load_settings
from infrastructure.container import build_container

settings = load_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.container = build_container(settings)
    logger.info(f"[Main] NEAR Agents API started on {settings.network.network_id}")
    try:
        yield
    finally:
        await app.state.container.aclose()
        logger.info("[Main] Services closed")


app = FastAPI(
    title="NEAR Agents API",
    description="Autonomous AI trading agents on NEAR Protocol",
    version="1.0.0",
    lifespan=lifespan,
)

ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if os.environ.get("PRODUCTION") else ["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-User-Id"],
)

app.include_router(agents_router)
app.include_router(metrics_router)


@app.get("/")
async def root():
    return {
        "name": "NEAR Agents API",
        "network": settings.network.network_id,
        "endpoints": ["/api/agents", "/api/metrics"],
    }


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=int(os.environ.get("PORT", 8000)), reload=False)
