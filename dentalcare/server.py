"""FastAPI server for the DentalCare booking assistant.

Run with:
    uvicorn dentalcare.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from dentalcare.agent import SessionStore, create_orchestrator
from dentalcare.api.routes import router
from dentalcare.config import CORS_ORIGINS, SERVER_HOST, SERVER_PORT
from dentalcare.services.scheduling_client import get_scheduling_client
from dentalcare.tools.booking import ToolExecutor

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build the scheduling client, the orchestrator and the session store once."""
    logger.info("Compiling conversation graph…")
    scheduling = get_scheduling_client()
    application.state.scheduling = scheduling
    application.state.orchestrator = create_orchestrator(executor=ToolExecutor(scheduling))
    application.state.sessions = SessionStore()
    logger.info("Assistant ready.")
    yield
    scheduling.close()


app = FastAPI(
    title="DentalCare Booking Assistant",
    description=(
        "AI receptionist and booking API for DentalCare Hospital: "
        "chat-based booking, manual booking, patient history and doctor schedule."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID (echoed as ``X-Request-ID``) for log correlation."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    return {
        "service": "DentalCare Booking Assistant",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


if __name__ == "__main__":
    logger.info("Starting DentalCare API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "dentalcare.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
