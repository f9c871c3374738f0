"""
The Reader API

FastAPI application exposing the chat QA workflow: uploads, snapshot,
sampling, scoring, processed results, rubric management, dashboard
insights, API configuration and health checks. Prometheus metrics are
served at ``/metrics``.

Usage:
    uvicorn qa_reader.api.main:app --host 0.0.0.0 --port 8000

Author: The Reader Team
Date: 2026-10-19
"""

import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from qa_reader.api.routers import register_routers
from qa_reader.common.config import settings
from qa_reader.common.errors import ReaderError

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger("api")

# FastAPI application instance
app = FastAPI(title="The Reader API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_routers(app)
app.mount("/metrics", make_asgi_app())


@app.exception_handler(ReaderError)
async def reader_error_handler(request: Request, exc: ReaderError):
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": str(exc) or "Server error"})


@app.get("/health")
def health_check():
    """Liveness endpoint for monitoring."""
    return {"status": "healthy"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
