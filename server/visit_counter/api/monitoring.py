"""Liveness and readiness endpoints."""

from __future__ import annotations

import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse

router = APIRouter()


@router.get("/", response_class=PlainTextResponse)
async def index() -> str:
    return "Server is running!"


@router.get("/health")
async def health(request: Request) -> dict:
    """Process liveness. Does not look at the store."""
    started_at = request.app.state.started_at
    return {"status": "OK", "uptime": round(time.monotonic() - started_at, 3)}


@router.get("/readiness")
async def readiness(request: Request) -> JSONResponse:
    """Ready only while the store connection is up."""
    storage = request.app.state.storage
    if storage is not None and storage.is_connected:
        return JSONResponse({"status": "Ready"}, status_code=200)
    return JSONResponse({"status": "Not Ready"}, status_code=500)
