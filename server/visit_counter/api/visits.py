"""Visit counter API endpoint.

Thin FastAPI adapter over VisitCounter. Errors are left to the error
boundary middleware, which renders them as ``{"error": ...}``.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(prefix="/api")


@router.get("/visit")
async def visit(request: Request) -> dict:
    counter = request.app.state.counter
    visit_count = await counter.get_and_increment()
    return {"visitCount": visit_count}
