"""
Request-scoped access to the process-wide store and complexity service.

Both are built once in the application lifespan and kept on app.state; tests
swap them through app.dependency_overrides.
"""
from __future__ import annotations

from datetime import date

from fastapi import HTTPException, Request

from ..analysis.cache import ComplexityCacheService
from ..exceptions import InvalidRequestError
from ..graph.store import RegulationStore


def get_store(request: Request) -> RegulationStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return store


def get_complexity_service(request: Request) -> ComplexityCacheService:
    service = getattr(request.app.state, "complexity", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return service


def parse_date(value: str | None, name: str = "date") -> date | None:
    """Parse an optional YYYY-MM-DD query value."""
    if value is None or value == "":
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise InvalidRequestError(f"{name} must be a YYYY-MM-DD date, got {value!r}") from e
