"""
FastAPI application for the eCFR analytics service.

Provides REST endpoints for:
- Per-agency complexity scores and the three maximum-score resolvers
- Word counts, checksums and historical changes per agency
- Cross-cutting CFR titles shared between agencies
- Agency and title listings

Run: uvicorn ecfr_analytics.api.main:app --reload
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..analysis.cache import ComplexityCacheService
from ..config import Settings, configure_logging
from ..exceptions import AgencyNotFoundError, EcfrAnalyticsError, InvalidRequestError
from ..graph.neo4j_store import Neo4jStore
from ..graph.store import RegulationStore
from ..models import Agency, Title
from .analysis_endpoints import router as analysis_router
from .dependencies import get_store

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - connect on startup, cleanup on shutdown."""
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    # Startup
    store = Neo4jStore(settings.neo4j_uri, settings.neo4j_user, settings.neo4j_password)
    try:
        store.connect()
    except EcfrAnalyticsError as e:
        # Keep serving; /health reports the outage and queries fail with 500
        logger.error(f"Could not connect to Neo4j at {settings.neo4j_uri}: {e}")

    app.state.settings = settings
    app.state.store = store
    app.state.complexity = ComplexityCacheService(store, settings)
    logger.info(
        f"Service ready (vocabulary={settings.vocabulary.value}, "
        f"cache ttl={settings.cache_ttl_seconds}s)"
    )

    yield

    # Shutdown
    store.close()


app = FastAPI(
    title="eCFR Analytics API",
    description="Complexity, change and cross-cutting analysis of federal regulations by agency.",
    version=API_VERSION,
    lifespan=lifespan,
)

# CORS for the dashboard
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analysis_router)


# =============================================================================
# Error Handlers
# =============================================================================


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render every HTTP error with an `error` key."""
    content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request parameters", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(AgencyNotFoundError)
async def agency_not_found_handler(request: Request, exc: AgencyNotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(InvalidRequestError)
async def invalid_request_handler(request: Request, exc: InvalidRequestError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(EcfrAnalyticsError)
async def analytics_error_handler(request: Request, exc: EcfrAnalyticsError):
    logger.error(f"Unhandled service error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal service error", "details": str(exc)})


# =============================================================================
# Helper Functions
# =============================================================================


def _agency_to_dict(agency: Agency) -> dict:
    return {
        "id": agency.id,
        "name": agency.name,
        "slug": agency.slug,
        "description": agency.description,
        "parentId": agency.parent_id,
        "parent": agency.parent.model_dump() if agency.parent else None,
        "children": [c.model_dump() for c in agency.children],
    }


def _title_to_dict(title: Title) -> dict:
    return {
        "id": title.id,
        "code": title.code,
        "name": title.name,
        "cfrNumber": title.cfr_number,
        "agency": title.agency.model_dump(),
    }


# =============================================================================
# Endpoints
# =============================================================================


@app.get("/")
async def root():
    """API info and available endpoints."""
    return {
        "name": "eCFR Analytics API",
        "version": API_VERSION,
        "endpoints": {
            "/data/agencies": "All agencies with parent and children",
            "/data/titles": "CFR titles, optionally for one agency",
            "/analysis/complexity_score/agency/{id}": "Sampled complexity of an agency",
            "/analysis/complexity_score/max": "Exhaustive maximum (uncached)",
            "/analysis/complexity_score/max-cached": "Maximum over the largest agencies (cached)",
            "/analysis/complexity_score/max-aggregated": "Largest parent+children group (cached)",
            "/analysis/word_count/agency/{id}": "Total words on a date",
            "/analysis/checksum/agency/{id}": "Content checksum on a date",
            "/analysis/historical_changes/agency/{id}": "Sections changed between two dates",
            "/analysis/cross-cutting": "CFR titles shared between agencies",
            "/analysis/cross-cutting/agency/{id}": "Shared titles for one agency",
            "/health": "Service health",
        },
    }


@app.get("/data/agencies")
async def list_agencies(store: RegulationStore = Depends(get_store)):
    """All agencies, top-level first."""
    agencies = store.list_agencies()
    return {"agencies": [_agency_to_dict(a) for a in agencies]}


@app.get("/data/titles")
async def list_titles(
    agency_id: int | None = Query(default=None, alias="agencyId", description="Only this agency's titles"),
    store: RegulationStore = Depends(get_store),
):
    titles = store.list_titles(agency_id)
    return {"titles": [_title_to_dict(t) for t in titles]}


# =============================================================================
# Health Check
# =============================================================================


@app.get("/health")
async def health_check(request: Request):
    """Check if the service is healthy."""
    healthy = True
    details = {}

    store = getattr(request.app.state, "store", None)
    if store is not None:
        try:
            store.ping()
            details["neo4j"] = "connected"
        except EcfrAnalyticsError as e:
            details["neo4j"] = f"error: {e}"
            healthy = False
    else:
        details["neo4j"] = "not initialized"
        healthy = False

    complexity = getattr(request.app.state, "complexity", None)
    if complexity is not None:
        details["max_score_cache"] = {
            cell.name: "fresh" if cell.is_fresh() else "empty"
            for cell in (complexity.exhaustive, complexity.top_agencies, complexity.aggregated)
        }

    return {
        "status": "healthy" if healthy else "unhealthy",
        "details": details,
    }
