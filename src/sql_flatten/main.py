"""FastAPI application - SQL Script Flatten Service.

Start with:
    PYTHONPATH=src uvicorn sql_flatten.main:app --host 0.0.0.0 --port 8060

Scripts are posted as plain text. Every execution runs inside a
transaction that is rolled back, so the service is safe to point at a
shared QA database.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from . import __version__
from .api_models import CacheStatusResponse, ErrorResponse, HealthResponse, ScriptResponse
from .cache.table_names import SchemaFetchError, TableNameCache
from .config import Config, load_config
from .gateway.base import ScriptGateway
from .gateway.memory import InMemoryGateway
from .gateway.mssql import MssqlGateway
from .service import InvalidScriptError, ScriptFlattenService, require_script


logger = logging.getLogger(__name__)


# Global service instance (initialized in lifespan)
_service: ScriptFlattenService | None = None


def build_gateway(config: Config) -> ScriptGateway:
    """Create the execution gateway selected by ``database.gateway``."""
    gateway_type = config.database.gateway
    if gateway_type == "memory":
        logger.info(f"Using in-memory gateway with {len(config.database.memory_tables)} tables")
        return InMemoryGateway(tables=config.database.memory_tables)
    if gateway_type == "mssql":
        return MssqlGateway(config.database)
    raise ValueError(f"Unknown gateway type: {gateway_type}")


def build_service(config: Config) -> ScriptFlattenService:
    """Wire gateway, cache and service from config."""
    gateway = build_gateway(config)
    cache = TableNameCache(
        loader=gateway.fetch_table_names,
        enabled=config.table_cache.enabled,
        expiration_minutes=config.table_cache.expiration_minutes,
    )
    return ScriptFlattenService(cache=cache, gateway=gateway, config=config)


def _set_service(service: ScriptFlattenService | None) -> None:
    global _service
    _service = service


def _require_service() -> ScriptFlattenService:
    if not _service:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return _service


async def _read_script(request: Request) -> str:
    """Decode the plain-text request body and reject blank scripts."""
    body = await request.body()
    try:
        script = body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidScriptError(f"Script must be UTF-8 text: {e}") from e
    return require_script(script)


router = APIRouter()

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Empty or undecodable script"},
    503: {"model": ErrorResponse, "description": "Table catalog unavailable"},
}


@router.post("/script", response_model=ScriptResponse, responses=_ERROR_RESPONSES, tags=["Script"])
async def post_script(
    request: Request,
    execute: bool = Query(True, description="Run the flatten script (false = flatten only)"),
):
    """
    Execute a SQL script inside a rolled-back transaction and return
    before/after rows for every table it changed.

    SQL errors in the script are reported with status 200 and
    ``success: false``; they are the user's errors, not the service's.
    """
    service = _require_service()
    logger.info("Received script execution request")

    script = await _read_script(request)

    try:
        result = await service.flatten(script, execute=execute)
    except SchemaFetchError:
        raise
    except Exception as e:
        logger.exception("Unexpected error processing script")
        return JSONResponse(
            status_code=500,
            content={"success": False, "executed": False, "error_message": f"System error: {e}"},
        )

    if not result.outcome.success:
        logger.warning(f"Script execution failed: {result.outcome.error_message}")
    else:
        logger.info(f"Script processed successfully (executed={result.executed})")

    return ScriptResponse.from_result(result)


@router.post("/script/text", response_class=PlainTextResponse, responses=_ERROR_RESPONSES, tags=["Script"])
async def post_script_text(request: Request):
    """Return the flattened SQL script as plain text without executing it."""
    service = _require_service()
    logger.info("Received script text-only request")

    script = await _read_script(request)
    flattened = await service.render(script)
    return PlainTextResponse(flattened)


@router.get("/cache/status", response_model=CacheStatusResponse, tags=["Cache"])
async def cache_status():
    """Current state of the table name cache."""
    service = _require_service()
    return CacheStatusResponse(**service.cache.stats)


@router.post("/cache/refresh", response_model=CacheStatusResponse, tags=["Cache"])
async def cache_refresh():
    """Refetch table names from the database now."""
    service = _require_service()
    await service.cache.refresh(force=True)
    return CacheStatusResponse(**service.cache.stats)


@router.delete("/cache", tags=["Cache"])
async def cache_clear():
    """Drop cached table names; the next script refetches them."""
    service = _require_service()
    await service.cache.clear()
    return {"status": "cleared"}


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health():
    """Health check endpoint."""
    if not _service:
        return HealthResponse(status="starting", gateway="none", execution_enabled=False, cache={})

    reachable = await _service.gateway.health_check()
    return HealthResponse(
        status="healthy" if reachable else "degraded",
        gateway=_service.gateway.name,
        execution_enabled=_service.execution_enabled,
        cache=_service.cache.stats,
    )


@router.get("/", tags=["Health"])
async def root():
    """Root endpoint with service info."""
    return {
        "service": "SQL Script Flatten Service",
        "version": __version__,
        "description": "Runs SQL scripts inside a rolled-back transaction and reports per-table changes.",
        "endpoints": {
            "/script": "POST plain SQL - execute and return table comparisons",
            "/script/text": "POST plain SQL - return the flattened script only",
            "/cache/status": "Table name cache state",
            "/cache/refresh": "POST - refetch table names",
            "/cache": "DELETE - clear table names",
            "/health": "Health check",
        },
    }


def create_app(config: Config | None = None) -> FastAPI:
    """Build the FastAPI application for ``config`` (loaded if omitted)."""
    app_config = config or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan - startup and shutdown."""
        logger.info("Starting script flatten service...")
        _set_service(build_service(app_config))
        logger.info(
            f"Script flatten service started (gateway={app_config.database.gateway}, "
            f"execution={'on' if app_config.execution.enabled else 'off'})"
        )

        yield

        logger.info("Shutting down script flatten service...")
        _set_service(None)
        logger.info("Script flatten service stopped")

    app = FastAPI(
        title="SQL Script Flatten Service",
        description=(
            "Wraps SQL scripts in snapshot, diff and rollback logic so QA can see "
            "exactly what a script would change without changing anything."
        ),
        version=__version__,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Script", "description": "Flatten and execute SQL scripts"},
            {"name": "Cache", "description": "Table name cache management"},
            {"name": "Health", "description": "Service health and diagnostics"},
        ],
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_config.server.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.exception_handler(InvalidScriptError)
    async def invalid_script_handler(request: Request, exc: InvalidScriptError):
        logger.warning(f"Invalid script received: {exc}")
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid script", "detail": str(exc)},
        )

    @app.exception_handler(SchemaFetchError)
    async def schema_fetch_error_handler(request: Request, exc: SchemaFetchError):
        return JSONResponse(
            status_code=503,
            content={"error": "Schema unavailable", "detail": str(exc)},
        )

    return app


app = create_app()


def run():
    """Run the service with uvicorn."""
    import uvicorn

    config = load_config()

    logging.basicConfig(
        level=config.logging.level,
        format=config.logging.format,
    )

    uvicorn.run(
        "sql_flatten.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.reload,
    )


if __name__ == "__main__":
    run()
