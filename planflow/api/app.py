"""
planflow API application

Wires the functions and sessions routers, request correlation and health.
"""

import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .. import __version__
from ..config.logging import get_logger, request_id_var
from ..llm import FallbackLLMClient
from .deps import SessionRegistry, get_llm, get_registry
from .functions import router as functions_router
from .sessions import router as sessions_router

logger = get_logger("api")

REQUEST_ID_HEADER = "X-Request-ID"


# =============================================================================
# Middleware
# =============================================================================

def _session_from_path(path: str) -> Optional[str]:
    parts = path.strip("/").split("/")
    if len(parts) >= 2 and parts[0] == "sessions":
        return parts[1]
    return None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Correlates every request with an id and logs its outcome.

    A caller-supplied X-Request-ID is reused so the extension front-end can
    match its own logs. Server errors are logged at WARNING.
    """

    async def dispatch(self, request: Request, call_next):
        req_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        request.state.request_id = req_id
        token = request_id_var.set(req_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
        response.headers[REQUEST_ID_HEADER] = req_id

        data = {
            "request_id": req_id,
            "route": f"{request.method} {request.url.path}",
            "status": response.status_code,
            "elapsed_ms": elapsed_ms,
        }
        session_id = _session_from_path(request.url.path)
        if session_id:
            data["session_id"] = session_id

        log = logger.warning if response.status_code >= 500 else logger.info
        log("%s -> %d (%.1fms)", data["route"], response.status_code, elapsed_ms,
            extra={"extra_data": data})
        return response


# =============================================================================
# Health
# =============================================================================

def health_report(llm: FallbackLLMClient, registry: SessionRegistry) -> Dict[str, Any]:
    """Breaker state per configured provider plus live session count."""
    breakers = {p.name.value: llm.breaker_for(p) for p in llm.providers}
    degraded = [name for name, breaker in breakers.items() if not breaker.allow_request()]
    return {
        "status": "degraded" if degraded else "ok",
        "version": __version__,
        "checks": {
            **{f"{name}_cb": breaker.state.value for name, breaker in breakers.items()},
            "llm_configured": llm.is_configured,
            "sessions": len(registry),
        },
    }


# =============================================================================
# Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    llm = get_llm()
    if llm.is_configured:
        logger.info("LLM providers: %s", ", ".join(p.name.value for p in llm.providers))
    else:
        logger.warning("No AI API keys configured, falling back to keyword classification")

    yield

    stopped = get_registry().stop_all()
    if stopped:
        logger.info("Stopped %d active sessions on shutdown", stopped)


# =============================================================================
# App factory
# =============================================================================

def create_app() -> FastAPI:
    """Build the planflow FastAPI application."""
    app = FastAPI(
        title="planflow",
        description="Plan execution controller: sessions, operator commands and step analysis",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.environ.get("PLANFLOW_CORS_ORIGINS", "*").split(","),
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )

    app.include_router(functions_router)
    app.include_router(sessions_router)

    @app.get("/health")
    async def health():
        return health_report(get_llm(), get_registry())

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.error(
            "Unhandled %s on %s %s",
            type(exc).__name__, request.method, request.url.path,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "details": str(exc),
                "request_id": getattr(request.state, "request_id", None),
            },
        )

    return app


app = create_app()
