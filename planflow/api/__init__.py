"""
planflow API Layer

REST API for plan execution sessions and the analyze-response function.

Run:
    python run_api.py
    # or
    uvicorn planflow.api.app:app --reload

Endpoints:
    GET  /health                          - Health check, circuit breaker states

    POST /functions/analyze-response      - Execute a step / analyse a response

    POST   /sessions                      - Create and start a session
    GET    /sessions/{id}                 - Session state, steps and log
    POST   /sessions/{id}/pause           - Pause
    POST   /sessions/{id}/resume          - Resume without retrying
    POST   /sessions/{id}/continue        - Skip the auto-continue delay
    POST   /sessions/{id}/retry           - Retry the held step
    POST   /sessions/{id}/skip            - Skip the held step
    POST   /sessions/{id}/stop            - Stop the session
    DELETE /sessions/{id}                 - Stop and forget the session
"""

from .app import create_app, app
from .functions import router as functions_router
from .sessions import router as sessions_router

__all__ = [
    "create_app",
    "app",
    "functions_router",
    "sessions_router",
]
