from __future__ import annotations

from typing import Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from ..models.user import Portal
from .routers import matching, notifications
from .routers.auth import verify_router
from .store import SandboxError, SandboxStore, seeded_store


def create_app(store: SandboxStore | None = None) -> FastAPI:
    """Build an in-memory OrganLink API for local runs and tests."""
    app = FastAPI(title="OrganLink Sandbox API", version="1.0.0")
    app.state.store = store if store is not None else seeded_store()

    @app.exception_handler(SandboxError)
    async def sandbox_error(_: Request, exc: SandboxError) -> JSONResponse:
        return JSONResponse({"success": False, "error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(HTTPException)
    async def http_error(_: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse({"success": False, "error": exc.detail}, status_code=exc.status_code)

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    for portal in Portal:
        app.include_router(verify_router(portal))
    app.include_router(matching.router)
    app.include_router(notifications.hospital_router)
    app.include_router(notifications.organization_router)
    app.include_router(notifications.admin_router)
    return app


app = create_app()
