"""FastAPI app entrypoint."""

from __future__ import annotations

import uvicorn
from fastapi import FastAPI

from procon.api.deps import get_instance_manager
from procon.api.routes.projects import router as projects_router
from procon.api.routes.reconcile import router as reconcile_router
from procon.core.instance_manager import InstanceManager
from procon.settings import RuntimeSettings


def create_app(settings: RuntimeSettings | None = None) -> FastAPI:
    app = FastAPI(title="procon API", version="0.1.0")
    app.include_router(projects_router)
    app.include_router(reconcile_router)

    if settings is not None:
        app.dependency_overrides[get_instance_manager] = lambda: InstanceManager(settings)

    @app.get("/api/v1/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


def serve(settings: RuntimeSettings, *, host: str = "127.0.0.1", port: int = 8000) -> None:
    uvicorn.run(create_app(settings), host=host, port=port)
