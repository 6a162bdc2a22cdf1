from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from workbench.application import (
    WorkbenchService,
    build_workbench_service,
    configure_workbench_service,
    get_workbench_service,
)
from workbench.core.logging_setup import setup_logging
from workbench.core.settings import WorkbenchSettings
from workbench.routes import browse, imports, invocations, runs


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await get_workbench_service().aclose()


def create_app(settings: WorkbenchSettings | None = None, *, service: WorkbenchService | None = None) -> FastAPI:
    setup_logging()
    if service is not None:
        settings = service.settings
    settings = settings or WorkbenchSettings.from_env()
    configure_workbench_service(service or build_workbench_service(settings))

    app = FastAPI(title="Workbench Run Gateway", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(invocations.router, prefix="/api")
    app.include_router(runs.router, prefix="/api")
    app.include_router(browse.router, prefix="/api")
    app.include_router(imports.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Workbench Run Gateway",
                "docs": "/docs",
                "backend": settings.base_url,
            }
        )

    return app
