from contextlib import asynccontextmanager
from typing import Annotated
import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from conductor.domain.models.envelope import ResultEnvelope
from conductor.domain.models.errors import ConductorError, NotFound
from conductor.domain.registry import Registry
from conductor.infrastructure.observability.logging import setup_logging
from .schemas import ComponentCatalog, ErrorResponse, RunRequest

logger = structlog.get_logger(__name__)


def get_registry(request: Request) -> Registry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise RuntimeError("Registry not initialized")
    return registry


def create_app(registry: Registry) -> FastAPI:
    """HTTP surface over a fully built registry"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = registry.settings
        setup_logging(settings.log_level, settings.log_format, settings.service_name)
        app.state.registry = registry
        logger.info("Conductor API started", components={
            kind: len(entries) for kind, entries in registry.list_components().items()
        })
        yield
        app.state.registry = None

    app = FastAPI(title="Conductor", lifespan=lifespan)

    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound):
        return JSONResponse(
            status_code=404,
            content=jsonable_encoder(ErrorResponse(kind=exc.kind.value, message=exc.message, details=exc.details))
        )

    @app.exception_handler(ConductorError)
    async def conductor_error_handler(request: Request, exc: ConductorError):
        return JSONResponse(
            status_code=400,
            content=jsonable_encoder(ErrorResponse(kind=exc.kind.value, message=exc.message, details=exc.details))
        )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/v1/components", response_model=ComponentCatalog)
    async def list_components(current: Annotated[Registry, Depends(get_registry)]):
        return ComponentCatalog(**current.list_components())

    @app.post("/api/v1/{kind}/{name}/run")
    async def run_component(
        kind: str,
        name: str,
        request: RunRequest,
        current: Annotated[Registry, Depends(get_registry)]
    ):
        component = current.get(kind, name)
        inputs = request.inputs
        if inputs is None and kind in ("tools", "pipelines"):
            inputs = {}

        with structlog.contextvars.bound_contextvars(component=f"{kind}/{name}"):
            envelope: ResultEnvelope = await component.run(inputs)
            logger.info("Component run finished", success=envelope.success, error_kind=envelope.error_kind)

        return JSONResponse(content=jsonable_encoder(envelope))

    return app
