"""Host integration for FastAPI / Starlette applications."""

from typing import Any

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from contextualize.engine.core import Contextualize
from contextualize.engine.units import Stage, invoke
from contextualize.exceptions import ContextualizeError
from contextualize.server.logging import get_logger

logger = get_logger(__name__)


class ContextualizeMiddleware(BaseHTTPMiddleware):
    """Middleware installing an engine's namespace on every request."""
    
    def __init__(self, app: ASGIApp, engine: Contextualize):
        super().__init__(app)
        self.engine = engine
    
    async def dispatch(self, request: Request, call_next):
        self.engine.install(request)
        response = await call_next(request)
        return response


class Pipeline:
    """Ordered stages run one after another for each request.
    
    Instances are FastAPI dependencies::
    
        pipeline = Pipeline(context, context.isolate(first))
        
        @app.get("/", dependencies=[Depends(pipeline)])
        async def endpoint(request: Request): ...
    """
    
    def __init__(self, *stages: Stage):
        self.stages: list[Stage] = []
        for stage in stages:
            self.use(stage)
    
    def use(self, stage: Stage) -> "Pipeline":
        """Append a stage."""
        if not callable(stage):
            raise TypeError(f"Stage must be callable, not {type(stage).__name__}")
        self.stages.append(stage)
        return self
    
    async def __call__(self, request: Request, response: Response) -> None:
        for index, stage in enumerate(self.stages):
            try:
                await invoke(stage, request, response)
            except Exception as e:
                logger.warning("pipeline_stage_failed", stage=index, error=str(e))
                raise
    
    def __len__(self) -> int:
        return len(self.stages)


async def contextualize_error_handler(request: Request, exc: Any) -> JSONResponse:
    """Render a ContextualizeError as a structured 500 response."""
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=exc.to_dict(),
    )


def add_exception_handlers(app: FastAPI) -> None:
    """Register the structured error response on ``app``."""
    app.add_exception_handler(ContextualizeError, contextualize_error_handler)
