"""Example application.

Two handlers write the same ``foo`` and ``bar`` properties; each write lands
in the handler's own bag and the endpoint reports both.

Run it with:
    python -m contextualize.server.main
"""

from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import Depends, FastAPI, Request, Response

from contextualize import __version__
from contextualize.config import get_settings
from contextualize.engine.core import create
from contextualize.server.logging import get_logger, setup_logging
from contextualize.server.middleware import (
    ContextualizeMiddleware,
    Pipeline,
    add_exception_handlers,
)


# Setup logging on module load
setup_logging()
logger = get_logger(__name__)

context = create(["foo", "bar"])


def middleware1(request: Request, response: Response) -> None:
    view = context.view(request)
    view.foo = 5
    view.bar = 10


async def middleware2(request: Request, response: Response) -> None:
    view = context.view(request)
    view.foo = 7
    view.bar = 1


pipeline = Pipeline(
    context.isolate(middleware1),
    context.isolate(middleware2),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()
    logger.info(
        "server_starting",
        version=__version__,
        host=settings.host,
        port=settings.port,
        properties=list(context.properties),
    )
    yield
    logger.info("server_stopping")


app = FastAPI(
    title="contextualize example",
    description="Per-handler isolation of request properties",
    version=__version__,
    lifespan=lifespan,
)
app.add_middleware(ContextualizeMiddleware, engine=context)
add_exception_handlers(app)


@app.get("/", dependencies=[Depends(pipeline)])
async def result(request: Request) -> dict[str, Any]:
    """Report what each handler wrote."""
    logger.info("namespace_captured", namespace=context.resolve(request))
    return {
        "first": context.isolate(middleware1).resolve(request),
        "second": context.isolate(middleware2).resolve(request),
    }


def main():
    """Run the server."""
    settings = get_settings()
    uvicorn.run(
        "contextualize.server.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=not settings.is_production,
    )


if __name__ == "__main__":
    main()
