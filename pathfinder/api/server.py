"""
HTTP service for Pathfinder Runner.

``POST /api/runs`` starts a run and answers with its event stream as
server-sent events. A client that disconnects stops receiving events; the run
continues and persists its results unless it is cancelled through
``POST /api/runs/{run_id}/cancel``.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import APIRouter, Body, FastAPI
from fastapi.responses import JSONResponse, StreamingResponse

from .. import __version__
from ..core.config import Config
from ..execution.engine import ExecutionEngine
from ..streaming.events import encode_sse

logger = logging.getLogger(__name__)


def create_run_router(engine: ExecutionEngine) -> APIRouter:
    """Routes for starting, cancelling and inspecting runs."""
    router = APIRouter(tags=["runs"])

    @router.post("/runs", response_model=None)
    async def start_run(payload: Dict[str, Any] = Body(...)) -> StreamingResponse:
        """Start a run and stream its events."""
        run_id, request = engine.assign_run_id(payload)
        start_time = time.monotonic()
        logger.info("Run stream open: run=%s", run_id)

        async def event_generator() -> AsyncGenerator[str, None]:
            events = engine.stream(request)
            try:
                async for event in events:
                    yield encode_sse(event)
            finally:
                await events.aclose()
                logger.info(
                    "Run stream closed: run=%s duration=%.1fs",
                    run_id,
                    time.monotonic() - start_time,
                )

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Run-Id": run_id,
            },
        )

    @router.post("/runs/{run_id}/cancel", response_model=None)
    async def cancel_run(run_id: str) -> JSONResponse:
        if not engine.cancel(run_id):
            return JSONResponse(
                status_code=404,
                content={"code": "RUN_NOT_ACTIVE", "runId": run_id},
            )
        return JSONResponse(content={"runId": run_id, "cancelled": True})

    @router.get("/runs/{run_id}", response_model=None)
    async def get_run(run_id: str) -> JSONResponse:
        record = engine.store.load_run(run_id)
        if record is None:
            return JSONResponse(
                status_code=404,
                content={"code": "RUN_NOT_FOUND", "runId": run_id},
            )
        return JSONResponse(content=record)

    return router


def create_app(
    config: Optional[Config] = None,
    engine: Optional[ExecutionEngine] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Runner configuration; read from the environment when omitted
        engine: Engine to serve; built from ``config`` when omitted
    """
    config = config or Config.from_env()
    engine = engine or ExecutionEngine(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Pathfinder API startup")
        logger.info("Suites directory: %s", config.suites_dir)
        yield
        active = engine.active_runs
        if active:
            logger.info("Waiting for %d active runs to finish", len(active))
        await engine.drain()

    app = FastAPI(
        title="Pathfinder Runner API",
        description="Browser scenario execution with streamed progress",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.state.config = config

    app.include_router(create_run_router(engine), prefix="/api")

    @app.get("/api/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "ok",
            "version": __version__,
            "activeRuns": engine.active_runs,
        }

    return app
