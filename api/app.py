from __future__ import annotations

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import dependencies as deps
from api.routes.chapters import router as chapters_router
from api.routes.submit import router as submit_router
from api.routes.works import router as works_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    local_queue = None
    if deps.pipeline_queue_backend() == "local":
        local_queue = deps.get_local_queue()
        local_queue.start()
    try:
        yield
    finally:
        if local_queue is not None:
            timeout = float(os.getenv("PIPELINE_SHUTDOWN_TIMEOUT", "30"))
            await local_queue.stop(drain=True, timeout=timeout)


def create_app() -> FastAPI:
    app = FastAPI(title="Chapter Reader API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(works_router)
    app.include_router(chapters_router)
    app.include_router(submit_router)

    @app.get("/healthz")
    def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
