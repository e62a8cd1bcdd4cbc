from contextlib import asynccontextmanager

from fastapi import FastAPI

from seclog.api.router import api_router
from seclog.core.config import settings
from seclog.core.logging import configure_logging
from seclog.services.pipeline import start_pipeline, stop_pipeline
from seclog.services.state import PipelineState

configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    state = PipelineState.create(settings)
    app.state.pipeline = state
    # Template and today's partition must exist before the consumer writes.
    if settings.pipeline_enabled:
        await start_pipeline(state)
    try:
        yield
    finally:
        await stop_pipeline(state)


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
app.include_router(api_router)
