"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from assistant_engine.api import router as api_router
from assistant_engine.api.chat import get_persistence_queue


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Flush queued message/metrics writes before shutdown
    await get_persistence_queue().close()


app = FastAPI(
    title="Assistant Engine",
    description="Grounded, streamed chat assistant with adaptive model routing",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"}, status_code=200)


# Include v1 API router
app.include_router(api_router, prefix="/v1", tags=["v1"])
