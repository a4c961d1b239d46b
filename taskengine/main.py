from contextlib import asynccontextmanager
from fastapi import FastAPI
from taskengine.dependencies import init_db
from taskengine.logging_config import setup_logging
from taskengine.routers import health, queue, workers, services, prompts

@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging("taskengine-api")
    init_db()
    yield

app = FastAPI(title="Task Engine", lifespan=lifespan)

app.include_router(health.router, prefix="/api/v1")
app.include_router(queue.router, prefix="/api/v1")
app.include_router(workers.router, prefix="/api/v1")
app.include_router(services.router, prefix="/api/v1")
app.include_router(prompts.router, prefix="/api/v1")
