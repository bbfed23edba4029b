import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from .container import build_container
from .routes import jobs_router, routing_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    # Tests install their own container before startup
    if getattr(app.state, "container", None) is None:
        app.state.container = build_container()
    logger.info("Services ready")

    yield

    container = app.state.container
    if container.job_queue is not None:
        await container.job_queue.close()
    pending = await container.write_queue.count()
    if pending:
        logger.warning(f"⚠️ Shutting down with {pending} record write(s) awaiting replay by the worker")
    logger.info("Application shutting down...")


app = FastAPI(title="ADAS Ops API", version="1.0.0", lifespan=lifespan)

app.include_router(routing_router)
app.include_router(jobs_router)


@app.get("/")
def root():
    return {"message": "ADAS Ops API is running"}


@app.get("/health")
async def health(request: Request):
    container = getattr(request.app.state, "container", None)
    return {
        "status": "healthy",
        "pending_writes": await container.write_queue.count() if container else 0,
    }
