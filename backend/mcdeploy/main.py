from contextlib import asynccontextmanager

from fastapi import FastAPI

from .engine import DeployEngine
from .logger import logger
from .routers import deploy


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up the deploy engine...")
    engine = DeployEngine()
    await engine.start()
    app.state.engine = engine
    logger.info("Startup complete.")
    try:
        yield
    finally:
        await engine.stop()


app = FastAPI(lifespan=lifespan, title="MC Deploy")
app.include_router(deploy.router)
