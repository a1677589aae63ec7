import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from . import config
from .api.admin import router as admin_router
from .api.feed import router as feed_router
from .api.health import router as health_router
from .api.prometheus import router as prometheus_router
from .config import API_PREFIX, API_VERSION
from .db import init_db
from .logging_config import setup_logging
from .middleware import TracingMiddleware
from .scheduler import ValidatorScheduler
from .services.sweeper import BackgroundSweeper

# Configure logging at import time
setup_logging()

logger = logging.getLogger("threatfeed")


@asynccontextmanager
async def lifespan(application: FastAPI):
    logger.info("Threat feed API starting up", extra={"component": "api"})
    init_db()

    application.state.sweeper = BackgroundSweeper()
    application.state.sweeper.start()

    application.state.scheduler = None
    if config.VALIDATOR_SCHEDULER_ENABLED:
        application.state.scheduler = ValidatorScheduler()
        application.state.scheduler.start()

    logger.info("Threat feed API ready", extra={
        "component": "api",
        "scheduler": application.state.scheduler is not None,
    })
    try:
        yield
    finally:
        if application.state.scheduler is not None:
            application.state.scheduler.stop()
        application.state.sweeper.stop()
        logger.info("Threat feed API shutting down", extra={"component": "api"})


app = FastAPI(title="Threat Indicator Feed API", version=API_VERSION, lifespan=lifespan)
app.add_middleware(TracingMiddleware)

app.include_router(feed_router)
app.include_router(health_router, prefix=API_PREFIX)
app.include_router(prometheus_router, prefix=API_PREFIX)
app.include_router(admin_router, prefix=API_PREFIX)
