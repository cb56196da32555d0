"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from autotrigger import __version__
from autotrigger.api.routes import router as core_router
from autotrigger.api.ws import ConnectionManager
from autotrigger.api.ws import router as ws_router
from autotrigger.core.config.loader import load_config
from autotrigger.core.cron.scheduler import AutoTriggerScheduler
from autotrigger.engine.controller import TriggerController
from autotrigger.engine.credentials import StoredCredentialService
from autotrigger.engine.executor import HttpTriggerExecutor
from autotrigger.memory.store import TriggerStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: Config → TriggerStore → collaborators → TriggerController → timer. Shutdown: cleanup."""
    config = load_config()
    db = TriggerStore(str(config.db_path))
    credentials = StoredCredentialService(db)
    executor = HttpTriggerExecutor(config.trigger, credentials)
    controller = TriggerController(config, db, credentials, executor)

    ws_manager = ConnectionManager()
    controller.subscribe(ws_manager.push_snapshot)

    await controller.start()

    auto_fire = None
    if config.background.auto_fire.enabled:
        auto_fire = AutoTriggerScheduler(controller, config)
        await auto_fire.start()

    app.state.config = config
    app.state.db = db
    app.state.controller = controller
    app.state.auto_fire = auto_fire
    app.state.ws_manager = ws_manager

    logger.info(f"autotrigger API started — state: {controller.state.value}")
    yield

    # Shutdown
    if auto_fire:
        await auto_fire.stop()
    await executor.aclose()
    logger.info("autotrigger API shutting down")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="autotrigger API",
        description="Recurring model trigger scheduler",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(core_router)
    app.include_router(ws_router)

    return app


app = create_app()
