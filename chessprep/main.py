"""ChessPrep analysis service - FastAPI entrypoint."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .analysis import AnalysisWorkspace, EngineOptions, WorkspaceStore
from .api.routes import clear_services, register_services, router
from .config import Settings, settings
from .engine import (
    AnalysisBinary,
    EngineRouter,
    OneShotRunner,
    SessionMode,
    SessionRegistry,
    session_factory,
)

# Configure logging
structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        structlog.stdlib.logging.INFO if not settings.debug else structlog.stdlib.logging.DEBUG
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


def build_engine_router(config: Settings) -> EngineRouter:
    """Wire the persistent session, one-shot fallback and breaker."""
    registry = SessionRegistry(
        session_factory(
            subcommand=config.session_subcommand,
            startup_timeout=config.startup_timeout,
            read_timeout=config.read_timeout,
            shutdown_timeout=config.shutdown_timeout,
        )
    )
    return EngineRouter(
        binary=AnalysisBinary(config.session_binary, config.build_command),
        registry=registry,
        one_shot=OneShotRunner(timeout=config.one_shot_timeout),
        mode=SessionMode(),
        max_multipv=config.max_multipv,
    )


def build_workspace(config: Settings, engine_router: EngineRouter) -> AnalysisWorkspace:
    return AnalysisWorkspace(
        engine_router,
        options=EngineOptions(
            engine_path=config.engine_path,
            depth=config.default_depth,
            top_lines=config.default_multipv,
        ),
        store=WorkspaceStore(config.workspace_path),
        debounce_seconds=config.debounce_seconds,
        max_plies=config.path_graph_max_plies,
        max_multipv=config.max_multipv,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - owns the engine session for the process."""
    logger.info(
        "Starting ChessPrep analysis service",
        session_binary=str(settings.session_binary),
        engine=settings.engine_path or None,
        workspace_dir=str(settings.workspace_path),
    )

    engine_router = build_engine_router(settings)
    workspace = build_workspace(settings, engine_router)
    register_services(engine_router, workspace)

    if not engine_router.binary.exists() and not settings.build_command:
        logger.warning("Analysis binary not found", path=str(settings.session_binary))

    logger.info("ChessPrep analysis service ready", mode=engine_router.mode.mode.value)

    yield

    # Shutdown
    logger.info("Shutting down ChessPrep analysis service")
    clear_services()
    await workspace.close()
    await engine_router.registry.close()
    logger.info("Engine session stopped")


# Create FastAPI app
app = FastAPI(
    title="ChessPrep Analysis Service",
    description="Move-tree analysis backed by a persistent engine session with one-shot fallback",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routes
app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chessprep.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
