"""Application factory for creating FastAPI instances."""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from .config import AppConfig, get_config, validate_config
from .core.automation import AutomationHandle
from .core.environment import ExecutorServices
from .core.interfaces import CredentialStore, FileStorage, ModelClient, TextStreamSource
from .core.logging import setup_logging, get_logger
from .core.run_controller import RunController
from .core.workflow_store import WorkflowStore
from .llm import OpenRouterClient, WorkflowGenerator
from .storage import (
    ChainedCredentialStore,
    DatabaseCredentialStore,
    DatabaseFileStorage,
    EnvironmentCredentialStore,
    get_session_factory,
    init_database
)
from .api.endpoints import router, download_router, init_dependencies


class ApplicationState:
    """Container for application state and components."""

    def __init__(self):
        self.config: Optional[AppConfig] = None
        self.workflow_store: Optional[WorkflowStore] = None
        self.run_controller: Optional[RunController] = None
        self.file_storage: Optional[FileStorage] = None
        self.credentials: Optional[CredentialStore] = None
        self.workflow_generator: Optional[TextStreamSource] = None
        self.logger = None


# Global application state
app_state = ApplicationState()


def initialize_core_components(
    config: AppConfig,
    logger,
    automation_factory: Optional[Callable[[], AutomationHandle]] = None,
    credentials: Optional[CredentialStore] = None,
    model_client: Optional[ModelClient] = None,
    workflow_generator: Optional[TextStreamSource] = None,
    file_storage: Optional[FileStorage] = None
) -> None:
    """Build the collaborators and the run controller, and store them in ``app_state``."""
    try:
        credentials = credentials or ChainedCredentialStore([
            EnvironmentCredentialStore(),
            DatabaseCredentialStore(),
        ])
        file_storage = file_storage or DatabaseFileStorage()
        openrouter = OpenRouterClient(
            base_url=config.openrouter_base_url,
            default_model=config.extraction_model,
            timeout=config.http_timeout
        )
        model_client = model_client or openrouter
        if workflow_generator is None:
            workflow_generator = WorkflowGenerator(openrouter, credentials, model=config.generation_model)

        if automation_factory is None:
            def automation_factory():
                return AutomationHandle(headless=config.browser_headless)

        services = ExecutorServices(
            credentials=credentials,
            files=file_storage,
            model_client=model_client,
            extraction_model=config.extraction_model,
            max_extraction_chars=config.max_extraction_chars,
            http_timeout=config.http_timeout
        )
        run_controller = RunController(
            services=services,
            automation_factory=automation_factory,
            max_node_workers=config.max_node_workers,
            max_concurrent_runs=config.max_concurrent_runs,
            continue_on_failure=config.continue_on_failure,
            node_timeout=config.node_timeout,
            max_retained_runs=config.max_retained_runs
        )

        app_state.config = config
        app_state.workflow_store = WorkflowStore()
        app_state.run_controller = run_controller
        app_state.file_storage = file_storage
        app_state.credentials = credentials
        app_state.workflow_generator = workflow_generator
        app_state.logger = logger

        logger.info("Core components initialized")

    except Exception as e:
        logger.error(f"Core components initialization failed: {e}")
        raise


def graceful_shutdown(logger) -> None:
    """Handle graceful shutdown of application components."""
    logger.info(f"Shutting down {app_state.config.app_name if app_state.config else 'WebExtract'}")

    if app_state.run_controller is not None:
        try:
            app_state.run_controller.shutdown()
            logger.info("Run controller shutdown completed")
        except Exception as e:
            logger.error(f"Error during run controller shutdown: {str(e)}")


def create_app(
    config: Optional[AppConfig] = None,
    automation_factory: Optional[Callable[[], AutomationHandle]] = None,
    credentials: Optional[CredentialStore] = None,
    model_client: Optional[ModelClient] = None,
    workflow_generator: Optional[TextStreamSource] = None,
    file_storage: Optional[FileStorage] = None
) -> FastAPI:
    """Create and configure a FastAPI application instance.

    The optional collaborators replace the production ones; tests use them
    to run without a browser or a model provider.
    """
    if config is None:
        config = get_config()

    validate_config(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger = setup_logging(
            level=config.log_level.value,
            log_file=config.log_file,
            log_format=config.log_format,
            structured=config.structured_logging,
            max_size=config.log_max_size,
            backup_count=config.log_backup_count
        )
        logger.info(f"Starting {config.app_name} v{config.app_version}")

        try:
            init_database(config.database_url, echo=config.database_echo)
            logger.info("Database tables created")

            initialize_core_components(
                config,
                logger,
                automation_factory=automation_factory,
                credentials=credentials,
                model_client=model_client,
                workflow_generator=workflow_generator,
                file_storage=file_storage
            )
            init_dependencies(
                workflow_store=app_state.workflow_store,
                run_controller=app_state.run_controller,
                file_storage=app_state.file_storage,
                workflow_generator=app_state.workflow_generator
            )
            logger.info("Application startup completed successfully")
        except Exception as e:
            logger.error(f"Application startup failed: {e}")
            raise

        yield

        graceful_shutdown(logger)

    app = FastAPI(
        title=config.app_name,
        description="Turns natural-language scraping requests into task graphs and runs them",
        version=config.app_version,
        debug=config.debug,
        lifespan=lifespan
    )

    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_credentials=True,
            allow_methods=config.cors_methods,
            allow_headers=["*"],
        )

    from .core.middleware import (
        ErrorHandlingMiddleware,
        RequestLoggingMiddleware,
        PerformanceMonitoringMiddleware
    )

    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(PerformanceMonitoringMiddleware, slow_request_threshold=config.slow_request_threshold)
    if config.enable_request_logging:
        app.add_middleware(RequestLoggingMiddleware)

    app.include_router(router)
    app.include_router(download_router)

    add_health_endpoints(app, config)

    return app


def add_health_endpoints(app: FastAPI, config: AppConfig) -> None:
    """Add health check endpoints to the application."""

    @app.get("/")
    async def root():
        """Root endpoint for basic health check."""
        return {"message": f"{config.app_name} is running", "version": config.app_version}

    @app.get("/health")
    def health_check():
        """Health check including database connectivity."""
        service = config.app_name.lower().replace(" ", "-")
        db = get_session_factory()()
        try:
            db.execute(text("SELECT 1"))
        except Exception as e:
            get_logger(__name__).error(f"Health check failed: {str(e)}")
            return JSONResponse(
                status_code=503,
                content={
                    "status": "unhealthy",
                    "service": service,
                    "error": str(e),
                    "timestamp": datetime.utcnow().isoformat()
                }
            )
        finally:
            db.close()

        return {
            "status": "healthy",
            "service": service,
            "version": config.app_version
        }


def get_app_state() -> ApplicationState:
    """Get the current application state."""
    return app_state
