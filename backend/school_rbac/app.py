import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .database import create_db_engine, create_session_factory, init_database
from .errors import register_error_handlers
from .routes import ROUTERS
from .security import TokenService
from .services import seed_admin


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, handlers=[logging.StreamHandler()])
    logging.getLogger().setLevel(level.upper())


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    engine = create_db_engine(settings.database_url)
    session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Initializing database...")
        init_database(engine)
        with session_factory() as db:
            seed_admin(db, settings)
        logger.info("%s started (%s)", settings.app_name, settings.env)
        yield
        logger.info("Shutting down...")
        engine.dispose()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.token_service = TokenService(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    @app.get("/health", tags=["Health"])
    def health():
        return {"success": True, "message": f"{settings.app_name} is running", "data": {"env": settings.env}}

    for router in ROUTERS:
        app.include_router(router)
    return app
