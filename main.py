import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from starlette.middleware.sessions import SessionMiddleware

from cookie_consent import consent_given
from cookie_consent.config import ConsentConfig, settings
from cookie_consent.database import AsyncSessionLocal, Base, engine
from cookie_consent.exception_handlers import register_exception_handlers
from cookie_consent.middleware.consent import ConsentMiddleware
from cookie_consent.repository import SQLAlchemyConsentRepository
from cookie_consent.routes import consent
from cookie_consent.storage import ConsentStorage

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up the application...")
    if settings.debug:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created (if not existing).")
    yield
    logger.info("Shutting down the application...")


def create_app(storage: ConsentStorage | None = None) -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Cookie consent management for FastAPI applications",
        debug=settings.debug,
        version=settings.app_version,
        lifespan=lifespan,
    )

    if storage is None:
        storage = ConsentStorage(
            ConsentConfig.from_settings(settings),
            SQLAlchemyConsentRepository(AsyncSessionLocal),
        )

    # Starlette middleware is LIFO: ConsentMiddleware is added first so it
    # runs inside SessionMiddleware. Host authentication middleware that sets
    # request.state.<consent_user_id_key> must also be added after it.
    app.add_middleware(ConsentMiddleware, storage=storage)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key,
        same_site="lax",
        https_only=settings.environment == "production",
    )

    register_exception_handlers(app)
    app.include_router(consent.router)

    if settings.debug:
        logger.info(f"Running in {settings.environment} mode")
        logging.getLogger("cookie_consent").setLevel(logging.DEBUG)

    return app


app = create_app()


@app.get("/", tags=["Root"])
async def root(request: Request):
    return {
        "message": "Welcome to the Cookie Consent API",
        "show_consent_modal": request.state.show_consent_modal,
        "analytics": consent_given(request, "analytics"),
    }


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.debug)
