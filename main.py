"""
Account service — application entry point.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.accounts import router as accounts_router
from api.error_handling import register_exception_handlers
from api.middleware import register_middleware
from auth.jwt import TokenIssuer
from auth.routes import router as auth_router
from config.settings import Settings, config
from database.session import build_engine, build_session_factory, create_schema
from media.staging import CloudinaryCredentials, MediaStagingCoordinator

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "sqlalchemy.engine", "urllib3"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def build_media_coordinator(settings: Settings) -> MediaStagingCoordinator:
    credentials = CloudinaryCredentials(
        cloud_name=settings.cloudinary_cloud_name,
        api_key=settings.cloudinary_api_key,
        api_secret=settings.cloudinary_api_secret,
        base_url=settings.cloudinary_base_url,
        folder=settings.cloudinary_folder,
    )
    if not credentials.cloud_name or not credentials.api_secret:
        logger.warning("Cloudinary credentials not set — media uploads will fail")
    return MediaStagingCoordinator(credentials, timeout=settings.media_timeout_seconds)


def create_app(
    settings: Optional[Settings] = None,
    media: Optional[MediaStagingCoordinator] = None,
) -> FastAPI:
    settings = settings or config
    app = FastAPI(
        title="Account Service",
        version="1.0.0",
        description="Account registration with media and token-based sessions.",
    )
    app.state.settings = settings
    # Fails fast on missing secrets, before the server accepts traffic.
    app.state.token_issuer = TokenIssuer(settings.token_secrets())

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    app.include_router(accounts_router, prefix="/api/v1/users")
    app.include_router(auth_router, prefix="/api/v1/users")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.on_event("startup")
    async def on_startup():
        engine = build_engine(settings.database_url)
        app.state.engine = engine
        app.state.session_factory = build_session_factory(engine)
        if settings.auto_create_schema:
            logger.info("Creating database schema…")
            await create_schema(engine)

        app.state.media = media or build_media_coordinator(settings)
        logger.info("Application ready to accept requests.")

    @app.on_event("shutdown")
    async def on_shutdown():
        await app.state.media.aclose()
        await app.state.engine.dispose()

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
