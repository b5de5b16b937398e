import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nft_api.common.errors import register_exception_handlers
from nft_api.common.health import router as health_router
from nft_api.config import Settings, settings as default_settings
from nft_api.logging_config import configure_logging
from nft_api.middleware.request_context_middleware import RequestContextMiddleware
from nft_api.routers import nft_router
from nft_api.services.nft_service import NFTService

logger = logging.getLogger("nft_api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    missing = app.state.settings.missing_required()
    if missing:
        logger.warning("Missing required configuration: %s; NFT routes will fail until set", ", ".join(missing))
    logger.info("%s starting", app.state.settings.APP_NAME, extra={"solana": app.state.settings.network_info()})
    yield
    await app.state.nft_service.close()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="REST API for minting and updating Metaplex Core NFTs on Solana",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.nft_service = NFTService(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    register_exception_handlers(app, include_stack=not settings.is_production)

    app.include_router(health_router, prefix="", tags=["Monitoring"])
    app.include_router(nft_router.router, prefix="/api/nft", tags=["NFT"])
    return app


app = create_app()
