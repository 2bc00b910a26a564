"""InfluTrak FastAPI application entry point."""
import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import router as api_router


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def _get_cors_allowed_origins() -> list[str]:
    # The tracking pixel posts from every storefront domain
    raw = os.getenv("INFLUTRAK_CORS_ALLOW_ORIGINS")
    if not raw:
        return ["*"]
    items = [x.strip() for x in raw.split(",") if x.strip()]
    return items or ["*"]


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="InfluTrak API",
        version="0.1.0",
        description="Influencer campaign attribution and ROAS ratings for Shopify",
    )

    # Only the pixel beacon is called cross-origin: POST with a JSON body.
    # The API key header is not allowed, so admin routes stay same-origin.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_get_cors_allowed_origins(),
        allow_credentials=False,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        max_age=600,
    )

    app.include_router(api_router)

    return app


app = create_app()
