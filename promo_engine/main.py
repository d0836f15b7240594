import uvicorn
from fastapi import FastAPI

from promo_engine.api.routes.health import router as health_router
from promo_engine.api.routes.internal_campaigns import router as internal_campaigns_router
from promo_engine.api.routes.internal_coupons import router as internal_coupons_router
from promo_engine.core.config import get_settings
from promo_engine.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Promo Engine API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.include_router(health_router)
    app.include_router(internal_coupons_router)
    app.include_router(internal_campaigns_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "promo_engine.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
