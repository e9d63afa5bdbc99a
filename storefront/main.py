# storefront/main.py
from fastapi import FastAPI
from storefront.data.database import Base, engine
from storefront.api.deps import StorefrontContainer
from storefront.api.routers import carts, checkout, health
from storefront.utils.logging import get_logger
import uvicorn

logger = get_logger(__name__)

# IMPORT MODELI PRZED CREATE_ALL
from storefront.data.models.cart_snapshot import CartSnapshotModel  # noqa: F401


def create_app(container: StorefrontContainer | None = None) -> FastAPI:
    app = FastAPI(
        title="Paws Storefront",
        version="1.0.0",
    )

    if container is None:
        logger.info(f"Models registered in Base.metadata: {list(Base.metadata.tables.keys())}")
        try:
            Base.metadata.create_all(bind=engine)
        except Exception as e:
            logger.error(f"Failed to create tables: {e}")
            raise
        container = StorefrontContainer()

    app.state.container = container

    # Include routers
    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(checkout.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
