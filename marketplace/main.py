import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, status

from marketplace.api.v1.orders import router as orders_router
from marketplace.api.v1.wallets import router as wallets_router
from marketplace.api.v1.webhooks import router as webhooks_router
from marketplace.core.config import LOG_LEVEL, PROJECT_NAME, VERSION
from marketplace.core.db import close_db, init_db
from marketplace.core.exception_handlers import setup_exception_handlers

logging.basicConfig(level=LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger("uvicorn")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles startup and shutdown events."""
    log.info(f"Starting {PROJECT_NAME} v{VERSION}...")
    await init_db() # Connect to DB and generate schemas
    yield
    await close_db()
    log.info(f"{PROJECT_NAME} stopped.")

app = FastAPI(
    title=PROJECT_NAME,
    version=VERSION,
    lifespan=lifespan,
    # Configure API documentation and paths
    docs_url="/docs",
    redoc_url="/redoc"
)

# Include routers for modular API structure
app.include_router(orders_router, prefix="/api/v1/orders", tags=["Order Management"])
app.include_router(wallets_router, prefix="/api/v1/wallets", tags=["Wallets"])
app.include_router(webhooks_router, prefix="/api/v1/webhooks", tags=["Payment Webhooks"])


setup_exception_handlers(app)

@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Simple health check endpoint."""
    return {"status": "ok", "app_name": PROJECT_NAME}
