import logging
from contextlib import asynccontextmanager
from logging import INFO
from typing import Any, AsyncIterator, Optional

from tortoise import Tortoise
from tortoise.transactions import in_transaction

from marketplace.core.config import DB_URL

log = logging.getLogger(__name__)

# Set logging level for Tortoise ORM
logging.getLogger('tortoise').setLevel(INFO)

# Define all models modules for the ORM
MODELS_MODULES = [
    "marketplace.models.account",
    "marketplace.models.order",
    "marketplace.models.wallet",
    "marketplace.models.outbox",
    "marketplace.models.processed_event",
]


async def init_db(db_url: str = DB_URL, generate_schemas: bool = True):
    """Initializes the Tortoise ORM connection and generates schemas."""
    try:
        await Tortoise.init(
            db_url=db_url,
            modules={"models": MODELS_MODULES},
        )
        if generate_schemas:
            await Tortoise.generate_schemas()
        log.info("Database connection established and schemas generated.")
    except Exception as e:
        log.error(f"FATAL ERROR: Could not connect to database. Error: {e}")
        # Re-raise to prevent the application from starting without a database
        raise


async def close_db():
    """Closes all database connections."""
    await Tortoise.close_connections()
    log.info("Database connections closed.")


@asynccontextmanager
async def atomic(conn: Optional[Any] = None) -> AsyncIterator[Any]:
    """
    Joins the caller's transaction when a connection is given, otherwise opens a new one.

    Everything written through the yielded connection commits or rolls back together.
    """
    if conn is not None:
        yield conn
        return
    async with in_transaction() as new_conn:
        yield new_conn
