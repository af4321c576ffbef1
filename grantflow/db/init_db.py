"""
Database initialization - creates all tables and indexes.
All schema is defined in the SQLAlchemy models in grantflow/models/.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from grantflow.db.base import Base

# Import all models to ensure they are registered with Base.metadata
import grantflow.models  # noqa: F401

logger = logging.getLogger(__name__)


async def init_database(engine: AsyncEngine):
    """
    Create all tables, indexes and constraints from the models.
    Called on application startup.
    """
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database initialization completed successfully")
    except OSError as e:
        # Connection errors - the database is not running or not accessible
        logger.error("Cannot connect to database at startup: %s", e)
        # Don't raise - allow the app to start; creation is retried on next startup
