"""
Source system database engine (SQLAlchemy async)
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from sqlalchemy.pool import NullPool
from core.config import Settings
import logging

logger = logging.getLogger(__name__)


def create_source_engine(settings: Settings) -> AsyncEngine:
    """Create the read-only engine used to poll the source system"""
    engine = create_async_engine(
        settings.SOURCE_DATABASE_URL,
        echo=False,
        poolclass=NullPool,  # Short-lived connections per page query
        future=True
    )
    target = settings.SOURCE_DATABASE_URL.split("@")[-1]
    logger.info(f"Source database engine created for {target}")
    return engine
