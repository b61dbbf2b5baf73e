"""
Storage package.
Durable SQL backend, flat-file JSON backend, and the failover gateway
that fronts both.
"""
import logging
from typing import Optional

from .backend import StorageBackend
from .gateway import StorageGateway, StorageResult
from .json_backend import JSONFileBackend
from .sql_backend import SQLBackend

logger = logging.getLogger(__name__)


async def create_storage_gateway(settings) -> StorageGateway:
    """
    Build the gateway from application settings.

    The durable backend is created only when a database URL is
    configured; its initialization failures leave it marked unhealthy
    rather than raising.
    """
    from ..database import ConnectionHealth, create_database_engine

    fallback = JSONFileBackend(settings.data_dir)
    durable: Optional[SQLBackend] = None

    if settings.database_enabled:
        health = ConnectionHealth()
        try:
            engine = create_database_engine(settings.database_url, health=health)
            durable = SQLBackend(engine, health)
            if not await durable.initialize():
                logger.warning("Durable store unavailable at startup, using JSON fallback")
        except Exception as e:
            logger.error(f"Failed to create durable store: {e}")
            durable = None
    else:
        logger.info("No database configured, using JSON file storage only")

    return StorageGateway(fallback=fallback, durable=durable)


__all__ = [
    'StorageBackend',
    'StorageGateway',
    'StorageResult',
    'JSONFileBackend',
    'SQLBackend',
    'create_storage_gateway'
]
