"""Repository selection based on configuration."""

import logging

from chat_invoice.shared.config import Settings
from chat_invoice.storage.memory import InMemoryRepository
from chat_invoice.storage.ports import Repository
from chat_invoice.storage.sql import SqlRepository

logger = logging.getLogger(__name__)


def create_repository(settings: Settings) -> Repository:
    """Create the SQL repository when ``database_url`` is set, else the in-memory one.

    Args:
        settings: Application settings

    Returns:
        Repository implementation
    """
    if settings.database_url:
        logger.info("Using SQL repository")
        return SqlRepository(
            settings.database_url,
            name_match_threshold=settings.customer_name_match_threshold,
            min_name_length=settings.customer_fuzzy_min_name_length,
        )

    logger.info("Using in-memory repository (APP_DATABASE_URL not set)")
    return InMemoryRepository(
        name_match_threshold=settings.customer_name_match_threshold,
        min_name_length=settings.customer_fuzzy_min_name_length,
    )
