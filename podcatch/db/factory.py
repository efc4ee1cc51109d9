"""Factory for creating catalog repository instances.

Detects the database type from the URL and configures the engine
accordingly (SQLite by default, any SQLAlchemy backend otherwise).
"""

import logging
import os
from typing import Optional

from .repository import CatalogRepositoryInterface, SQLAlchemyCatalogRepository

logger = logging.getLogger(__name__)

# Default catalog location for local use
DEFAULT_DATABASE_URL = "sqlite:///./podcasts.db"


def create_repository(
    database_url: Optional[str] = None,
    pool_size: int = 5,
    max_overflow: int = 10,
    echo: bool = False,
    create_tables: bool = True,
) -> CatalogRepositoryInterface:
    """
    Create a catalog repository for the provided or discovered database URL.

    If `database_url` is not provided, it is read from the `DATABASE_URL` environment variable; if that is unset, a local SQLite file is used. Logs the chosen database type and hides credentials when present.

    Parameters:
        database_url (Optional[str]): SQLAlchemy database URL to use; if None the environment or default is used.
        pool_size (int): Connection pool size for server databases; ignored for SQLite.
        max_overflow (int): Maximum overflow connections for server databases; ignored for SQLite.
        echo (bool): If true, enable SQL statement logging.
        create_tables (bool): Create missing tables when the store is opened.

    Returns:
        CatalogRepositoryInterface: A repository backed by the resolved database URL.

    Raises:
        StoreError: If the store cannot be opened.
    """
    if database_url is None:
        database_url = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)

    if "://" in database_url:
        db_type = database_url.split("://")[0]
        if "@" in database_url:
            # Hide credentials in log
            db_location = database_url.split("@")[-1]
            logger.info(f"Creating {db_type} repository: ...@{db_location}")
        else:
            logger.info(f"Creating {db_type} repository: {database_url}")
    else:
        logger.info(f"Creating repository with URL: {database_url}")

    return SQLAlchemyCatalogRepository(
        database_url=database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        echo=echo,
        create_tables=create_tables,
    )
