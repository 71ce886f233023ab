"""Repository selection."""

from __future__ import annotations

from typing import Optional

from brs.config import Settings
from brs.repositories.base import Repository
from brs.repositories.memory import MemoryRepository
from brs.utils.logging import get_logger


logger = get_logger(__name__)

_REPOSITORY: Optional[Repository] = None


def create_repository(settings: Optional[Settings] = None) -> Repository:
    """Postgres when a database is configured, in-memory otherwise."""
    settings = settings or Settings()
    if settings.has_database():
        from brs.repositories.postgres import PostgresRepository

        logger.info("repository.select backend=postgres")
        return PostgresRepository(settings)

    logger.info("repository.select backend=memory")
    return MemoryRepository()


def get_repository() -> Repository:
    global _REPOSITORY
    if _REPOSITORY is None:
        _REPOSITORY = create_repository()
    return _REPOSITORY


def set_repository(repository: Optional[Repository]) -> None:
    global _REPOSITORY
    _REPOSITORY = repository


__all__ = [
    "Repository",
    "MemoryRepository",
    "create_repository",
    "get_repository",
    "set_repository",
]
