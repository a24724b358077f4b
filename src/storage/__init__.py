"""Storage layer: asyncpg connection pool shared by all repositories."""

from src.storage.database import Database

__all__ = ["Database"]
