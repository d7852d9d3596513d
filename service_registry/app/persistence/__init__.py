"""
Persistence backends for the Registry Service.

- base: the ``Storage`` interface the services depend on.
- memory: in-process backend for local runs and tests.
- postgres: asyncpg backend; constraints and cascades live in the schema.
"""

from shared.errors import InvalidInputError

from .base import Storage
from .memory import InMemoryStorage


def create_storage(dsn: str, min_size: int = 2, max_size: int = 10) -> Storage:
    """Build the backend named by ``dsn``."""
    if dsn.startswith("memory://"):
        return InMemoryStorage()
    if dsn.startswith(("postgres://", "postgresql://")):
        from .postgres import PostgreSQLStorage
        return PostgreSQLStorage(dsn, min_size=min_size, max_size=max_size)
    raise InvalidInputError(f"Unsupported storage DSN: {dsn.split('://')[0]}")


__all__ = ["Storage", "InMemoryStorage", "create_storage"]
