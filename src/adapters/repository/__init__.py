"""Repository adapters - Database and in-memory implementations."""

from .memory import build_memory_repositories
from .postgres import build_postgres_repositories, run_migrations
from .repositories import Repositories

__all__ = [
    "Repositories",
    "build_memory_repositories",
    "build_postgres_repositories",
    "run_migrations",
]
