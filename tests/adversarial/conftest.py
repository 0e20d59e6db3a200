"""
Shared fixtures for adversarial tests.

Every adversarial test runs against both storage backends: the in-memory
adapters and PostgreSQL (skipped when no database is reachable).
"""

import pytest

from src.adapters.repository import Repositories, build_memory_repositories


@pytest.fixture(params=["memory", "postgres"])
def repositories(request: pytest.FixtureRequest) -> Repositories:
    """Override the root fixture so attacks hit each backend."""
    if request.param == "postgres":
        return request.getfixturevalue("postgres_repositories")
    return build_memory_repositories()
