"""
Pytest configuration and fixtures for podcatch tests.

This module runs before any test imports, setting up the test environment.
Environment variables that Config reads are cleared so tests see the
documented defaults regardless of the developer's shell or .env file.
"""

import os

import pytest

for _name in list(os.environ):
    if _name.startswith("PODCATCH_") or _name in (
        "DATABASE_URL",
        "ALEMBIC_DATABASE_URL",
        "DB_ECHO",
    ):
        del os.environ[_name]

from podcatch.db.factory import create_repository  # noqa: E402


@pytest.fixture
def repository(tmp_path):
    """
    Create a temporary SQLite-backed catalog repository.

    Yields a repository using a SQLite file under the test's temporary path and closes it on teardown.
    """
    db_path = tmp_path / "test.db"
    repo = create_repository(f"sqlite:///{db_path}", create_tables=True)
    yield repo
    repo.close()


@pytest.fixture
def owner(repository):
    """Default owner (id 1)."""
    return repository.ensure_owner(1)
