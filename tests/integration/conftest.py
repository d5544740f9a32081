"""
Integration test fixtures — PostgreSQL testcontainer and schema setup.

Provides a real PostgreSQL instance for each test session via testcontainers.
The schema is created by PsycopgCertificateStore.ensure_schema() itself,
so the DDL under test is the production DDL.
Each test gets a clean table via truncation.
"""

from __future__ import annotations

from collections.abc import Iterator

import psycopg
import pytest
from testcontainers.postgres import PostgresContainer

from smime_store.adapters.repository import PsycopgCertificateStore

TRUNCATE_ALL = "TRUNCATE smime_certificates RESTART IDENTITY;"


def psycopg_url(container: PostgresContainer) -> str:
    return container.get_connection_url().replace("postgresql+psycopg2", "postgresql")


@pytest.fixture(scope="session")
def postgres_container() -> Iterator[PostgresContainer]:
    """Start a PostgreSQL container for the entire test session."""
    with PostgresContainer("postgres:16-alpine") as pg:
        PsycopgCertificateStore(psycopg_url(pg)).ensure_schema().get_or_raise()
        yield pg


@pytest.fixture()
def dsn(postgres_container: PostgresContainer) -> str:
    """Return a psycopg-compatible DSN and truncate the table before each test."""
    connection_url = psycopg_url(postgres_container)
    with psycopg.connect(connection_url) as conn:
        conn.execute(TRUNCATE_ALL)
    return connection_url


@pytest.fixture()
def pg_store(dsn: str) -> PsycopgCertificateStore:
    return PsycopgCertificateStore(dsn)
