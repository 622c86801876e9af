import os
from collections.abc import Generator
from typing import Any

import psycopg
import pytest

from docproc.config.settings import Settings
from docproc.database.connection import apply_schema, close_pool, get_connection, init_pool
from docproc.database.enums import ProcessingType
from docproc.database.models import DocumentRef, Job
from docproc.database.repositories.job_repository import JobRepository

# Child tables first.
_TABLES = (
    "job_queue",
    "processing_results",
    "processing_jobs",
    "knowledge_entries",
    "processing_templates",
)


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "docproc_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        apply_schema()
    except Exception as e:
        close_pool()
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a disposable database"
        )
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture(autouse=True)
def clean_tables(integration_pool: None) -> Generator[None, None, None]:
    yield
    with get_connection() as conn:
        with conn.cursor() as cur:
            for table in _TABLES:
                cur.execute(f"DELETE FROM {table}")  # noqa: S608
        conn.commit()


@pytest.fixture
def seed_job(integration_pool: None) -> Job:
    return JobRepository().create(
        Job(
            job_id="seed-job",
            processing_type=ProcessingType.DOCUMENT_SUMMARY,
            document=DocumentRef(id=10, url="doc.pdf", name="doc.pdf"),
            user_id=1,
            organization_id=9,
        )
    )
