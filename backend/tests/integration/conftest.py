# tests/integration/conftest.py
"""Integration test fixtures - sample dataset on a real engine

Set TEST_DATABASE_URL to run against a server database (e.g. PostgreSQL);
otherwise the in-memory SQLite engine from tests/conftest.py is used.
"""

import os

import pytest
from sqlalchemy import create_engine

from crm_core.database import drop_db, init_db
from crm_core.seed_data import seed_sample_data

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


if TEST_DATABASE_URL:

    @pytest.fixture
    def test_engine():
        """Server database, rebuilt for every test"""
        engine = create_engine(TEST_DATABASE_URL)
        drop_db(engine)
        init_db(engine)
        yield engine
        drop_db(engine)
        engine.dispose()


@pytest.fixture
def seeded(db_session):
    """Sample tenant, team, accounts, pipeline and catalog"""
    return seed_sample_data(db_session)
