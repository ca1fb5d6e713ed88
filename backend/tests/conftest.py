# tests/conftest.py
"""Shared fixtures - in-memory SQLite with the full schema and views"""

import pytest
from decimal import Decimal
from unittest.mock import Mock

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from crm_core.database import enable_sqlite_foreign_keys, init_db
from crm_core.rbac import DEFAULT_ROLE_PERMISSIONS
from crm_core.schemas import AccountCreate, RoleCreate, TenantCreate, UserCreate
from crm_core.services.account_hierarchy import AccountHierarchyService
from crm_core.services.directory import DirectoryService


@pytest.fixture
def test_engine():
    """Fresh in-memory database per test (one shared connection)"""
    engine = enable_sqlite_foreign_keys(
        create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(test_engine):
    """Real session; services commit against the throwaway database"""
    TestSession = sessionmaker(bind=test_engine, autocommit=False, autoflush=False)
    session = TestSession()
    yield session
    session.close()


@pytest.fixture
def mock_db():
    """Mock database session"""
    db = Mock(spec=Session)
    db.get = Mock(return_value=None)
    db.add = Mock()
    db.flush = Mock()
    db.commit = Mock()
    db.rollback = Mock()
    return db


# ============================================================================
# SAMPLE DATA
# ============================================================================

@pytest.fixture
def directory(db_session):
    return DirectoryService(db_session)


@pytest.fixture
def hierarchy(db_session):
    return AccountHierarchyService(db_session)


@pytest.fixture
def tenant(directory):
    return directory.create_tenant(
        TenantCreate(company_name="Global Tech Solutions", subscription_plan="Enterprise")
    )


@pytest.fixture
def other_tenant(directory):
    return directory.create_tenant(TenantCreate(company_name="Initech"))


@pytest.fixture
def roles(directory):
    return {
        name: directory.create_role(RoleCreate(role_name=name, permissions=permissions))
        for name, permissions in DEFAULT_ROLE_PERMISSIONS.items()
    }


@pytest.fixture
def vp(directory, tenant, roles):
    return directory.create_user(
        UserCreate(
            tenant_id=tenant.tenant_id,
            role_id=roles["Sales_VP"].role_id,
            first_name="Sarah",
            last_name="Connor",
            email="s.connor@globaltech.com",
        )
    )


@pytest.fixture
def rep(directory, tenant, roles, vp):
    return directory.create_user(
        UserCreate(
            tenant_id=tenant.tenant_id,
            role_id=roles["Account_Executive"].role_id,
            first_name="John",
            last_name="Doe",
            email="j.doe@globaltech.com",
            reports_to=vp.user_id,
        )
    )


@pytest.fixture
def hq(hierarchy, tenant, rep):
    return hierarchy.create_account(
        AccountCreate(
            tenant_id=tenant.tenant_id,
            account_name="Acme Corp HQ",
            industry="Manufacturing",
            annual_revenue=Decimal("500000000.00"),
            owner_id=rep.user_id,
        )
    )


@pytest.fixture
def east(hierarchy, tenant, hq):
    return hierarchy.create_account(
        AccountCreate(
            tenant_id=tenant.tenant_id,
            account_name="Acme East Division",
            parent_account_id=hq.account_id,
            industry="Logistics",
            annual_revenue=Decimal("45000000.00"),
        )
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: Fast tests with a mocked session")
    config.addinivalue_line(
        "markers",
        "integration: Tests against a real database with schema and views"
    )
