"""
Seed the CRM schema with the sample dataset.

Run against an empty database:
    python -m crm_core.seed_data

Rows go through the services, so the sample data obeys the same rules as
any other write (Michael Scott's lead is converted, not inserted as
Converted, which gives it a converted contact).
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy.orm import Session

from crm_core.config import settings
from crm_core.database import SessionLocal, init_db
from crm_core.enums import OpportunityStage
from crm_core.rbac import DEFAULT_ROLE_PERMISSIONS
from crm_core.schemas import (
    AccountCreate,
    ContactCreate,
    LeadConversionRequest,
    LeadCreate,
    OpportunityCreate,
    ProductCreate,
    RoleCreate,
    TenantCreate,
    UserCreate,
)
from crm_core.services.account_hierarchy import AccountHierarchyService
from crm_core.services.directory import DirectoryService
from crm_core.services.pipeline import PipelineService
from crm_core.services.pricing import PricingService

logger = logging.getLogger(__name__)

LEAD_SOURCES = ["LinkedIn Outreach", "Webinar", "Direct Email"]


def seed_sample_data(db: Session) -> Dict[str, Any]:
    """Load the sample tenant, team, accounts, pipeline and catalog."""
    directory = DirectoryService(db)
    accounts = AccountHierarchyService(db)
    pipeline = PipelineService(db)
    pricing = PricingService(db)

    # 1. Tenant
    tenant = directory.create_tenant(
        TenantCreate(company_name="Global Tech Solutions", subscription_plan="Enterprise")
    )
    tenant_id = tenant.tenant_id

    # 2. Roles
    vp_role = directory.create_role(
        RoleCreate(role_name="Sales_VP", permissions=DEFAULT_ROLE_PERMISSIONS["Sales_VP"])
    )
    ae_role = directory.create_role(
        RoleCreate(
            role_name="Account_Executive",
            permissions=DEFAULT_ROLE_PERMISSIONS["Account_Executive"],
        )
    )

    # 3. Users
    sarah = directory.create_user(
        UserCreate(
            tenant_id=tenant_id,
            role_id=vp_role.role_id,
            first_name="Sarah",
            last_name="Connor",
            email="s.connor@globaltech.com",
        )
    )
    john = directory.create_user(
        UserCreate(
            tenant_id=tenant_id,
            role_id=ae_role.role_id,
            first_name="John",
            last_name="Doe",
            email="j.doe@globaltech.com",
            reports_to=sarah.user_id,
        )
    )

    # 4. Accounts
    acme_hq = accounts.create_account(
        AccountCreate(
            tenant_id=tenant_id,
            account_name="Acme Corp HQ",
            industry="Manufacturing",
            annual_revenue=Decimal("500000000.00"),
            owner_id=john.user_id,
        )
    )
    acme_east = accounts.create_account(
        AccountCreate(
            tenant_id=tenant_id,
            account_name="Acme East Division",
            parent_account_id=acme_hq.account_id,
            industry="Logistics",
            annual_revenue=Decimal("45000000.00"),
            owner_id=john.user_id,
        )
    )

    # 5. Contact
    alice = accounts.create_contact(
        ContactCreate(
            account_id=acme_east.account_id,
            first_name="Alice",
            last_name="Smith",
            email="alice@acme-east.com",
            job_title="CTO",
            is_primary_contact=True,
        )
    )

    # 6. Product
    product = pricing.create_product(
        ProductCreate(
            sku="SaaS-ENT-001",
            product_name="Cloud CRM Suite",
            unit_price=Decimal("1200.00"),
            is_subscription=True,
        )
    )

    # 7. Lead sources and leads
    sources = {name: pipeline.create_lead_source(name) for name in LEAD_SOURCES}

    robert = pipeline.create_lead(
        LeadCreate(
            tenant_id=tenant_id,
            source_id=sources["LinkedIn Outreach"].source_id,
            first_name="Robert",
            last_name="Vance",
            company="Vance Refrigeration",
            lead_score=85,
            assigned_to=john.user_id,
        )
    )
    pipeline.qualify_lead(robert.lead_id)

    michael = pipeline.create_lead(
        LeadCreate(
            tenant_id=tenant_id,
            source_id=sources["Webinar"].source_id,
            first_name="Michael",
            last_name="Scott",
            company="Dunder Mifflin",
            lead_score=95,
            assigned_to=john.user_id,
        )
    )
    pipeline.qualify_lead(michael.lead_id)
    michael_contact = pipeline.convert_lead(michael.lead_id, LeadConversionRequest())

    # 8. Opportunity
    opportunity = pipeline.create_opportunity(
        OpportunityCreate(
            account_id=acme_east.account_id,
            contact_id=alice.contact_id,
            owner_id=john.user_id,
            opportunity_name="Q1 Acme Expansion",
            stage=OpportunityStage.PROPOSAL,
            amount=Decimal("150000.00"),
            probability=60,
            expected_close_date=date(2024, 6, 30),
        )
    )

    logger.info(f"Seeded sample data for tenant {tenant.company_name} ({tenant_id})")
    return {
        "tenant": tenant,
        "roles": {"Sales_VP": vp_role, "Account_Executive": ae_role},
        "users": {"sarah": sarah, "john": john},
        "accounts": {"acme_hq": acme_hq, "acme_east": acme_east},
        "contacts": {"alice": alice, "michael": michael_contact},
        "product": product,
        "lead_sources": sources,
        "leads": {"robert": robert, "michael": michael},
        "opportunity": opportunity,
    }


def main():
    logging.basicConfig(level=settings.LOG_LEVEL)
    init_db()
    db = SessionLocal()
    try:
        seed_sample_data(db)
    finally:
        db.close()


if __name__ == "__main__":
    main()
