# backend/crm_core/models.py
"""
SQLAlchemy ORM models for the multi-tenant CRM schema.

Relationships are kept minimal and mostly one-way (child → parent) so the
database, not the ORM, decides what happens on delete:
1. contacts cascade when their account is deleted (ON DELETE CASCADE)
2. opportunities, child accounts and converted leads block the delete
3. activities reference their target through (related_to_type, related_to_id)
   with no foreign key; integrity is checked by ActivityService
"""

from sqlalchemy import (
    Column, String, Boolean, Integer, Numeric, Text, Date, DateTime, JSON, Index,
    ForeignKey, CheckConstraint, Uuid, cast, func, select, literal
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship, column_property
import uuid

from crm_core.database import Base
from crm_core.enums import (
    ActivityStatus,
    ActivityType,
    LeadStatus,
    RelatedToType,
    sql_in_list,
)

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


def line_total_sql(quantity, unit_price, discount_percentage):
    """round(quantity * unit_price * (1 - discount_percentage/100), 2) in SQL."""
    return func.round(
        cast(quantity * unit_price * (1 - discount_percentage / literal(100.0)), Numeric),
        2,
        type_=Numeric(18, 2),
    )


# ============================================================================
# ACCESS CONTROL & TENANCY
# ============================================================================

class Tenant(Base):
    """A customer organization; the isolation boundary for tenant-scoped rows."""
    __tablename__ = "tenants"

    tenant_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_name = Column(String(255), nullable=False)
    subscription_plan = Column(String(50), default="Standard")
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Tenant(id={self.tenant_id}, name='{self.company_name}', plan='{self.subscription_plan}')>"


class Role(Base):
    """Named permission bundle. permissions is an opaque JSON string."""
    __tablename__ = "roles"

    role_id = Column(Integer, primary_key=True, autoincrement=True)
    role_name = Column(String(50), unique=True, nullable=False)  # e.g. 'Sales_VP', 'Account_Executive'
    permissions = Column(Text)

    def __repr__(self):
        return f"<Role(id={self.role_id}, name='{self.role_name}')>"


class User(Base):
    """Employee/operator. reports_to forms the reporting forest."""
    __tablename__ = "users"

    user_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid(as_uuid=True), ForeignKey("tenants.tenant_id"))
    role_id = Column(Integer, ForeignKey("roles.role_id"))
    first_name = Column(String(100))
    last_name = Column(String(100))
    email = Column(String(255), unique=True, nullable=False)
    reports_to = Column(Uuid(as_uuid=True), ForeignKey("users.user_id"))
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime(timezone=True))

    role = relationship("Role", foreign_keys=[role_id])

    __table_args__ = (
        CheckConstraint(
            "reports_to IS NULL OR reports_to <> user_id",
            name="chk_user_not_own_manager"
        ),
        Index("idx_users_reports_to", "reports_to"),
    )

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self):
        return f"<User(id={self.user_id}, email='{self.email}')>"


# ============================================================================
# CORE CRM ENTITIES
# ============================================================================

class Account(Base):
    """Company record. parent_account_id forms the account forest."""
    __tablename__ = "accounts"

    account_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid(as_uuid=True), ForeignKey("tenants.tenant_id"))
    parent_account_id = Column(Uuid(as_uuid=True), ForeignKey("accounts.account_id"))
    account_name = Column(String(255), nullable=False)
    industry = Column(String(100))
    annual_revenue = Column(Numeric(18, 2))
    website_url = Column(String(255))
    billing_address = Column(JSONType)
    owner_id = Column(Uuid(as_uuid=True), ForeignKey("users.user_id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Loaded contacts are deleted by the ORM, the rest by ON DELETE CASCADE
    contacts = relationship(
        "Contact",
        foreign_keys="Contact.account_id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint(
            "parent_account_id IS NULL OR parent_account_id <> account_id",
            name="chk_account_not_own_parent"
        ),
        Index("idx_tenant_accounts", "tenant_id"),
        Index("idx_accounts_parent", "parent_account_id"),
    )

    def __repr__(self):
        return f"<Account(id={self.account_id}, name='{self.account_name}')>"


class Contact(Base):
    """Person at an account."""
    __tablename__ = "contacts"

    contact_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id = Column(Uuid(as_uuid=True), ForeignKey("accounts.account_id", ondelete="CASCADE"))
    first_name = Column(String(100))
    last_name = Column(String(100))
    email = Column(String(255))
    phone = Column(String(50))
    job_title = Column(String(100))
    is_primary_contact = Column(Boolean, default=False, nullable=False)
    opt_in_marketing = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("idx_contact_email", "email"),
    )

    def __repr__(self):
        return f"<Contact(id={self.contact_id}, email='{self.email}')>"


# ============================================================================
# SALES PIPELINE
# ============================================================================

class LeadSource(Base):
    """Acquisition channel, e.g. 'Web', 'Referral', 'Trade Show'."""
    __tablename__ = "lead_sources"

    source_id = Column(Integer, primary_key=True, autoincrement=True)
    source_name = Column(String(100))


class Lead(Base):
    """
    Unqualified prospect.

    status moves New → Qualified → (Converted | Lost); converted_contact_id
    is set exactly when status is Converted.
    """
    __tablename__ = "leads"

    lead_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid(as_uuid=True), ForeignKey("tenants.tenant_id"))
    source_id = Column(Integer, ForeignKey("lead_sources.source_id"))
    first_name = Column(String(100))
    last_name = Column(String(100))
    company = Column(String(255))
    status = Column(String(50), nullable=False, default=LeadStatus.NEW.value)
    assigned_to = Column(Uuid(as_uuid=True), ForeignKey("users.user_id"))
    lead_score = Column(Integer, default=0)
    converted_at = Column(DateTime(timezone=True))
    converted_contact_id = Column(Uuid(as_uuid=True), ForeignKey("contacts.contact_id"))

    source = relationship("LeadSource", foreign_keys=[source_id])
    converted_contact = relationship("Contact", foreign_keys=[converted_contact_id])

    __table_args__ = (
        CheckConstraint(f"status IN ({sql_in_list(LeadStatus)})", name="chk_lead_status"),
        CheckConstraint(
            "(status = 'Converted' AND converted_contact_id IS NOT NULL) OR "
            "(status <> 'Converted' AND converted_contact_id IS NULL)",
            name="chk_lead_conversion_consistency"
        ),
        Index("idx_lead_status", "status"),
        Index("idx_leads_tenant", "tenant_id"),
    )

    def __repr__(self):
        return f"<Lead(id={self.lead_id}, company='{self.company}', status='{self.status}')>"


class Opportunity(Base):
    """Active sales deal. probability is independent of stage."""
    __tablename__ = "opportunities"

    opportunity_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id = Column(Uuid(as_uuid=True), ForeignKey("accounts.account_id"))
    contact_id = Column(Uuid(as_uuid=True), ForeignKey("contacts.contact_id"))  # Decision maker
    owner_id = Column(Uuid(as_uuid=True), ForeignKey("users.user_id"))
    opportunity_name = Column(String(255))
    stage = Column(String(50))  # 'Discovery', 'Proposal', 'Negotiation', 'Closed Won', 'Closed Lost'
    amount = Column(Numeric(18, 2))
    probability = Column(Integer)
    forecast_category = Column(String(50))
    expected_close_date = Column(Date)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    account = relationship("Account", foreign_keys=[account_id])
    items = relationship(
        "OpportunityItem",
        foreign_keys="OpportunityItem.opportunity_id",
        viewonly=True,
    )

    __table_args__ = (
        CheckConstraint("probability BETWEEN 0 AND 100", name="chk_opportunity_probability"),
        Index("idx_opp_stage_amount", "stage", "amount"),
        Index("idx_opportunities_account", "account_id"),
    )

    def __repr__(self):
        return f"<Opportunity(id={self.opportunity_id}, name='{self.opportunity_name}', stage='{self.stage}')>"


# ============================================================================
# PRODUCTS & REVENUE
# ============================================================================

class Product(Base):
    """Sellable SKU."""
    __tablename__ = "products"

    product_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sku = Column(String(100), unique=True)
    product_name = Column(String(255))
    unit_price = Column(Numeric(18, 2))
    is_subscription = Column(Boolean, default=False, nullable=False)

    def __repr__(self):
        return f"<Product(id={self.product_id}, sku='{self.sku}')>"


class OpportunityItem(Base):
    """
    Line item binding a product to an opportunity.

    total_price is not stored: it is evaluated in SQL against the product's
    current unit_price every time the row is loaded, so a price, quantity or
    discount change can never leave a stale total behind.
    """
    __tablename__ = "opportunity_items"

    item_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    opportunity_id = Column(Uuid(as_uuid=True), ForeignKey("opportunities.opportunity_id"), nullable=False)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.product_id"), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    discount_percentage = Column(Numeric(5, 2), default=0, nullable=False)

    total_price = column_property(
        select(line_total_sql(quantity, Product.unit_price, discount_percentage))
        .where(Product.product_id == product_id)
        .correlate_except(Product)
        .scalar_subquery()
    )

    product = relationship("Product", foreign_keys=[product_id])

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_item_quantity"),
        CheckConstraint(
            "discount_percentage >= 0 AND discount_percentage <= 100",
            name="chk_item_discount"
        ),
        Index("idx_items_opportunity", "opportunity_id"),
        Index("idx_items_product", "product_id"),
    )


# ============================================================================
# ACTIVITY TRACKING
# ============================================================================

class Activity(Base):
    """
    Logged interaction (call/email/meeting/task).

    (related_to_type, related_to_id) points at a Lead, Account or Opportunity
    row; related_to_id has no foreign key.
    """
    __tablename__ = "activities"

    activity_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid(as_uuid=True), ForeignKey("users.user_id"))
    activity_type = Column(String(50))
    subject = Column(String(255))
    description = Column(Text)
    due_date = Column(DateTime)
    status = Column(String(20), default=ActivityStatus.PENDING.value)
    related_to_type = Column(String(50), nullable=False)
    related_to_id = Column(Uuid(as_uuid=True), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            f"related_to_type IN ({sql_in_list(RelatedToType)})",
            name="chk_activity_related_type"
        ),
        CheckConstraint(
            f"activity_type IS NULL OR activity_type IN ({sql_in_list(ActivityType)})",
            name="chk_activity_type"
        ),
        CheckConstraint(
            f"status IS NULL OR status IN ({sql_in_list(ActivityStatus)})",
            name="chk_activity_status"
        ),
        Index("idx_activities_related", "related_to_type", "related_to_id"),
        Index("idx_activities_owner", "owner_id"),
    )

    def __repr__(self):
        return (
            f"<Activity(id={self.activity_id}, type='{self.activity_type}', "
            f"related_to={self.related_to_type}:{self.related_to_id})>"
        )


# Polymorphic target lookup for Activity.related_to_type
RELATED_MODELS = {
    RelatedToType.LEAD: Lead,
    RelatedToType.ACCOUNT: Account,
    RelatedToType.OPPORTUNITY: Opportunity,
}
