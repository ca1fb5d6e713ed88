# backend/crm_core/schemas/crm.py
"""
Pydantic schemas for the write path.

Field-level rules mirror the table constraints so bad input is rejected
before a statement is issued; cross-row invariants live in the services.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, Dict, Any
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from crm_core.enums import ActivityStatus, ActivityType, OpportunityStage, RelatedToType


# ========================================
# TENANCY & IDENTITY
# ========================================

class TenantCreate(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=255)
    subscription_plan: str = Field(default="Standard", max_length=50)
    is_active: bool = True


class RoleCreate(BaseModel):
    """Role with an opaque permission document (stored as JSON text)."""
    role_name: str = Field(..., min_length=1, max_length=50)
    permissions: Optional[Dict[str, Any]] = None


class UserCreate(BaseModel):
    tenant_id: UUID
    email: EmailStr
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    role_id: Optional[int] = None
    reports_to: Optional[UUID] = Field(None, description="Manager user id")
    is_active: bool = True


# ========================================
# ACCOUNTS & CONTACTS
# ========================================

class AccountCreate(BaseModel):
    tenant_id: UUID
    account_name: str = Field(..., min_length=1, max_length=255)
    parent_account_id: Optional[UUID] = None
    industry: Optional[str] = Field(None, max_length=100)
    annual_revenue: Optional[Decimal] = Field(None, ge=0, max_digits=18, decimal_places=2)
    website_url: Optional[str] = Field(None, max_length=255)
    billing_address: Optional[Dict[str, Any]] = None
    owner_id: Optional[UUID] = None


class ContactCreate(BaseModel):
    account_id: Optional[UUID] = None
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    job_title: Optional[str] = Field(None, max_length=100)
    is_primary_contact: bool = False
    opt_in_marketing: bool = True


# ========================================
# PIPELINE
# ========================================

class LeadCreate(BaseModel):
    """New leads always start in status New."""
    tenant_id: UUID
    source_id: Optional[int] = None
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    company: Optional[str] = Field(None, max_length=255)
    assigned_to: Optional[UUID] = None
    lead_score: int = Field(default=0, ge=0)


class LeadConversionRequest(BaseModel):
    """Details for the Contact produced by converting a lead."""
    account_id: Optional[UUID] = Field(None, description="Account the new contact belongs to")
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    job_title: Optional[str] = Field(None, max_length=100)
    is_primary_contact: bool = False
    converted_at: Optional[datetime] = None


class OpportunityCreate(BaseModel):
    account_id: UUID
    opportunity_name: str = Field(..., min_length=1, max_length=255)
    contact_id: Optional[UUID] = None
    owner_id: Optional[UUID] = None
    stage: OpportunityStage = OpportunityStage.DISCOVERY
    amount: Optional[Decimal] = Field(None, ge=0, max_digits=18, decimal_places=2)
    probability: Optional[int] = Field(None, ge=0, le=100)
    forecast_category: Optional[str] = Field(None, max_length=50)
    expected_close_date: Optional[date] = None


# ========================================
# PRODUCTS & LINE ITEMS
# ========================================

class ProductCreate(BaseModel):
    sku: str = Field(..., min_length=1, max_length=100)
    product_name: Optional[str] = Field(None, max_length=255)
    unit_price: Decimal = Field(..., ge=0, max_digits=18, decimal_places=2)
    is_subscription: bool = False


class LineItemCreate(BaseModel):
    product_id: UUID
    quantity: int = Field(default=1, ge=1)
    discount_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100, decimal_places=2)


class LineItemUpdate(BaseModel):
    quantity: Optional[int] = Field(None, ge=1)
    discount_percentage: Optional[Decimal] = Field(None, ge=0, le=100, decimal_places=2)


# ========================================
# ACTIVITIES
# ========================================

class ActivityCreate(BaseModel):
    related_to_type: RelatedToType
    related_to_id: UUID
    activity_type: ActivityType
    subject: str = Field(..., min_length=1, max_length=255)
    owner_id: Optional[UUID] = None
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    status: ActivityStatus = ActivityStatus.PENDING


class ActivityUpdate(BaseModel):
    subject: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    status: Optional[ActivityStatus] = None

    @field_validator("subject")
    @classmethod
    def strip_subject(cls, v):
        return v.strip() if v else v
