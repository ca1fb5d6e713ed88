"""Pydantic schemas for input validation and view rows."""

from crm_core.schemas.crm import (
    AccountCreate,
    ActivityCreate,
    ActivityUpdate,
    ContactCreate,
    LeadConversionRequest,
    LeadCreate,
    LineItemCreate,
    LineItemUpdate,
    OpportunityCreate,
    ProductCreate,
    RoleCreate,
    TenantCreate,
    UserCreate,
)
from crm_core.schemas.reports import (
    LeadConversionRow,
    LineItemRow,
    RevenueForecastRow,
    SalesFunnelRow,
)

__all__ = [
    "AccountCreate",
    "ActivityCreate",
    "ActivityUpdate",
    "ContactCreate",
    "LeadConversionRequest",
    "LeadCreate",
    "LineItemCreate",
    "LineItemUpdate",
    "OpportunityCreate",
    "ProductCreate",
    "RoleCreate",
    "TenantCreate",
    "UserCreate",
    "LeadConversionRow",
    "LineItemRow",
    "RevenueForecastRow",
    "SalesFunnelRow",
]
