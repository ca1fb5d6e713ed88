# backend/crm_core/schemas/reports.py
"""Row shapes returned when reading the analytical views."""

from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import date
from decimal import Decimal
from uuid import UUID


class SalesFunnelRow(BaseModel):
    stage: Optional[str] = None
    deal_count: int
    total_value: Optional[Decimal] = None
    avg_probability: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)


class RevenueForecastRow(BaseModel):
    forecast_year: int
    forecast_month: int
    weighted_forecast: Optional[Decimal] = None
    raw_pipeline_value: Optional[Decimal] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def forecast_period(self) -> date:
        """First day of the forecast month."""
        return date(self.forecast_year, self.forecast_month, 1)


class LeadConversionRow(BaseModel):
    source_id: int
    source_name: Optional[str] = None
    total_leads: int
    converted_count: int
    conversion_rate: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)


class LineItemRow(BaseModel):
    item_id: UUID
    opportunity_id: UUID
    product_id: UUID
    sku: Optional[str] = None
    quantity: int
    unit_price: Optional[Decimal] = None
    discount_percentage: Decimal
    total_price: Optional[Decimal] = None

    model_config = ConfigDict(from_attributes=True)
