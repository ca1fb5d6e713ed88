# backend/crm_core/services/reporting.py
"""
Reads the analytical views.

Views are plain (non-materialized) SQL views, so every call reflects the
current rows of the underlying tables.
"""

from typing import List, Optional
from uuid import UUID
import logging

from crm_core.schemas import LeadConversionRow, LineItemRow, RevenueForecastRow, SalesFunnelRow
from crm_core.services.base import BaseService
from crm_core.views import (
    lead_conversion_by_source_view,
    opportunity_line_items_view,
    revenue_forecast_view,
    sales_funnel_view,
)

logger = logging.getLogger(__name__)


class ReportingService(BaseService):

    def _rows(self, statement, schema):
        result = self.db.execute(statement)
        return [schema.model_validate(dict(row._mapping)) for row in result]

    def get_sales_funnel(self) -> List[SalesFunnelRow]:
        """One row per opportunity stage."""
        v = sales_funnel_view.c
        rows = self._rows(
            sales_funnel_view.select().order_by(v.stage),
            SalesFunnelRow,
        )
        logger.debug(f"Sales funnel: {len(rows)} stages")
        return rows

    def get_revenue_forecast(self, year: Optional[int] = None) -> List[RevenueForecastRow]:
        """Weighted open pipeline per close month, oldest month first."""
        v = revenue_forecast_view.c
        statement = revenue_forecast_view.select()
        if year is not None:
            statement = statement.where(v.forecast_year == year)
        return self._rows(
            statement.order_by(v.forecast_year, v.forecast_month),
            RevenueForecastRow,
        )

    def get_lead_conversion_by_source(self) -> List[LeadConversionRow]:
        v = lead_conversion_by_source_view.c
        return self._rows(
            lead_conversion_by_source_view.select().order_by(v.source_id),
            LeadConversionRow,
        )

    def get_conversion_for_source(self, source_name: str) -> Optional[LeadConversionRow]:
        v = lead_conversion_by_source_view.c
        rows = self._rows(
            lead_conversion_by_source_view.select().where(v.source_name == source_name),
            LeadConversionRow,
        )
        return rows[0] if rows else None

    def get_line_items_view(self, opportunity_id: Optional[UUID] = None) -> List[LineItemRow]:
        v = opportunity_line_items_view.c
        statement = opportunity_line_items_view.select()
        if opportunity_id is not None:
            statement = statement.where(v.opportunity_id == opportunity_id)
        return self._rows(statement.order_by(v.item_id), LineItemRow)
