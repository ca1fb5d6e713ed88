# backend/crm_core/views.py
"""
Analytical views for charts.

Each view is defined once as a SQLAlchemy select. The select is compiled into
CREATE VIEW DDL that runs after the tables are created (and DROP VIEW before
they are dropped); a lightweight table() over the view name gives typed
columns for reading it back. Nothing is materialized: every read recomputes.
"""

import logging

from sqlalchemy import (
    Float, Integer, Numeric, String, Uuid, and_, case, cast, column, event,
    extract, func, inspect, literal, or_, select, table
)
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.schema import DDLElement

from crm_core.database import Base
from crm_core.enums import LeadStatus
from crm_core.models import Lead, LeadSource, Opportunity, OpportunityItem, Product, line_total_sql

logger = logging.getLogger(__name__)


# ============================================================================
# DDL
# ============================================================================

class CreateView(DDLElement):
    def __init__(self, name, selectable):
        self.name = name
        self.selectable = selectable


class DropView(DDLElement):
    def __init__(self, name):
        self.name = name


@compiles(CreateView)
def _compile_create_view(element, compiler, **kw):
    body = compiler.sql_compiler.process(element.selectable, literal_binds=True)
    return f"CREATE VIEW {element.name} AS {body}"


@compiles(DropView)
def _compile_drop_view(element, compiler, **kw):
    return f"DROP VIEW IF EXISTS {element.name}"


def _view_missing(name):
    def check(ddl, target, bind, **kw):
        return name not in inspect(bind).get_view_names()
    return check


# ============================================================================
# VIEW DEFINITIONS
# ============================================================================

# 7a. Sales funnel: one row per stage
sales_funnel_query = (
    select(
        Opportunity.stage.label("stage"),
        func.count().label("deal_count"),
        func.sum(Opportunity.amount).label("total_value"),
        func.round(cast(func.avg(cast(Opportunity.probability, Float)), Numeric), 2).label("avg_probability"),
    )
    .group_by(Opportunity.stage)
)

# 7b. Weighted revenue forecast: open pipeline per (year, month) of close date
_close_year = cast(extract("year", Opportunity.expected_close_date), Integer)
_close_month = cast(extract("month", Opportunity.expected_close_date), Integer)

revenue_forecast_query = (
    select(
        _close_year.label("forecast_year"),
        _close_month.label("forecast_month"),
        func.sum(Opportunity.amount * Opportunity.probability / literal(100.0)).label("weighted_forecast"),
        func.sum(Opportunity.amount).label("raw_pipeline_value"),
    )
    .where(
        and_(
            Opportunity.expected_close_date.isnot(None),
            or_(Opportunity.stage.is_(None), Opportunity.stage.notlike("Closed%")),
        )
    )
    .group_by(_close_year, _close_month)
)

# 7c. Lead conversion by source; sources without leads get a NULL rate
_total_leads = func.count(Lead.lead_id)
_converted_count = func.count(case((Lead.status == LeadStatus.CONVERTED.value, 1)))

lead_conversion_by_source_query = (
    select(
        LeadSource.source_id.label("source_id"),
        LeadSource.source_name.label("source_name"),
        _total_leads.label("total_leads"),
        _converted_count.label("converted_count"),
        func.round(
            cast(cast(_converted_count, Float) * 100 / func.nullif(_total_leads, 0), Numeric),
            2,
        ).label("conversion_rate"),
    )
    .select_from(LeadSource)
    .outerjoin(Lead, Lead.source_id == LeadSource.source_id)
    .group_by(LeadSource.source_id, LeadSource.source_name)
)

# Line items with their computed total, for consumers that only speak SQL
opportunity_line_items_query = (
    select(
        OpportunityItem.item_id.label("item_id"),
        OpportunityItem.opportunity_id.label("opportunity_id"),
        OpportunityItem.product_id.label("product_id"),
        Product.sku.label("sku"),
        OpportunityItem.quantity.label("quantity"),
        Product.unit_price.label("unit_price"),
        OpportunityItem.discount_percentage.label("discount_percentage"),
        line_total_sql(
            OpportunityItem.quantity, Product.unit_price, OpportunityItem.discount_percentage
        ).label("total_price"),
    )
    .select_from(OpportunityItem)
    .join(Product, Product.product_id == OpportunityItem.product_id)
)

VIEWS = {
    "view_sales_funnel": sales_funnel_query,
    "view_revenue_forecast": revenue_forecast_query,
    "view_lead_conversion_by_source": lead_conversion_by_source_query,
    "view_opportunity_line_items": opportunity_line_items_query,
}


# ============================================================================
# READ SURFACE
# ============================================================================

sales_funnel_view = table(
    "view_sales_funnel",
    column("stage", String),
    column("deal_count", Integer),
    column("total_value", Numeric(18, 2)),
    column("avg_probability", Float),
)

revenue_forecast_view = table(
    "view_revenue_forecast",
    column("forecast_year", Integer),
    column("forecast_month", Integer),
    column("weighted_forecast", Numeric(18, 2)),
    column("raw_pipeline_value", Numeric(18, 2)),
)

lead_conversion_by_source_view = table(
    "view_lead_conversion_by_source",
    column("source_id", Integer),
    column("source_name", String),
    column("total_leads", Integer),
    column("converted_count", Integer),
    column("conversion_rate", Float),
)

opportunity_line_items_view = table(
    "view_opportunity_line_items",
    column("item_id", Uuid),
    column("opportunity_id", Uuid),
    column("product_id", Uuid),
    column("sku", String),
    column("quantity", Integer),
    column("unit_price", Numeric(18, 2)),
    column("discount_percentage", Numeric(5, 2)),
    column("total_price", Numeric(18, 2)),
)


def register_views(metadata):
    """Attach CREATE VIEW / DROP VIEW DDL for every view to the metadata."""
    for name, query in VIEWS.items():
        event.listen(
            metadata,
            "after_create",
            CreateView(name, query).execute_if(callable_=_view_missing(name)),
        )
        event.listen(metadata, "before_drop", DropView(name))
    logger.debug(f"Registered views: {', '.join(VIEWS)}")


register_views(Base.metadata)
