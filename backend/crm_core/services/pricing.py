# backend/crm_core/services/pricing.py
"""
Line-item pricing.

    total_price = round(quantity * unit_price * (1 - discount_percentage / 100), 2)

total_price is computed on read (OpportunityItem.total_price is a SQL
expression over the product's current unit_price), so changing quantity,
discount or the product price needs no follow-up recompute step.
compute_line_total is the same formula in Python.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import List, Union
from uuid import UUID
import logging

from sqlalchemy import func

from crm_core.exceptions import NotFoundError
from crm_core.models import Opportunity, OpportunityItem, Product, line_total_sql
from crm_core.schemas import LineItemCreate, LineItemUpdate, ProductCreate
from crm_core.services.base import BaseService, transactional

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

Number = Union[int, float, str, Decimal]


def compute_line_total(quantity: int, unit_price: Number, discount_percentage: Number = 0) -> Decimal:
    """Python rendition of the line total formula, rounded half-up to cents."""
    unit_price = Decimal(str(unit_price))
    discount = Decimal(str(discount_percentage))
    gross = Decimal(quantity) * unit_price * (Decimal(1) - discount / Decimal(100))
    return gross.quantize(CENT, rounding=ROUND_HALF_UP)


class PricingService(BaseService):

    # --- Products ---

    @transactional("create_product")
    def create_product(self, data: ProductCreate) -> Product:
        product = Product(**data.model_dump())
        self.db.add(product)
        self.db.flush()
        logger.info(f"Created product {product.sku} at {product.unit_price}")
        return product

    def get_product(self, product_id: UUID) -> Product:
        product = self.db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    @transactional("set_unit_price")
    def set_unit_price(self, product_id: UUID, unit_price: Number) -> Product:
        """Reprice a product; every line item referencing it follows on next read."""
        product = self.get_product(product_id)
        old_price = product.unit_price
        product.unit_price = Decimal(str(unit_price))
        self.db.flush()
        # Loaded items carry the old total until reloaded
        for item in self.db.query(OpportunityItem).filter(OpportunityItem.product_id == product_id):
            self.db.expire(item, ["total_price"])
        logger.info(f"Product {product.sku} repriced {old_price} -> {product.unit_price}")
        return product

    # --- Line items ---

    @transactional("add_line_item")
    def add_line_item(self, opportunity_id: UUID, data: LineItemCreate) -> OpportunityItem:
        if self.db.get(Opportunity, opportunity_id) is None:
            raise NotFoundError("Opportunity", opportunity_id)
        self.get_product(data.product_id)

        item = OpportunityItem(opportunity_id=opportunity_id, **data.model_dump())
        self.db.add(item)
        self.db.flush()
        self.db.refresh(item)
        logger.info(
            f"Added {item.quantity} x product {item.product_id} to opportunity {opportunity_id} "
            f"(total {item.total_price})"
        )
        return item

    @transactional("update_line_item")
    def update_line_item(self, item_id: UUID, data: LineItemUpdate) -> OpportunityItem:
        item = self.get_line_item(item_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(item, field, value)
        self.db.flush()
        self.db.refresh(item)
        return item

    @transactional("remove_line_item")
    def remove_line_item(self, item_id: UUID) -> None:
        item = self.get_line_item(item_id)
        self.db.delete(item)
        self.db.flush()

    def get_line_item(self, item_id: UUID) -> OpportunityItem:
        item = self.db.get(OpportunityItem, item_id)
        if item is None:
            raise NotFoundError("OpportunityItem", item_id)
        return item

    def get_line_items(self, opportunity_id: UUID) -> List[OpportunityItem]:
        return (
            self.db.query(OpportunityItem)
            .filter(OpportunityItem.opportunity_id == opportunity_id)
            .order_by(OpportunityItem.item_id)
            .all()
        )

    def get_opportunity_total(self, opportunity_id: UUID) -> Decimal:
        """Sum of line totals at current product prices."""
        total = (
            self.db.query(
                func.sum(
                    line_total_sql(
                        OpportunityItem.quantity,
                        Product.unit_price,
                        OpportunityItem.discount_percentage,
                    )
                )
            )
            .join(Product, Product.product_id == OpportunityItem.product_id)
            .filter(OpportunityItem.opportunity_id == opportunity_id)
            .scalar()
        )
        return Decimal(str(total)).quantize(CENT) if total is not None else Decimal("0.00")
