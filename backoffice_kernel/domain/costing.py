"""
Recipe costing -- pure functions over product and item read models.

Responsibility:
    Turns a product's ingredient lines plus the unit prices of the
    referenced items into a CostBreakdown.

Architecture position:
    Kernel > Domain -- functional core, zero I/O.  Callers load the DTOs.

Invariants enforced:
    - LIVE basis uses the item's current unit price; SNAPSHOT uses the
      price captured on the ingredient line when the recipe was saved.
    - A sale price below total cost yields ``is_loss``; nothing raises.
"""

from __future__ import annotations

from typing import Mapping
from uuid import UUID

from backoffice_kernel.domain.dtos import (
    CostBasis,
    CostBreakdown,
    CostLine,
    InventoryItemInfo,
    ProductInfo,
)


def build_cost_breakdown(
    product: ProductInfo,
    items: Mapping[UUID, InventoryItemInfo],
    basis: CostBasis = CostBasis.LIVE,
) -> CostBreakdown:
    """Price every ingredient line of ``product``.

    Args:
        product: Product with its ingredient lines.
        items: Item read models keyed by id; must cover every ingredient.
        basis: Which unit price to use.

    Raises:
        KeyError: an ingredient item is missing from ``items``.
    """
    lines = []
    for ingredient in product.ingredients:
        item = items[ingredient.item_id]
        unit_price = (
            ingredient.unit_price_snapshot if basis == CostBasis.SNAPSHOT else item.unit_price
        )
        lines.append(
            CostLine(
                item_id=item.id,
                item_name=item.name,
                quantity=ingredient.quantity,
                unit_price=unit_price,
            )
        )
    return CostBreakdown(
        product_id=product.id,
        basis=basis,
        sale_price=product.sale_price,
        lines=tuple(lines),
    )
