"""Selectors for the back-office kernel (read side)."""

from backoffice_kernel.selectors.catalog_selector import CatalogSelector
from backoffice_kernel.selectors.inventory_selector import InventorySelector
from backoffice_kernel.selectors.movement_selector import MovementSelector
from backoffice_kernel.selectors.relationship_selector import RelationshipSelector
from backoffice_kernel.selectors.transfer_selector import TransferSelector

__all__ = [
    "CatalogSelector",
    "InventorySelector",
    "MovementSelector",
    "RelationshipSelector",
    "TransferSelector",
]
