"""ORM models for the backoffice kernel."""

from backoffice_kernel.models.business import Business, User
from backoffice_kernel.models.inventory import InventoryItem, Movement
from backoffice_kernel.models.modifier import (
    Modifier,
    ModifierGroup,
    ModifierItem,
    ProductModifier,
)
from backoffice_kernel.models.product import Ingredient, Product
from backoffice_kernel.models.relationship import BusinessRelationship
from backoffice_kernel.models.supplier import Supplier
from backoffice_kernel.models.transfer import ItemEquivalence, Transfer, TransferLine

__all__ = [
    "Business",
    "User",
    "Supplier",
    "InventoryItem",
    "Movement",
    "BusinessRelationship",
    "Transfer",
    "TransferLine",
    "ItemEquivalence",
    "Product",
    "Ingredient",
    "ModifierGroup",
    "Modifier",
    "ModifierItem",
    "ProductModifier",
]
