"""Services for the back-office kernel (write side)."""

from backoffice_kernel.services.auth_service import AuthService, AuthTokens
from backoffice_kernel.services.authority import PermissionAuthority
from backoffice_kernel.services.command_executor import CommandExecutor
from backoffice_kernel.services.inventory_ledger import InventoryLedgerService, RevertResult
from backoffice_kernel.services.modifier_service import ModifierService
from backoffice_kernel.services.product_service import ProductService
from backoffice_kernel.services.relationship_service import RelationshipService
from backoffice_kernel.services.supplier_service import SupplierService
from backoffice_kernel.services.transfer_service import TransferService

__all__ = [
    "AuthService",
    "AuthTokens",
    "CommandExecutor",
    "InventoryLedgerService",
    "ModifierService",
    "PermissionAuthority",
    "ProductService",
    "RelationshipService",
    "RevertResult",
    "SupplierService",
    "TransferService",
]
