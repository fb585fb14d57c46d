"""
Service layer for Supplier operations.

Manages the vendors a business buys inventory from.  Returns SupplierInfo
DTOs instead of ORM entities.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from backoffice_kernel.domain.dtos import SupplierInfo
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.exceptions import (
    InvalidFieldError,
    SupplierNotFoundError,
    SupplierReferencedError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.inventory import InventoryItem
from backoffice_kernel.models.supplier import Supplier
from backoffice_kernel.services.base import BaseService

logger = get_logger("services.supplier")

_MIN_NAME_LENGTH = 2

_CONTACT_FIELDS = (
    "supplier_type",
    "tax_id",
    "legal_representative",
    "phone",
    "email",
    "address",
)


class SupplierService(BaseService[Supplier]):
    """
    CRUD for suppliers of the caller's business.

    Contract:
        Deactivation is the normal removal path.  Permanent deletion is
        refused while any inventory item still points at the supplier.
    """

    def _get_by_id(self, ctx: SessionContext, supplier_id: UUID) -> Supplier:
        supplier = self.session.get(Supplier, supplier_id)
        if supplier is None or supplier.business_id != ctx.business_id:
            raise SupplierNotFoundError(str(supplier_id))
        return supplier

    def get_by_id(self, ctx: SessionContext, supplier_id: UUID) -> SupplierInfo:
        self._authorize(ctx, "supplier.view")
        return self._get_by_id(ctx, supplier_id).to_dto()

    def list_suppliers(
        self,
        ctx: SessionContext,
        skip: int = 0,
        limit: int = 100,
        active_only: bool = False,
    ) -> list[SupplierInfo]:
        """
        List suppliers of the caller's business, ordered by name.

        Args:
            skip: Rows to skip.
            limit: Maximum rows to return.
            active_only: If True, only return active suppliers.
        """
        self._authorize(ctx, "supplier.view")
        stmt = select(Supplier).where(Supplier.business_id == ctx.business_id)
        if active_only:
            stmt = stmt.where(Supplier.is_active == True)  # noqa: E712
        stmt = stmt.order_by(Supplier.name).offset(max(skip, 0)).limit(limit)
        return [s.to_dto() for s in self.session.execute(stmt).scalars().all()]

    def create_supplier(
        self,
        ctx: SessionContext,
        name: str,
        supplier_type: str | None = None,
        tax_id: str | None = None,
        legal_representative: str | None = None,
        phone: str | None = None,
        email: str | None = None,
        address: str | None = None,
    ) -> SupplierInfo:
        """
        Create a new supplier.

        Raises:
            InvalidFieldError: name shorter than two characters.
        """
        self._authorize(ctx, "supplier.manage")
        supplier = Supplier(
            business_id=ctx.business_id,
            name=self._clean_name(name),
            supplier_type=supplier_type,
            tax_id=tax_id,
            legal_representative=legal_representative,
            phone=phone,
            email=email.strip().lower() if email else None,
            address=address,
            is_active=True,
            created_by_id=ctx.user_id,
        )
        self.session.add(supplier)
        self.session.flush()
        logger.info(
            "supplier_created",
            extra={"supplier_id": str(supplier.id), "supplier_name": supplier.name},
        )
        return supplier.to_dto()

    def update_supplier(
        self,
        ctx: SessionContext,
        supplier_id: UUID,
        name: str | None = None,
        **contact: str | None,
    ) -> SupplierInfo:
        """
        Update supplier details.  Only provided (non-None) fields change.
        """
        self._authorize(ctx, "supplier.manage")
        unknown = set(contact) - set(_CONTACT_FIELDS)
        if unknown:
            raise InvalidFieldError(sorted(unknown)[0], "field cannot be updated")

        supplier = self._get_by_id(ctx, supplier_id)
        if name is not None:
            supplier.name = self._clean_name(name)
        for key, value in contact.items():
            if value is not None:
                setattr(supplier, key, value)
        supplier.updated_by_id = ctx.user_id
        self.session.flush()
        return supplier.to_dto()

    def deactivate_supplier(self, ctx: SessionContext, supplier_id: UUID) -> SupplierInfo:
        self._authorize(ctx, "supplier.manage")
        supplier = self._get_by_id(ctx, supplier_id)
        supplier.is_active = False
        supplier.updated_by_id = ctx.user_id
        self.session.flush()
        logger.info("supplier_deactivated", extra={"supplier_id": str(supplier.id)})
        return supplier.to_dto()

    def delete_permanently(self, ctx: SessionContext, supplier_id: UUID) -> None:
        """
        Hard-delete a supplier.

        Raises:
            SupplierReferencedError: if any inventory item references it.
        """
        self._authorize(ctx, "supplier.manage")
        supplier = self._get_by_id(ctx, supplier_id)
        references = self.session.execute(
            select(func.count())
            .select_from(InventoryItem)
            .where(InventoryItem.supplier_id == supplier.id)
        ).scalar_one()
        if references:
            raise SupplierReferencedError(str(supplier.id), references)

        self.session.delete(supplier)
        self.session.flush()
        logger.info("supplier_deleted", extra={"supplier_id": str(supplier_id)})

    @staticmethod
    def _clean_name(name: str) -> str:
        cleaned = (name or "").strip()
        if len(cleaned) < _MIN_NAME_LENGTH:
            raise InvalidFieldError("name", f"must be at least {_MIN_NAME_LENGTH} characters")
        return cleaned
