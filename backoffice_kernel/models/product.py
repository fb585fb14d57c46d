"""
Module: backoffice_kernel.models.product
Responsibility: ORM persistence for sellable products (recipes) and their
    ingredient links to inventory items.
Architecture position: Kernel > Models.  May import from db/ and domain/dtos.

Invariants enforced:
    - sale_price >= 0 (ck_product_sale_price_non_negative).
    - Ingredient.quantity > 0 and one link per (product, item)
      (uq_ingredient_product_item).
    - unit_price_snapshot records the item's unit price when the link was
      written; live costing ignores it.

Audit relevance:
    Ingredient lists are replaced wholesale (delete-and-recreate).  The
    product's updated_by_id / updated_at record who changed the recipe.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice_kernel.db.base import TrackedBase
from backoffice_kernel.domain.dtos import IngredientInfo, ProductInfo


class Product(TrackedBase):
    """
    A sellable product and its recipe.

    Contract:
        Total ingredient cost above sale_price is a warning, never an
        error.  Products are deactivated, not deleted.
    """

    __tablename__ = "products"

    __table_args__ = (
        CheckConstraint("sale_price >= 0", name="ck_product_sale_price_non_negative"),
        Index("idx_product_business", "business_id", "is_active"),
        Index("idx_product_category", "business_id", "category"),
    )

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    description: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    sale_price: Mapped[Decimal] = mapped_column(nullable=False)

    profit_margin_percentage: Mapped[Decimal | None] = mapped_column(nullable=True)

    image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    ingredients: Mapped[list["Ingredient"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="Ingredient.line_number",
        lazy="selectin",
    )

    def to_dto(self) -> ProductInfo:
        return ProductInfo(
            id=self.id,
            business_id=self.business_id,
            name=self.name,
            category=self.category,
            description=self.description,
            sale_price=self.sale_price,
            profit_margin_percentage=self.profit_margin_percentage,
            image_url=self.image_url,
            is_active=self.is_active,
            ingredients=tuple(i.to_dto() for i in self.ingredients),
        )

    def __repr__(self) -> str:
        return f"<Product {self.name} price={self.sale_price} business={self.business_id}>"


class Ingredient(TrackedBase):
    __tablename__ = "product_ingredients"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_ingredient_quantity_positive"),
        UniqueConstraint("product_id", "item_id", name="uq_ingredient_product_item"),
    )

    product_id: Mapped[UUID] = mapped_column(
        ForeignKey("products.id"),
        nullable=False,
    )

    item_id: Mapped[UUID] = mapped_column(
        ForeignKey("inventory_items.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    unit_price_snapshot: Mapped[Decimal] = mapped_column(nullable=False)

    product: Mapped["Product"] = relationship(back_populates="ingredients")

    def to_dto(self) -> IngredientInfo:
        return IngredientInfo(
            item_id=self.item_id,
            quantity=self.quantity,
            unit_price_snapshot=self.unit_price_snapshot,
            line_number=self.line_number,
        )

    def __repr__(self) -> str:
        return f"<Ingredient product={self.product_id} item={self.item_id} qty={self.quantity}>"
