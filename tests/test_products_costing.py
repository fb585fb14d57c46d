"""
Tests for ProductService and recipe costing.

Covers:
- build_cost_breakdown(): pure costing, live vs snapshot basis
- create_product() / update_product(): validation, loss warning
- replace_ingredients(): wholesale replacement, modifier guard
- activation toggles and tenant isolation
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from backoffice_kernel.domain.costing import build_cost_breakdown
from backoffice_kernel.domain.dtos import (
    CostBasis,
    IngredientInfo,
    IngredientSpec,
    InventoryItemInfo,
    ModifierItemSpec,
    ProductInfo,
    UserRole,
)
from backoffice_kernel.exceptions import (
    DuplicateIngredientError,
    IngredientMismatchError,
    InvalidFieldError,
    InvalidQuantityError,
    InventoryItemInactiveError,
    InventoryItemNotFoundError,
    PermissionDeniedError,
    ProductNotFoundError,
)
from backoffice_kernel.selectors.catalog_selector import CatalogSelector


@pytest.fixture
def pantry(owner, make_item):
    return {
        "flour": make_item(owner, "Flour", unit_price=Decimal("2.50")),
        "butter": make_item(owner, "Butter", unit_price=Decimal("8.00")),
        "salt": make_item(owner, "Salt", unit_price=Decimal("0.40")),
    }


@pytest.fixture
def bread(owner, pantry, products):
    return products.create_product(
        owner,
        name="Bread",
        sale_price=Decimal("5.00"),
        ingredients=[
            IngredientSpec(pantry["flour"].id, Decimal("0.5")),
            IngredientSpec(pantry["butter"].id, Decimal("0.1")),
        ],
        category="Bakery",
    )


@pytest.fixture
def catalog(session, clock, authority):
    return CatalogSelector(session, clock, authority=authority)


class TestBuildCostBreakdown:
    """Pure costing over DTOs, no database."""

    def _item(self, item_id, price):
        return InventoryItemInfo(
            id=item_id,
            business_id=uuid4(),
            name="Item",
            unit_of_measure="kg",
            quantity_in_stock=Decimal("0"),
            unit_price=price,
        )

    def test_live_and_snapshot_differ_after_price_change(self):
        item_id = uuid4()
        product = ProductInfo(
            id=uuid4(),
            business_id=uuid4(),
            name="Scone",
            sale_price=Decimal("3"),
            ingredients=(IngredientInfo(item_id, Decimal("2"), Decimal("1.00"), 1),),
        )
        items = {item_id: self._item(item_id, Decimal("1.75"))}

        live = build_cost_breakdown(product, items, CostBasis.LIVE)
        snapshot = build_cost_breakdown(product, items, CostBasis.SNAPSHOT)

        assert live.total_cost == Decimal("3.50")
        assert live.is_loss
        assert snapshot.total_cost == Decimal("2.00")
        assert snapshot.profit == Decimal("1.00")

    def test_empty_recipe_costs_nothing(self):
        product = ProductInfo(id=uuid4(), business_id=uuid4(), name="Water", sale_price=Decimal("0"))
        breakdown = build_cost_breakdown(product, {})
        assert breakdown.total_cost == Decimal("0")
        assert breakdown.margin_percentage is None
        assert not breakdown.is_loss


class TestCreateProduct:

    def test_create_with_recipe(self, bread, pantry):
        assert bread.name == "Bread"
        assert bread.ingredients_count == 2
        assert [i.line_number for i in bread.ingredients] == [1, 2]
        assert bread.ingredients[0].unit_price_snapshot == Decimal("2.50")
        assert bread.ingredient_item_ids == {pantry["flour"].id, pantry["butter"].id}

    def test_cost_breakdown(self, owner, bread, products):
        breakdown = products.cost_breakdown(owner, bread.id)
        assert [line.item_name for line in breakdown.lines] == ["Flour", "Butter"]
        assert breakdown.total_cost == Decimal("2.05")
        assert breakdown.profit == Decimal("2.95")
        assert breakdown.margin_percentage == Decimal("59")

    def test_live_price_tracks_item_snapshot_does_not(self, owner, bread, pantry, products, ledger):
        ledger.update_item(owner, pantry["flour"].id, unit_price=Decimal("3.00"))

        assert products.total_cost(owner, bread.id) == Decimal("2.30")
        assert products.total_cost(owner, bread.id, CostBasis.SNAPSHOT) == Decimal("2.05")

    def test_loss_is_a_warning_not_an_error(self, owner, pantry, products, captured_logs):
        product = products.create_product(
            owner,
            name="Loss leader",
            sale_price=Decimal("1.00"),
            ingredients=[IngredientSpec(pantry["butter"].id, Decimal("1"))],
        )
        assert products.cost_breakdown(owner, product.id).is_loss
        warnings = [r for r in captured_logs() if r["message"] == "product_priced_below_cost"]
        assert Decimal(warnings[0]["total_cost"]) == Decimal("8.00")

    def test_duplicate_ingredient(self, owner, pantry, products):
        with pytest.raises(DuplicateIngredientError):
            products.create_product(
                owner,
                name="Double flour",
                sale_price=Decimal("4"),
                ingredients=[
                    IngredientSpec(pantry["flour"].id, Decimal("1")),
                    IngredientSpec(pantry["flour"].id, Decimal("2")),
                ],
            )

    def test_non_positive_quantity(self, owner, pantry, products):
        with pytest.raises(InvalidQuantityError) as exc_info:
            products.create_product(
                owner,
                name="Air bread",
                sale_price=Decimal("4"),
                ingredients=[IngredientSpec(pantry["flour"].id, Decimal("0"))],
            )
        assert exc_info.value.field == "ingredients[0].quantity"

    def test_ingredient_from_other_business(self, partner, pantry, products):
        with pytest.raises(InventoryItemNotFoundError):
            products.create_product(
                partner,
                name="Borrowed bread",
                sale_price=Decimal("4"),
                ingredients=[IngredientSpec(pantry["flour"].id, Decimal("1"))],
            )

    def test_inactive_ingredient(self, owner, pantry, products, ledger):
        ledger.deactivate_item(owner, pantry["salt"].id)
        with pytest.raises(InventoryItemInactiveError):
            products.create_product(
                owner,
                name="Pretzel",
                sale_price=Decimal("4"),
                ingredients=[IngredientSpec(pantry["salt"].id, Decimal("0.01"))],
            )

    def test_negative_price_and_blank_name(self, owner, products):
        with pytest.raises(InvalidFieldError):
            products.create_product(owner, name="Refund", sale_price=Decimal("-1"))
        with pytest.raises(InvalidFieldError):
            products.create_product(owner, name="   ", sale_price=Decimal("1"))

    @pytest.mark.parametrize("margin", ["150", "-5", "100.01"])
    def test_margin_outside_percentage_range(self, owner, products, margin):
        with pytest.raises(InvalidFieldError) as exc_info:
            products.create_product(
                owner, name="Bagel", sale_price=Decimal("10"), profit_margin_percentage=margin
            )
        assert exc_info.value.field == "profit_margin_percentage"

    @pytest.mark.parametrize("margin", ["0", "35.5", "100"])
    def test_margin_bounds_inclusive(self, owner, products, margin):
        product = products.create_product(
            owner, name="Bagel", sale_price=Decimal("10"), profit_margin_percentage=margin
        )
        assert product.profit_margin_percentage == Decimal(margin)

    def test_waiter_cannot_manage(self, owner, make_user, products):
        waiter = make_user(owner, UserRole.WAITER)
        with pytest.raises(PermissionDeniedError):
            products.create_product(waiter, name="Bread", sale_price=Decimal("5"))


class TestUpdateProduct:

    def test_update_fields(self, owner, bread, products):
        updated = products.update_product(
            owner, bread.id, sale_price=Decimal("6.50"), description="Sourdough"
        )
        assert updated.sale_price == Decimal("6.50")
        assert updated.description == "Sourdough"

    def test_margin_range_checked_on_update(self, owner, bread, products, catalog):
        with pytest.raises(InvalidFieldError):
            products.update_product(owner, bread.id, profit_margin_percentage="101")
        assert catalog.get_product(owner, bread.id).profit_margin_percentage is None

    def test_ingredients_not_updatable_here(self, owner, bread, products):
        with pytest.raises(InvalidFieldError) as exc_info:
            products.update_product(owner, bread.id, ingredients=[])
        assert exc_info.value.field == "ingredients"

    def test_deactivate_and_activate(self, owner, bread, products, catalog):
        products.deactivate_product(owner, bread.id)
        assert catalog.list_products(owner) == []
        assert [p.id for p in catalog.list_products(owner, active_only=False)] == [bread.id]

        products.activate_product(owner, bread.id)
        assert catalog.get_product(owner, bread.id).is_active

    def test_other_business_sees_not_found(self, partner, bread, products):
        with pytest.raises(ProductNotFoundError):
            products.update_product(partner, bread.id, name="Stolen")


class TestReplaceIngredients:

    def test_replace_wholesale(self, owner, bread, pantry, products):
        replaced = products.replace_ingredients(
            owner,
            bread.id,
            [
                IngredientSpec(pantry["salt"].id, Decimal("0.02")),
                IngredientSpec(pantry["flour"].id, Decimal("0.6")),
            ],
        )
        assert [i.item_id for i in replaced.ingredients] == [pantry["salt"].id, pantry["flour"].id]
        assert replaced.ingredients[1].quantity == Decimal("0.6")

    def test_replace_keeps_same_item(self, owner, bread, pantry, products):
        """Re-listing an existing item must not collide with the old line."""
        replaced = products.replace_ingredients(
            owner, bread.id, [IngredientSpec(pantry["flour"].id, Decimal("0.7"))]
        )
        assert replaced.ingredients_count == 1

    def test_cannot_drop_item_used_by_assigned_modifier(
        self, owner, bread, pantry, products, modifiers
    ):
        group = modifiers.create_group(owner, "Extras")
        extra_butter = modifiers.create_modifier(
            owner,
            group.id,
            "Extra butter",
            price_extra=Decimal("0.50"),
            inventory_items=[ModifierItemSpec(pantry["butter"].id, Decimal("0.05"))],
        )
        modifiers.assign(owner, bread.id, extra_butter.id)

        with pytest.raises(IngredientMismatchError) as exc_info:
            products.replace_ingredients(
                owner, bread.id, [IngredientSpec(pantry["flour"].id, Decimal("0.5"))]
            )
        assert exc_info.value.missing_item_ids == [str(pantry["butter"].id)]


class TestCatalogSelector:

    def test_categories_and_filter(self, owner, bread, products, catalog):
        products.create_product(owner, name="Latte", sale_price=Decimal("3"), category="Drinks")
        assert catalog.categories(owner) == ["Bakery", "Drinks"]
        assert [p.name for p in catalog.list_products(owner, category="Drinks")] == ["Latte"]
