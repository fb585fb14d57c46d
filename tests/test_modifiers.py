"""
Tests for ModifierService and the modifier side of CatalogSelector.

Covers:
- groups: create / update, modifier counts
- create_modifier(): signed deltas, validation
- assign(): ingredient subset rule, duplicate assignment
- remove(): unconditional detach, no-op when not assigned
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from backoffice_kernel.domain.dtos import IngredientSpec, ModifierItemSpec, UserRole
from backoffice_kernel.exceptions import (
    DuplicateIngredientError,
    IngredientMismatchError,
    InvalidFieldError,
    InvalidQuantityError,
    InventoryItemNotFoundError,
    ModifierAlreadyAssignedError,
    ModifierGroupNotFoundError,
    PermissionDeniedError,
)
from backoffice_kernel.selectors.catalog_selector import CatalogSelector


@pytest.fixture
def catalog(session, clock, authority):
    return CatalogSelector(session, clock, authority=authority)


@pytest.fixture
def coffee(owner, make_item):
    return {
        "beans": make_item(owner, "Coffee beans", unit_price=Decimal("20")),
        "milk": make_item(owner, "Milk", unit_of_measure="l", unit_price=Decimal("1.20")),
        "syrup": make_item(owner, "Vanilla syrup", unit_of_measure="l", unit_price=Decimal("9")),
    }


@pytest.fixture
def latte(owner, coffee, products):
    return products.create_product(
        owner,
        name="Latte",
        sale_price=Decimal("3.50"),
        ingredients=[
            IngredientSpec(coffee["beans"].id, Decimal("0.018")),
            IngredientSpec(coffee["milk"].id, Decimal("0.2")),
        ],
    )


@pytest.fixture
def milk_group(owner, modifiers):
    return modifiers.create_group(owner, "Milk options", allow_multiple=False, is_required=True)


@pytest.fixture
def extra_milk(owner, coffee, milk_group, modifiers):
    return modifiers.create_modifier(
        owner,
        milk_group.id,
        "Extra milk",
        price_extra=Decimal("0.40"),
        inventory_items=[ModifierItemSpec(coffee["milk"].id, Decimal("0.05"))],
    )


class TestGroups:

    def test_create_group(self, milk_group):
        assert milk_group.name == "Milk options"
        assert milk_group.is_required
        assert not milk_group.allow_multiple
        assert milk_group.modifiers_count == 0

    def test_update_group_counts_modifiers(self, owner, milk_group, extra_milk, modifiers):
        updated = modifiers.update_group(owner, milk_group.id, allow_multiple=True)
        assert updated.allow_multiple
        assert updated.modifiers_count == 1

    def test_unknown_group(self, owner, modifiers):
        with pytest.raises(ModifierGroupNotFoundError):
            modifiers.update_group(owner, uuid4(), name="Ghost")

    def test_cook_cannot_manage(self, owner, make_user, modifiers):
        cook = make_user(owner, UserRole.COOK)
        with pytest.raises(PermissionDeniedError):
            modifiers.create_group(cook, "Sizes")


class TestCreateModifier:

    def test_signed_deltas(self, owner, coffee, milk_group, modifiers):
        oat = modifiers.create_modifier(
            owner,
            milk_group.id,
            "No dairy",
            inventory_items=[ModifierItemSpec(coffee["milk"].id, Decimal("-0.2"))],
        )
        assert oat.inventory_items[0].quantity == Decimal("-0.2")
        assert oat.price_extra == Decimal("0")

    def test_requires_deltas(self, owner, milk_group, modifiers):
        with pytest.raises(InvalidFieldError) as exc_info:
            modifiers.create_modifier(owner, milk_group.id, "Nothing")
        assert exc_info.value.field == "inventory_items"

    def test_zero_delta(self, owner, coffee, milk_group, modifiers):
        with pytest.raises(InvalidQuantityError):
            modifiers.create_modifier(
                owner,
                milk_group.id,
                "Same milk",
                inventory_items=[ModifierItemSpec(coffee["milk"].id, Decimal("0"))],
            )

    def test_duplicate_item(self, owner, coffee, milk_group, modifiers):
        with pytest.raises(DuplicateIngredientError):
            modifiers.create_modifier(
                owner,
                milk_group.id,
                "Double milk",
                inventory_items=[
                    ModifierItemSpec(coffee["milk"].id, Decimal("0.1")),
                    ModifierItemSpec(coffee["milk"].id, Decimal("0.1")),
                ],
            )

    def test_negative_price(self, owner, coffee, milk_group, modifiers):
        with pytest.raises(InvalidFieldError):
            modifiers.create_modifier(
                owner,
                milk_group.id,
                "Discount milk",
                price_extra=Decimal("-1"),
                inventory_items=[ModifierItemSpec(coffee["milk"].id, Decimal("0.1"))],
            )

    def test_foreign_item(self, owner, partner, make_item, milk_group, modifiers):
        foreign = make_item(partner, "Their milk")
        with pytest.raises(InventoryItemNotFoundError):
            modifiers.create_modifier(
                owner,
                milk_group.id,
                "Their milk",
                inventory_items=[ModifierItemSpec(foreign.id, Decimal("0.1"))],
            )

    def test_deactivate_hides_from_group_listing(self, owner, milk_group, extra_milk, modifiers, catalog):
        modifiers.update_modifier(owner, extra_milk.id, is_active=False)
        assert catalog.list_by_group(owner, milk_group.id) == []
        assert len(catalog.list_by_group(owner, milk_group.id, active_only=False)) == 1


class TestAssignment:

    def test_assign_subset_of_recipe(self, owner, latte, extra_milk, modifiers, catalog):
        modifiers.assign(owner, latte.id, extra_milk.id)
        assert [m.id for m in catalog.product_modifiers(owner, latte.id)] == [extra_milk.id]

    def test_assign_outside_recipe_rejected(self, owner, coffee, latte, milk_group, modifiers, captured_logs):
        vanilla = modifiers.create_modifier(
            owner,
            milk_group.id,
            "Vanilla",
            price_extra=Decimal("0.60"),
            inventory_items=[
                ModifierItemSpec(coffee["syrup"].id, Decimal("0.02")),
                ModifierItemSpec(coffee["milk"].id, Decimal("0.01")),
            ],
        )
        with pytest.raises(IngredientMismatchError) as exc_info:
            modifiers.assign(owner, latte.id, vanilla.id)
        assert exc_info.value.missing_item_ids == [str(coffee["syrup"].id)]
        assert any(r["message"] == "modifier_assignment_rejected" for r in captured_logs())

    def test_assign_twice_rejected(self, owner, latte, extra_milk, modifiers):
        modifiers.assign(owner, latte.id, extra_milk.id)
        with pytest.raises(ModifierAlreadyAssignedError):
            modifiers.assign(owner, latte.id, extra_milk.id)

    def test_remove(self, owner, latte, extra_milk, modifiers, catalog):
        modifiers.assign(owner, latte.id, extra_milk.id)
        assert modifiers.remove(owner, latte.id, extra_milk.id) is True
        assert catalog.product_modifiers(owner, latte.id) == []

    def test_remove_unassigned_is_noop(self, owner, latte, extra_milk, modifiers):
        assert modifiers.remove(owner, latte.id, extra_milk.id) is False
