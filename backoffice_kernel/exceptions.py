"""
Typed Exception Hierarchy for the Backoffice Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (an HTTP layer, a CLI, a test) must react to failures by TYPE and by
CODE, never by parsing messages:

    try:
        ledger.adjust(ctx, item_id, Decimal("-15"), "Spoiled batch")
    except InsufficientStockError as e:
        api_response(code=e.code, available=e.available, requested=e.requested)

Every exception carries:
  1. a ``code`` class attribute (machine-readable, API-safe)
  2. a ``category`` class attribute (how the caller should surface it)
  3. structured attributes (never only a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BackofficeKernelError (base)
    |
    +-- ValidationError                       [validation]
    |   +-- InvalidFieldError
    |   +-- InvalidQuantityError
    |   +-- ReasonTooShortError
    |   +-- EmptyTransferError
    |   +-- DuplicateIngredientError
    |
    +-- AuthorizationError                    [authorization]
    |   +-- PermissionDeniedError
    |   +-- TenantMismatchError
    |   +-- RoleAssignmentError
    |
    +-- NotFoundError                         [not_found]
    |   +-- BusinessNotFoundError, UserNotFoundError, SupplierNotFoundError
    |   +-- InventoryItemNotFoundError, MovementNotFoundError
    |   +-- RelationshipNotFoundError, TransferNotFoundError
    |   +-- ProductNotFoundError, ModifierGroupNotFoundError
    |   +-- ModifierNotFoundError
    |
    +-- ConflictError                         [conflict]
    |   +-- InsufficientStockError
    |   +-- InventoryItemInactiveError
    |   +-- DuplicateSkuError
    |   +-- DuplicateEmailError
    |   +-- MovementAlreadyRevertedError
    |   +-- MovementNotRevertibleError
    |   +-- DuplicateRelationshipError
    |   +-- RelationshipRejectedError
    |   +-- RelationshipNotActiveError
    |   +-- SelfRelationshipError
    |   +-- InvalidTransitionError
    |   +-- ItemMappingMissingError
    |   +-- IngredientMismatchError
    |   +-- ModifierAlreadyAssignedError
    |   +-- SupplierReferencedError
    |   +-- AttendanceAlreadyOpenError
    |   +-- NoOpenAttendanceError
    |
    +-- SessionError                          [transport]
    |   +-- SessionNotAuthenticatedError
    |   +-- SessionExpiredError
    |   +-- InvalidCredentialsError
    |   +-- InvalidTokenError
    |
    +-- ImmutabilityViolationError            [integrity]

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | INVALID_FIELD               | Field-level rule violated
                | INVALID_QUANTITY            | Zero / negative / non-decimal quantity
                | REASON_TOO_SHORT            | Revert reason below minimum length
                | EMPTY_TRANSFER              | Transfer with no lines
                | DUPLICATE_INGREDIENT        | Same item twice in a recipe/modifier
----------------|-----------------------------|-----------------------------------------
Authorization   | PERMISSION_DENIED           | Role lacks the permission
                | TENANT_MISMATCH             | Row belongs to another business
                | ROLE_ASSIGNMENT_DENIED      | Actor may not grant that role
----------------|-----------------------------|-----------------------------------------
Not found       | *_NOT_FOUND                 | Entity id doesn't exist (or not visible)
----------------|-----------------------------|-----------------------------------------
Conflict        | INSUFFICIENT_STOCK          | current + delta < 0
                | ITEM_INACTIVE               | Movement against a deactivated item
                | DUPLICATE_SKU               | SKU already used in the business
                | DUPLICATE_EMAIL             | Email already registered
                | MOVEMENT_ALREADY_REVERTED   | Second revert of the same movement
                | MOVEMENT_NOT_REVERTIBLE     | Revert / transfer movements
                | DUPLICATE_RELATIONSHIP      | Non-rejected pair already exists
                | RELATIONSHIP_REJECTED       | Pair was rejected, re-request disabled
                | RELATIONSHIP_NOT_ACTIVE     | Transfer without an active relationship
                | SELF_RELATIONSHIP           | Business relating to itself
                | INVALID_TRANSITION          | Action not allowed from current state
                | ITEM_MAPPING_MISSING        | No destination item for a transfer line
                | INGREDIENT_MISMATCH         | Modifier item not among ingredients
                | MODIFIER_ALREADY_ASSIGNED   | Duplicate product/modifier link
                | SUPPLIER_REFERENCED         | Permanent delete of a referenced supplier
                | ATTENDANCE_ALREADY_OPEN     | Second check-in without check-out
                | NO_OPEN_ATTENDANCE          | Check-out without check-in
----------------|-----------------------------|-----------------------------------------
Transport       | SESSION_NOT_AUTHENTICATED   | Anonymous context used for a command
                | SESSION_EXPIRED             | Access token / context past expiry
                | INVALID_CREDENTIALS         | Login failed
                | INVALID_TOKEN               | Token malformed, wrong type, expired
----------------|-----------------------------|-----------------------------------------
Integrity       | IMMUTABILITY_VIOLATION      | Movement edited or deleted
"""

from typing import Any


class ErrorCategory:
    """Category names surfaced to callers."""

    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    TRANSPORT = "transport"
    INTEGRITY = "integrity"


class BackofficeKernelError(Exception):
    """
    Base exception for all backoffice kernel errors.

    All subclasses must have ``code`` and ``category`` class attributes.
    """

    code: str = "BACKOFFICE_KERNEL_ERROR"
    category: str = ErrorCategory.CONFLICT


# Validation


class ValidationError(BackofficeKernelError):
    """Base exception for input validation failures."""

    code: str = "VALIDATION_ERROR"
    category: str = ErrorCategory.VALIDATION


class InvalidFieldError(ValidationError):
    """A single field failed a rule."""

    code: str = "INVALID_FIELD"

    def __init__(self, field: str, reason: str, value: Any = None):
        self.field = field
        self.reason = reason
        self.value = value
        super().__init__(f"Invalid {field}: {reason}")


class InvalidQuantityError(ValidationError):
    """Quantity must be a non-zero (or strictly positive) decimal."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid quantity for {field} ({value}): {reason}")


class ReasonTooShortError(ValidationError):
    code: str = "REASON_TOO_SHORT"

    def __init__(self, min_length: int, actual_length: int):
        self.min_length = min_length
        self.actual_length = actual_length
        super().__init__(
            f"Reason must be at least {min_length} characters "
            f"(got {actual_length})"
        )


class EmptyTransferError(ValidationError):
    code: str = "EMPTY_TRANSFER"

    def __init__(self):
        super().__init__("A transfer needs at least one line")


class DuplicateIngredientError(ValidationError):
    """The same inventory item appears twice in one list."""

    code: str = "DUPLICATE_INGREDIENT"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Inventory item {item_id} listed more than once")


# Authorization


class AuthorizationError(BackofficeKernelError):
    """Base exception for role and tenant checks."""

    code: str = "AUTHORIZATION_ERROR"
    category: str = ErrorCategory.AUTHORIZATION


class PermissionDeniedError(AuthorizationError):
    code: str = "PERMISSION_DENIED"

    def __init__(self, role: str | None, permission: str, reason: str = ""):
        self.role = role
        self.permission = permission
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"Role '{role}' lacks permission '{permission}'{detail}"
        )


class TenantMismatchError(AuthorizationError):
    """The entity belongs to a business other than the caller's."""

    code: str = "TENANT_MISMATCH"

    def __init__(self, entity_type: str, entity_id: str, business_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.business_id = business_id
        super().__init__(
            f"{entity_type} {entity_id} is not owned by business {business_id}"
        )


class RoleAssignmentError(AuthorizationError):
    code: str = "ROLE_ASSIGNMENT_DENIED"

    def __init__(self, actor_role: str, target_role: str):
        self.actor_role = actor_role
        self.target_role = target_role
        super().__init__(
            f"Role '{actor_role}' cannot assign role '{target_role}'"
        )


# Not found


class NotFoundError(BackofficeKernelError):
    """Entity does not exist or is not visible to the caller."""

    code: str = "NOT_FOUND"
    category: str = ErrorCategory.NOT_FOUND
    entity_type: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class BusinessNotFoundError(NotFoundError):
    code: str = "BUSINESS_NOT_FOUND"
    entity_type = "Business"


class UserNotFoundError(NotFoundError):
    code: str = "USER_NOT_FOUND"
    entity_type = "User"


class SupplierNotFoundError(NotFoundError):
    code: str = "SUPPLIER_NOT_FOUND"
    entity_type = "Supplier"


class InventoryItemNotFoundError(NotFoundError):
    code: str = "ITEM_NOT_FOUND"
    entity_type = "InventoryItem"


class MovementNotFoundError(NotFoundError):
    code: str = "MOVEMENT_NOT_FOUND"
    entity_type = "Movement"


class RelationshipNotFoundError(NotFoundError):
    code: str = "RELATIONSHIP_NOT_FOUND"
    entity_type = "BusinessRelationship"


class TransferNotFoundError(NotFoundError):
    code: str = "TRANSFER_NOT_FOUND"
    entity_type = "Transfer"


class ProductNotFoundError(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"
    entity_type = "Product"


class ModifierGroupNotFoundError(NotFoundError):
    code: str = "MODIFIER_GROUP_NOT_FOUND"
    entity_type = "ModifierGroup"


class ModifierNotFoundError(NotFoundError):
    code: str = "MODIFIER_NOT_FOUND"
    entity_type = "Modifier"


# Conflict


class ConflictError(BackofficeKernelError):
    """Base exception for state conflicts (the request is well-formed)."""

    code: str = "CONFLICT"
    category: str = ErrorCategory.CONFLICT


class InsufficientStockError(ConflictError):
    """Applying the delta would take stock below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, item_id: str, available: Any, requested: Any):
        self.item_id = item_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for item {item_id}: "
            f"available {available}, requested {requested}"
        )


class InventoryItemInactiveError(ConflictError):
    code: str = "ITEM_INACTIVE"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Inventory item {item_id} is inactive")


class DuplicateSkuError(ConflictError):
    code: str = "DUPLICATE_SKU"

    def __init__(self, business_id: str, sku: str):
        self.business_id = business_id
        self.sku = sku
        super().__init__(f"SKU '{sku}' already exists in business {business_id}")


class DuplicateEmailError(ConflictError):
    code: str = "DUPLICATE_EMAIL"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email already registered: {email}")


class MovementAlreadyRevertedError(ConflictError):
    """Movement has already been reverted."""

    code: str = "MOVEMENT_ALREADY_REVERTED"

    def __init__(self, movement_id: str):
        self.movement_id = movement_id
        super().__init__(f"Movement {movement_id} has already been reverted")


class MovementNotRevertibleError(ConflictError):
    """Compensating and transfer movements cannot be reverted directly."""

    code: str = "MOVEMENT_NOT_REVERTIBLE"

    def __init__(self, movement_id: str, movement_type: str):
        self.movement_id = movement_id
        self.movement_type = movement_type
        super().__init__(
            f"Movement {movement_id} of type '{movement_type}' cannot be reverted"
        )


class DuplicateRelationshipError(ConflictError):
    code: str = "DUPLICATE_RELATIONSHIP"

    def __init__(self, business_a: str, business_b: str, existing_status: str):
        self.business_a = business_a
        self.business_b = business_b
        self.existing_status = existing_status
        super().__init__(
            f"Relationship between {business_a} and {business_b} "
            f"already exists ({existing_status})"
        )


class RelationshipRejectedError(ConflictError):
    """The pair was rejected and re-requesting is disabled."""

    code: str = "RELATIONSHIP_REJECTED"

    def __init__(self, business_a: str, business_b: str):
        self.business_a = business_a
        self.business_b = business_b
        super().__init__(
            f"Relationship between {business_a} and {business_b} was rejected"
        )


class RelationshipNotActiveError(ConflictError):
    code: str = "RELATIONSHIP_NOT_ACTIVE"

    def __init__(self, business_a: str, business_b: str):
        self.business_a = business_a
        self.business_b = business_b
        super().__init__(
            f"No active relationship between {business_a} and {business_b}"
        )


class SelfRelationshipError(ConflictError):
    code: str = "SELF_RELATIONSHIP"

    def __init__(self, business_id: str):
        self.business_id = business_id
        super().__init__(f"Business {business_id} cannot relate to itself")


class InvalidTransitionError(ConflictError):
    """The workflow has no transition for this action from the current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, workflow: str, entity_id: str, from_state: str, action: str):
        self.workflow = workflow
        self.entity_id = entity_id
        self.from_state = from_state
        self.action = action
        super().__init__(
            f"{workflow}: cannot '{action}' {entity_id} from state '{from_state}'"
        )


class ItemMappingMissingError(ConflictError):
    """Transfer lines reference source items with no destination equivalent."""

    code: str = "ITEM_MAPPING_MISSING"

    def __init__(self, transfer_id: str, source_item_ids: list[str]):
        self.transfer_id = transfer_id
        self.source_item_ids = source_item_ids
        super().__init__(
            f"Transfer {transfer_id}: no destination item mapped for "
            f"{', '.join(source_item_ids)}"
        )


class IngredientMismatchError(ConflictError):
    """Modifier items are not a subset of the product's ingredients."""

    code: str = "INGREDIENT_MISMATCH"

    def __init__(self, product_id: str, modifier_id: str, missing_item_ids: list[str]):
        self.product_id = product_id
        self.modifier_id = modifier_id
        self.missing_item_ids = missing_item_ids
        super().__init__(
            f"Modifier {modifier_id} uses items not in product {product_id}: "
            f"{', '.join(missing_item_ids)}"
        )


class ModifierAlreadyAssignedError(ConflictError):
    code: str = "MODIFIER_ALREADY_ASSIGNED"

    def __init__(self, product_id: str, modifier_id: str):
        self.product_id = product_id
        self.modifier_id = modifier_id
        super().__init__(
            f"Modifier {modifier_id} is already assigned to product {product_id}"
        )


class SupplierReferencedError(ConflictError):
    code: str = "SUPPLIER_REFERENCED"

    def __init__(self, supplier_id: str, item_count: int):
        self.supplier_id = supplier_id
        self.item_count = item_count
        super().__init__(
            f"Supplier {supplier_id} is referenced by {item_count} inventory item(s)"
        )


class AttendanceAlreadyOpenError(ConflictError):
    code: str = "ATTENDANCE_ALREADY_OPEN"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User {user_id} is already checked in")


class NoOpenAttendanceError(ConflictError):
    code: str = "NO_OPEN_ATTENDANCE"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User {user_id} has no open check-in")


# Session / transport


class SessionError(BackofficeKernelError):
    """Base exception for session and token failures."""

    code: str = "SESSION_ERROR"
    category: str = ErrorCategory.TRANSPORT


class SessionNotAuthenticatedError(SessionError):
    code: str = "SESSION_NOT_AUTHENTICATED"

    def __init__(self):
        super().__init__("An authenticated session is required")


class SessionExpiredError(SessionError):
    code: str = "SESSION_EXPIRED"

    def __init__(self, user_id: str | None, expired_at: Any = None):
        self.user_id = user_id
        self.expired_at = expired_at
        super().__init__(f"Session for user {user_id} expired at {expired_at}")


class InvalidCredentialsError(SessionError):
    code: str = "INVALID_CREDENTIALS"

    def __init__(self, email: str):
        self.email = email
        super().__init__("Invalid email or password")


class InvalidTokenError(SessionError):
    code: str = "INVALID_TOKEN"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid token: {reason}")


# Immutability


class ImmutabilityViolationError(BackofficeKernelError):
    """
    Attempted to modify or delete an immutable record.

    Movements are append-only; only the ``reverted`` flag may flip,
    and only from False to True.
    """

    code: str = "IMMUTABILITY_VIOLATION"
    category: str = ErrorCategory.INTEGRITY

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
