"""
Typed Exception Hierarchy for the Production Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every rejected lifecycle transition must name the specific unmet
precondition, and stock failures must carry enough detail (product, shelf,
shortfall) for an operator to act on.  Parsing message strings for that is
fragile, so:
  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        engine.apply_moves(moves)
    except InsufficientStockError as e:
        api_response(
            code=e.code,
            product=e.product_id,
            shelf=e.shelf_id,
            shortfall=str(e.shortfall),
        )

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from ProductionKernelError:

    ProductionKernelError (base)
    |
    +-- ValidationError
    |   +-- OrderNotFoundError
    |   +-- GroupOrderNotFoundError
    |   +-- ProductNotFoundError
    |   +-- ShelfNotFoundError
    |   +-- InvalidTransitionError
    |   +-- GroupNotFoundError
    |   +-- DeliveryRowNotFoundError
    |   +-- UnknownDeliveryFieldError
    |   +-- MissingSelectedProductError
    |   +-- MissingSourceShelfError
    |   +-- SourceShelfEmptyError
    |   +-- MissingProductionShelfError
    |   +-- InvalidDeliveredQuantityError
    |   +-- NoConfirmedGroupsError
    |   +-- StaleDraftError
    |   +-- MissingOutputProductError
    |   +-- MissingOutputShelfError
    |   +-- InvalidQuantityError
    |   +-- NoConsumptionMovesError
    |   +-- InvalidMoveError
    |   +-- QuantityOutOfRangeError
    |
    +-- InventoryError
    |   +-- InsufficientStockError
    |
    +-- AllocationError
        +-- InconsistentAllocationError

    PersistenceError is sqlalchemy.exc.SQLAlchemyError itself.  Storage
    failures propagate unchanged; the core never wraps or retries them.

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category    | Code                        | When Raised
------------|-----------------------------|-----------------------------------------
Validation  | ORDER_NOT_FOUND             | Order id doesn't exist
            | GROUP_ORDER_NOT_FOUND       | Group order id doesn't exist
            | PRODUCT_NOT_FOUND           | Product id doesn't exist
            | SHELF_NOT_FOUND             | Shelf id doesn't exist
            | INVALID_TRANSITION          | Action not allowed from current status
            | GROUP_NOT_FOUND             | Draft has no group with that key
            | DELIVERY_ROW_NOT_FOUND      | Group has no delivery row with that id
            | UNKNOWN_DELIVERY_FIELD      | Edit targets a field rows don't have
            | MISSING_SELECTED_PRODUCT    | Group has no selected product
            | MISSING_SOURCE_SHELF        | Group has no source shelf
            | SOURCE_SHELF_EMPTY          | Source shelf holds no stock of product
            | MISSING_PRODUCTION_SHELF    | Group has no production shelf
            | INVALID_DELIVERED_QUANTITY  | Group delivered total is not > 0
            | NO_CONFIRMED_GROUPS         | start() called with nothing confirmed
            | STALE_DRAFT                 | Draft references orders not being started
            | MISSING_OUTPUT_PRODUCT      | complete() without output product
            | MISSING_OUTPUT_SHELF        | complete() without output shelf
            | INVALID_QUANTITY            | complete() quantity is not > 0
            | NO_CONSUMPTION_MOVES        | Nothing to consume at completion
            | INVALID_MOVE                | Move with missing id or negative qty
            | QUANTITY_OUT_OF_RANGE       | Quantity exceeds Numeric(38, 9) storage
------------|-----------------------------|-----------------------------------------
Inventory   | INSUFFICIENT_STOCK          | Decrement would leave stock < 0
------------|-----------------------------|-----------------------------------------
Allocation  | INCONSISTENT_ALLOCATION     | Split does not sum to its input

===============================================================================
HANDLING PATTERNS
===============================================================================

1. LIFECYCLE RESULTS (the controller already catches these):

    result = controller.start(order_ids, draft)
    if not result.is_success:
        show(result.reason_code, result.message)

2. CATEGORY CATCH for callers that drive engines directly:

    except ValidationError as e:
        # nothing was mutated; fix input and retry
    except InventoryError as e:
        # batch aborted before any write

===============================================================================
"""

from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError


class ProductionKernelError(Exception):
    """
    Base exception for all production kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PRODUCTION_KERNEL_ERROR"


# Validation exceptions


class ValidationError(ProductionKernelError):
    """Base exception for precondition failures detected before any mutation."""

    code: str = "VALIDATION_ERROR"


class OrderNotFoundError(ValidationError):
    """Production order with given ID was not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Production order not found: {order_id}")


class GroupOrderNotFoundError(ValidationError):
    """Production group order with given ID was not found."""

    code: str = "GROUP_ORDER_NOT_FOUND"

    def __init__(self, group_order_id: str):
        self.group_order_id = group_order_id
        super().__init__(f"Production group order not found: {group_order_id}")


class ProductNotFoundError(ValidationError):
    """Product with given ID was not found."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class ShelfNotFoundError(ValidationError):
    """Shelf with given ID was not found."""

    code: str = "SHELF_NOT_FOUND"

    def __init__(self, shelf_id: str):
        self.shelf_id = shelf_id
        super().__init__(f"Shelf not found: {shelf_id}")


class InvalidTransitionError(ValidationError):
    """Requested lifecycle action is not allowed from the order's status."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, order_id: str, current_status: str, action: str):
        self.order_id = order_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} production order {order_id} "
            f"from status '{current_status}'"
        )


class GroupNotFoundError(ValidationError):
    """Draft holds no material group with the given key."""

    code: str = "GROUP_NOT_FOUND"

    def __init__(self, group_key: str):
        self.group_key = group_key
        super().__init__(f"Material group not found: {group_key}")


class DeliveryRowNotFoundError(ValidationError):
    """Material group holds no delivery row with the given id."""

    code: str = "DELIVERY_ROW_NOT_FOUND"

    def __init__(self, group_key: str, row_id: str):
        self.group_key = group_key
        self.row_id = row_id
        super().__init__(f"Delivery row {row_id} not found in group {group_key}")


class UnknownDeliveryFieldError(ValidationError):
    """Edit targets a field delivery rows do not have."""

    code: str = "UNKNOWN_DELIVERY_FIELD"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Unknown delivery row field: {field}")


class MissingSelectedProductError(ValidationError):
    """Material group has no selected product."""

    code: str = "MISSING_SELECTED_PRODUCT"

    def __init__(self, group_key: str):
        self.group_key = group_key
        super().__init__(f"Group {group_key} has no selected product")


class MissingSourceShelfError(ValidationError):
    """Material group has no source shelf."""

    code: str = "MISSING_SOURCE_SHELF"

    def __init__(self, group_key: str):
        self.group_key = group_key
        super().__init__(f"Group {group_key} has no source shelf")


class SourceShelfEmptyError(ValidationError):
    """Source shelf holds no stock of the group's product."""

    code: str = "SOURCE_SHELF_EMPTY"

    def __init__(self, group_key: str, product_id: str, shelf_id: str):
        self.group_key = group_key
        self.product_id = product_id
        self.shelf_id = shelf_id
        super().__init__(
            f"Shelf {shelf_id} holds no stock of product {product_id} "
            f"(group {group_key})"
        )


class MissingProductionShelfError(ValidationError):
    """Material group or order has no production shelf."""

    code: str = "MISSING_PRODUCTION_SHELF"

    def __init__(self, group_key: str):
        self.group_key = group_key
        super().__init__(f"Group {group_key} has no production shelf")


class InvalidDeliveredQuantityError(ValidationError):
    """Material group delivered total is not positive."""

    code: str = "INVALID_DELIVERED_QUANTITY"

    def __init__(self, group_key: str, delivered_qty: Decimal):
        self.group_key = group_key
        self.delivered_qty = delivered_qty
        super().__init__(
            f"Group {group_key} delivered quantity must be > 0, got {delivered_qty}"
        )


class NoConfirmedGroupsError(ValidationError):
    """start() was called with no confirmed material group."""

    code: str = "NO_CONFIRMED_GROUPS"

    def __init__(self, order_ids: list[str]):
        self.order_ids = order_ids
        super().__init__(
            f"No confirmed material group for orders {', '.join(order_ids)}"
        )


class StaleDraftError(ValidationError):
    """Draft references orders that are not part of the transition."""

    code: str = "STALE_DRAFT"

    def __init__(self, unexpected_order_ids: list[str]):
        self.unexpected_order_ids = unexpected_order_ids
        super().__init__(
            "Draft references orders outside this transition: "
            f"{', '.join(unexpected_order_ids)}"
        )


class MissingOutputProductError(ValidationError):
    """complete() was called without an output product."""

    code: str = "MISSING_OUTPUT_PRODUCT"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Output product is required to complete order {order_id}")


class MissingOutputShelfError(ValidationError):
    """complete() was called without an output shelf."""

    code: str = "MISSING_OUTPUT_SHELF"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Output shelf is required to complete order {order_id}")


class InvalidQuantityError(ValidationError):
    """Quantity must be strictly positive."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, order_id: str, quantity: Decimal):
        self.order_id = order_id
        self.quantity = quantity
        super().__init__(
            f"Quantity must be > 0 for order {order_id}, got {quantity}"
        )


class NoConsumptionMovesError(ValidationError):
    """No hand-off, stored, or derivable moves exist to consume at completion."""

    code: str = "NO_CONSUMPTION_MOVES"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"No consumption moves resolvable for order {order_id}")


class InvalidMoveError(ValidationError):
    """Inventory move is missing an id or has a negative quantity."""

    code: str = "INVALID_MOVE"

    def __init__(self, reason: str, product_id: str | None = None):
        self.reason = reason
        self.product_id = product_id
        super().__init__(f"Invalid inventory move: {reason}")


class QuantityOutOfRangeError(ValidationError):
    """Quantity has more integer digits than the storage columns hold."""

    code: str = "QUANTITY_OUT_OF_RANGE"

    def __init__(self, value: Decimal):
        self.value = value
        super().__init__(f"Quantity {value} is outside the storable range")


# Inventory exceptions


class InventoryError(ProductionKernelError):
    """Base exception for shelf stock errors."""

    code: str = "INVENTORY_ERROR"


class InsufficientStockError(InventoryError):
    """
    Decrement would leave shelf stock negative.

    Raised while planning a move batch, before any stock row is written.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: str,
        shelf_id: str,
        requested: Decimal,
        available: Decimal,
    ):
        self.product_id = product_id
        self.shelf_id = shelf_id
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        super().__init__(
            f"Insufficient stock of product {product_id} on shelf {shelf_id}: "
            f"requested {requested}, available {available}, "
            f"short by {self.shortfall}"
        )


# Allocation exceptions


class AllocationError(ProductionKernelError):
    """Base exception for allocation split errors."""

    code: str = "ALLOCATION_ERROR"


class InconsistentAllocationError(AllocationError):
    """
    Allocation split does not sum exactly to its input.

    Unreachable by construction; raised as an assertion on the result.
    """

    code: str = "INCONSISTENT_ALLOCATION"

    def __init__(self, scope: str, expected: Decimal, actual: Decimal):
        self.scope = scope
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Allocation for {scope} sums to {actual}, expected {expected}"
        )


# Persistence errors are the storage layer's own.

PersistenceError = SQLAlchemyError
