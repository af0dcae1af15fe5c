from __future__ import annotations

from app.core.errors import BusinessValidationError, ConflictError, InvalidStateError, NotFoundError
from services.orders.store import OrderNotFoundError

__all__ = [
    "OrderNotFoundError",
    "TaskNotFoundError",
    "TaskItemNotFoundError",
    "BinNotFoundError",
    "InvalidStateError",
    "NoAllocationsError",
    "DuplicateTaskError",
    "AlreadyCompletedError",
    "WrongTaskKindError",
    "NoPickedItemsError",
    "PendingItemsError",
    "BinAlreadyPackedError",
    "BinCancelledError",
    "BinNumberExhaustedError",
    "ItemNotInBinError",
    "UnverifiedItemsError",
    "BinOrderMismatchError",
    "InvalidQuantityError",
]


class TaskNotFoundError(NotFoundError):
    def __init__(self, identifier: str, resource: str = "Task"):
        super().__init__(resource, identifier, error_code="TASK_NOT_FOUND")


class TaskItemNotFoundError(NotFoundError):
    def __init__(self, task_item_id: str):
        super().__init__("Task item", task_item_id, error_code="TASK_ITEM_NOT_FOUND")


class BinNotFoundError(NotFoundError):
    def __init__(self, identifier: str):
        super().__init__("Pick bin", identifier, error_code="BIN_NOT_FOUND")


class NoAllocationsError(ConflictError):
    error_code = "NO_ALLOCATIONS"

    def __init__(self, order_number: str):
        super().__init__(f"Order {order_number} has no allocated inventory to pick")


class DuplicateTaskError(ConflictError):
    error_code = "DUPLICATE_TASK"

    def __init__(self, order_id: str, kind: str, task_number: str | None = None):
        self.kind = kind
        msg = f"An active {kind} task already exists for order {order_id}"
        if task_number:
            msg += f" ({task_number})"
        super().__init__(msg, details={"order_id": order_id, "kind": kind, "task_number": task_number})


class AlreadyCompletedError(ConflictError):
    error_code = "ALREADY_COMPLETED"


class WrongTaskKindError(ConflictError):
    error_code = "WRONG_TASK_KIND"

    def __init__(self, expected: str, actual: str):
        super().__init__(f"Expected a {expected} task, got {actual}", details={"expected": expected, "actual": actual})


class NoPickedItemsError(ConflictError):
    error_code = "NO_PICKED_ITEMS"


class PendingItemsError(ConflictError):
    error_code = "PENDING_ITEMS"

    def __init__(self, count: int):
        self.count = count
        super().__init__(f"{count} item(s) not yet verified", details={"pending": count})


class BinAlreadyPackedError(ConflictError):
    error_code = "BIN_ALREADY_PACKED"

    def __init__(self, bin_number: str):
        super().__init__(f"Bin {bin_number} has already been packed")


class BinCancelledError(ConflictError):
    error_code = "BIN_CANCELLED"

    def __init__(self, bin_number: str):
        super().__init__(f"Bin {bin_number} was cancelled")


class BinNumberExhaustedError(ConflictError):
    error_code = "BIN_NUMBER_CONFLICT"

    def __init__(self, attempts: int):
        super().__init__(f"Could not allocate a unique bin number after {attempts} attempts", details={"attempts": attempts})


class ItemNotInBinError(NotFoundError):
    def __init__(self, barcode: str):
        super().__init__("Item in bin", barcode, error_code="ITEM_NOT_IN_BIN")


class UnverifiedItemsError(ConflictError):
    error_code = "UNVERIFIED_ITEMS"

    def __init__(self, skus: list[str]):
        self.skus = skus
        super().__init__(f"Not all items verified: {', '.join(skus)}", details={"skus": skus})


class BinOrderMismatchError(ConflictError):
    error_code = "BIN_ORDER_MISMATCH"

    def __init__(self, bin_number: str, order_id: str):
        super().__init__(f"Bin {bin_number} does not belong to order {order_id}")


class InvalidQuantityError(BusinessValidationError):
    error_code = "INVALID_QUANTITY"
