"""Domain error codes.

Validation faults and security faults are raised as ``DomainError``
subclasses and mapped to HTTP responses by the server. Outcomes of a payment
confirmation are not exceptions, see ``confirmation.ConfirmStatus``.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    EMPTY_ORDER = "EMPTY_ORDER"
    INVALID_CATEGORY = "INVALID_CATEGORY"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_EMAIL = "INVALID_EMAIL"
    INSUFFICIENT_INVENTORY = "INSUFFICIENT_INVENTORY"
    ALLOCATION_CONFLICT = "ALLOCATION_CONFLICT"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    DUPLICATE_REGISTRATION = "DUPLICATE_REGISTRATION"
    ALREADY_VOTED = "ALREADY_VOTED"
    NOT_FOUND = "NOT_FOUND"


@dataclass(eq=False)
class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class EmptyOrder(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.EMPTY_ORDER,
            message="An order needs at least one line item",
        )


class InvalidCategory(DomainError):
    """Raised when a line item names a category that is not in the catalog."""

    def __init__(self, category: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_CATEGORY,
            message=f"Invalid category: {category}",
        )
        self.category = category


class InvalidQuantity(DomainError):
    """Raised when a line item quantity is not a positive integer."""

    def __init__(self, category: str, quantity) -> None:
        super().__init__(
            code=ErrorCode.INVALID_QUANTITY,
            message=f"Invalid quantity for {category}: {quantity}",
        )
        self.category = category
        self.quantity = quantity


class MissingField(DomainError):
    def __init__(self, field: str) -> None:
        super().__init__(
            code=ErrorCode.MISSING_FIELD,
            message=f"Missing required field: {field}",
        )
        self.field = field


class InvalidEmail(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_EMAIL,
            message="A valid email address is required",
        )


class InsufficientInventory(DomainError):
    """Raised when the pool holds fewer free codes than requested."""

    def __init__(self, requested: int, available: int) -> None:
        super().__init__(
            code=ErrorCode.INSUFFICIENT_INVENTORY,
            message=(
                f"Not enough tickets available. Only {available} tickets "
                "remaining."
            ),
        )
        self.requested = requested
        self.available = available


class AllocationConflict(DomainError):
    """Raised when reserved codes were assigned by someone else meanwhile."""

    def __init__(self, codes: list[int]) -> None:
        super().__init__(
            code=ErrorCode.ALLOCATION_CONFLICT,
            message="Ticket codes were taken by a concurrent allocation",
        )
        self.codes = codes


class InvalidTransition(DomainError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_TRANSITION,
            message=f"Cannot move order from {current} to {target}",
        )
        self.current = current
        self.target = target


class InvalidSignature(DomainError):
    """Raised when a webhook signature does not match its payload."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_SIGNATURE,
            message="Invalid signature",
        )


class InvalidPayload(DomainError):
    def __init__(self, message: str = "Invalid payload") -> None:
        super().__init__(code=ErrorCode.INVALID_PAYLOAD, message=message)


class DuplicateRegistration(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.DUPLICATE_REGISTRATION,
            message="Email already registered",
        )


class AlreadyVoted(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.ALREADY_VOTED,
            message="You have already voted for this award category",
        )


class NotFound(DomainError):
    def __init__(self, what: str) -> None:
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=f"{what} not found",
        )
        self.what = what
