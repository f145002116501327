# checkout/domain/errors.py


class CheckoutError(Exception):
    """Base for every error the checkout core reports to callers."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CheckoutError, ValueError):
    """Bad input shape or range. No state was changed."""


class QuantityExceeded(ValidationError):
    pass


class NotFoundError(CheckoutError, LookupError):
    pass


class ItemNotFound(NotFoundError):
    pass


class InsufficientStock(CheckoutError):
    """
    Raised when a reservation cannot be satisfied.
    `shortfalls` names every offending item: product_id, requested, available.
    """

    def __init__(self, message: str, shortfalls: list[dict] | None = None):
        super().__init__(message)
        self.shortfalls = shortfalls or []


class IllegalTransition(CheckoutError):
    pass


class GatewayError(CheckoutError):
    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class ConsistencyWarning(CheckoutError):
    """
    Non-fatal finding from the auditor. Never raised through a request path,
    it is collected and persisted for operator review.
    """

    def __init__(
        self,
        kind: str,
        message: str,
        product_id: str | None = None,
        order_id: str | None = None,
        expected: int | None = None,
        actual: int | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.product_id = product_id
        self.order_id = order_id
        self.expected = expected
        self.actual = actual


class ConflictError(CheckoutError):
    """A conditional update matched no row because another writer got there first."""
