# utils/errors.py
from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    DUPLICATE_INVOICE = "duplicate_invoice"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    NETWORK = "network"
    UNAUTHORIZED = "unauthorized"
    OTHER = "other"


# Substrings are matched against the lower-cased gateway message, first hit wins
_CATEGORY_MARKERS = (
    (ErrorCategory.DUPLICATE_INVOICE, ("invoice has already been taken", "duplicate", "already exist")),
    (ErrorCategory.INSUFFICIENT_BALANCE, ("insufficient", "balance")),
    (ErrorCategory.UNAUTHORIZED, ("unauthorized", "unauthenticated", "credentials")),
    (ErrorCategory.NETWORK, ("network", "timeout", "timed out", "cannot connect", "connection")),
)

CATEGORY_HINTS = {
    ErrorCategory.DUPLICATE_INVOICE: "This invoice was already sent to Steadfast.",
    ErrorCategory.INSUFFICIENT_BALANCE: "Not enough balance on the Steadfast account.",
    ErrorCategory.NETWORK: "Steadfast is unreachable, try again later.",
    ErrorCategory.UNAUTHORIZED: "Steadfast rejected the API credentials.",
    ErrorCategory.OTHER: "Steadfast request failed.",
}


def classify_gateway_error(message: Optional[str]) -> ErrorCategory:
    text = (message or "").lower()
    for category, markers in _CATEGORY_MARKERS:
        if any(marker in text for marker in markers):
            return category
    return ErrorCategory.OTHER


class OrderDeskError(Exception):
    """Base class for errors the bot reports back to staff."""


class ValidationError(OrderDeskError):
    """
    Raised before any network call. `errors` maps a field name
    (or an order id for batch checks) to a human readable reason.
    """

    def __init__(self, errors: dict[str, str], message: str = "Validation failed"):
        self.errors = dict(errors)
        super().__init__(message)

    def __str__(self) -> str:
        details = "; ".join(f"{k}: {v}" for k, v in self.errors.items())
        return f"{self.args[0]}: {details}" if details else self.args[0]


class SteadfastError(OrderDeskError):
    def __init__(self, message: str, http_status: Optional[int] = None,
                 category: Optional[ErrorCategory] = None):
        self.message = message
        self.http_status = http_status
        self.category = category or classify_gateway_error(message)
        super().__init__(message)

    @property
    def hint(self) -> str:
        return CATEGORY_HINTS[self.category]


class FraudCheckError(OrderDeskError):
    pass


class InvoiceError(OrderDeskError):
    pass


class PersistenceError(OrderDeskError):
    """
    The courier accepted the orders but the local store rejected the write.
    The two systems now disagree and need manual reconciliation.

    `accepted` holds (order, tracking_code) pairs as Steadfast returned them,
    `failed` maps the order ids Steadfast rejected in the same send to the reason.
    """

    def __init__(self, message: str, accepted: list, failed: Optional[dict] = None):
        self.accepted = list(accepted)
        self.failed = dict(failed or {})
        super().__init__(message)

    @property
    def orders(self) -> list:
        return [order for order, _ in self.accepted]
