"""Domain errors raised by the order, checkout, payment and refund services.

Every error carries a stable machine ``code`` and the HTTP status the API layer
answers with, so callers can tell a stock problem (adjust quantities and retry)
from a state problem (abandon) from a provider problem (retry later).
"""

from typing import Any, Dict, Optional


class MarketplaceError(Exception):
    code = "marketplace_error"
    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.details}


class NotFoundError(MarketplaceError):
    code = "not_found"
    status_code = 404


class ForbiddenError(MarketplaceError):
    code = "forbidden"
    status_code = 403


class ValidationError(MarketplaceError):
    code = "validation_error"
    status_code = 422


class InvalidStateError(MarketplaceError):
    code = "invalid_state"
    status_code = 409

    def __init__(
        self,
        resource: str,
        current: str,
        expected: str,
        message: Optional[str] = None,
    ):
        super().__init__(
            message
            or f"Cannot change {resource} in status {current}. Expected status: {expected}",
            resource=resource,
            current_status=current,
            expected_status=expected,
        )
        self.current = current
        self.expected = expected


class InsufficientStockError(MarketplaceError):
    code = "insufficient_stock"
    status_code = 409

    def __init__(self, item_id: int, title: str, available: int, requested: int):
        super().__init__(
            f'Insufficient stock for "{title}". Available: {available}, Requested: {requested}',
            item_id=item_id,
            available=available,
            requested=requested,
        )
        self.item_id = item_id
        self.available = available
        self.requested = requested


class ProviderError(MarketplaceError):
    code = "provider_error"
    status_code = 502
