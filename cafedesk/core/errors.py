from typing import Any


class CafeError(Exception):
    """Base for errors raised by services and converted at the request boundary."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, *, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationFailed(CafeError):
    status_code = 422
    code = "validation_error"


class NotFound(CafeError):
    status_code = 404
    code = "not_found"


class InsufficientStock(CafeError):
    status_code = 409
    code = "insufficient_stock"

    def __init__(self, message: str, *, product_id: str, available: Any, requested: Any):
        super().__init__(
            message,
            details=[
                {
                    "field": "items",
                    "message": f"available={available}, requested={requested}",
                    "type": "insufficient_stock",
                }
            ],
        )
        self.product_id = product_id


class InsufficientFunds(CafeError):
    status_code = 409
    code = "insufficient_funds"


class InvalidState(CafeError):
    status_code = 409
    code = "invalid_state"


class InvalidAmount(CafeError):
    status_code = 400
    code = "invalid_amount"


class DuplicateKey(CafeError):
    status_code = 409
    code = "duplicate_key"


class Unexpected(CafeError):
    status_code = 500
    code = "internal_error"
