# Overview: Domain error types shared by the stock ledger, order and purchase services.

"""
Inventory error hierarchy.

Every error carries:
- a human-readable message naming the offending SKU / order / invoice
- a machine-readable `code` (stable, API-safe)
- a `details` dict with the quantity/state conflict

    InventoryError (base)
    +-- NotFoundError            unknown variant/order/invoice/status for the tenant
    +-- ValidationError          malformed input (bad quantity, duplicate receipt, ...)
    +-- InsufficientStockError   reservation exceeds availability
    +-- NegativeStockError       a decrease would cross zero (or drop below reserved)
    +-- InvalidTransitionError   status edge not in the transition table
    +-- InvalidStateError        structural edit on a locked order/invoice

Services raise these inside the caller's transaction; the transaction is
rolled back and nothing is retried.
"""


class InventoryError(Exception):
    """Base class for domain errors raised by the inventory core."""
    code = "INVENTORY_ERROR"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class NotFoundError(InventoryError):
    code = "NOT_FOUND"
    http_status = 404


class ValidationError(InventoryError):
    code = "VALIDATION_ERROR"


class InsufficientStockError(InventoryError):
    code = "INSUFFICIENT_STOCK"
    http_status = 409


class NegativeStockError(InventoryError):
    code = "NEGATIVE_STOCK"
    http_status = 409


class InvalidTransitionError(InventoryError):
    code = "INVALID_TRANSITION"
    http_status = 409


class InvalidStateError(InventoryError):
    code = "INVALID_STATE"
    http_status = 409
