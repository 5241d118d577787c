# Overview: Service error taxonomy shared by engines and routes.

from __future__ import annotations


class ServiceError(Exception):
    """
    Base for every failure a service reports to its caller.

    Carries a stable machine-readable code, a human-readable message and an
    optional details dict. Routes render these as JSON with http_status.
    """
    http_status = 400
    retryable = False

    def __init__(self, code: str, message: str, details: dict | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        if self.retryable:
            body["retryable"] = True
        return body


class NotFoundError(ServiceError):
    """Variant, sale, purchase, supplier or adjustment does not exist."""
    http_status = 404


class BusinessRuleError(ServiceError):
    """409-level business rule conflict (e.g. insufficient stock, already voided)."""
    http_status = 409


class ValidationError(ServiceError):
    """400-level input problem, caught before any mutation."""
    http_status = 400

    def __init__(self, message: str, details: dict | None = None, code: str = "VALIDATION_ERROR"):
        super().__init__(code, message, details)


class LockTimeoutError(ServiceError):
    """Locks could not be acquired within the bounded wait; safe to retry."""
    http_status = 503
    retryable = True

    def __init__(self, message: str = "Timed out waiting for a stock lock, please retry"):
        super().__init__("LOCK_TIMEOUT", message)


def insufficient_stock(sku: str, available: int, requested: int) -> BusinessRuleError:
    return BusinessRuleError(
        "INSUFFICIENT_STOCK",
        f"Insufficient stock for {sku}. Available: {available}, Requested: {requested}",
        details={"sku": sku, "available": available, "requested": requested},
    )
