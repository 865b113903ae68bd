from typing import Optional, Dict, Any

class CardPayException(Exception):
    """Base exception for all card billing errors."""
    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

class ConfigurationError(CardPayException):
    """Raised when application configuration is invalid or missing."""
    def __init__(self, message: str, code: str = "config_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)

class BillingError(CardPayException):
    """Raised when a billing request is rejected before any charge is made."""
    def __init__(self, message: str, code: str = "billing_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)

class TenantInactiveError(BillingError):
    """Raised when a premium operation targets a tenant that is not billable."""
    def __init__(self, tenant_id: str):
        super().__init__(
            "This community is inactive (no server card configured). "
            "An administrator must configure the server card first.",
            code="tenant_inactive",
            details={"tenant_id": tenant_id},
        )

class InvalidPayerAccountError(BillingError):
    """Raised when a subscriber submits an empty or oversized card code."""
    def __init__(self, message: str = "A card code is required.", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="invalid_payer_account", details=details)

class InvalidPriceError(BillingError):
    """Raised when a tenant price is not a decimal with at most 8 fractional digits."""
    def __init__(self, price: str):
        super().__init__(
            "Invalid price format. Use up to 8 decimal places, e.g. 0.05000000",
            code="invalid_price",
            details={"price": price},
        )
