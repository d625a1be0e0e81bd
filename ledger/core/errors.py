"""
Domain error taxonomy

Services raise these; a single exception handler in ``main.py`` turns them
into the standard error envelope.
"""

from typing import Any, Optional


class LedgerError(Exception):
    """Base exception for the registration ledger"""
    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None):
        self.message = message
        if status_code:
            self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class ValidationError(LedgerError):
    """Malformed or out-of-range input"""
    status_code = 400
    error_code = "validation_error"

    def __init__(self, message: str, errors: Optional[list] = None, status_code: Optional[int] = None):
        super().__init__(message, status_code, details=errors)
        self.errors = errors or []


class AuthError(LedgerError):
    """Bad admin token (401) or bad team password (403)"""
    status_code = 401
    error_code = "auth_error"


class CapacityError(LedgerError):
    """A participant ceiling would be exceeded"""
    status_code = 400
    error_code = "capacity_error"

    def __init__(self, message: str, remaining: int):
        super().__init__(message, details={"remaining": remaining})
        self.remaining = remaining


class DuplicateError(LedgerError):
    """Team name, person or archive year already exists"""
    status_code = 409
    error_code = "duplicate"


class NotFoundError(LedgerError):
    status_code = 404
    error_code = "not_found"

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConfigurationError(LedgerError):
    """Missing deployment credential. Retrying will not help."""
    status_code = 500
    error_code = "configuration_error"


class ConfirmationError(LedgerError):
    status_code = 400
    error_code = "confirmation_required"


class PaymentStateError(ValidationError):
    """Transition not allowed from the member's current payment state"""
    status_code = 409
    error_code = "invalid_payment_transition"


class NoDataError(ValidationError):
    error_code = "no_data"


class PaymentGatewayError(LedgerError):
    status_code = 502
    error_code = "gateway_error"
