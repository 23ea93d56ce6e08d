"""
shared/utils/errors.py
Error taxonomy shared by every router.

Each error is an HTTPException carrying a machine-readable `code`, so routes
raise them the same way they raise HTTPException and the app-level handler
renders them as {"detail": ..., "code": ...}.
"""

from typing import Optional

from fastapi import HTTPException, status


class AppError(HTTPException):
    """Base class. Subclasses pin the status code family."""

    default_status: int = status.HTTP_400_BAD_REQUEST
    default_code: str = "ERROR"

    def __init__(
        self,
        detail: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        headers: Optional[dict] = None,
    ):
        super().__init__(
            status_code=status_code or self.default_status,
            detail=detail,
            headers=headers,
        )
        self.code = code or self.default_code


class ValidationError(AppError):
    """Bad input caught before touching the store."""
    default_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_code = "VALIDATION_ERROR"


class AuthError(AppError):
    """Bad credentials, duplicate e-mail, invalid or revoked token."""
    default_status = status.HTTP_401_UNAUTHORIZED
    default_code = "AUTH_ERROR"


class BusinessRuleError(AppError):
    """A workflow rule refused the operation. No writes were made."""
    default_status = status.HTTP_400_BAD_REQUEST
    default_code = "BUSINESS_RULE"


class StoreError(AppError):
    """Database or blob storage unavailable."""
    default_status = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "STORE_UNAVAILABLE"


class ForbiddenError(AppError):
    """Authenticated, but the role gate refused the request."""
    default_status = status.HTTP_403_FORBIDDEN
    default_code = "FORBIDDEN"


class NotFoundError(AppError):
    default_status = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


# Login failures are collapsed into one friendly message
INVALID_CREDENTIALS_MESSAGE = "Email atau password salah"


def insufficient_balance(required) -> BusinessRuleError:
    return BusinessRuleError(
        f"Insufficient balance for commission of {required}",
        code="INSUFFICIENT_BALANCE",
    )
