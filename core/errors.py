"""
core/errors.py -- Error taxonomy shared by the identity engine and the API.

Every failure the engine raises on purpose is an IdentityError subclass that
carries its HTTP status and a stable machine-readable code. api/main.py turns
any IdentityError into the standard error envelope; everything else falls
through to the catch-all 500 handler.

Authentication failures (InvalidCredentials, InvalidToken) deliberately fold
"no such account" into the same error so responses cannot be used to
enumerate accounts.

Layer rule: core/ is the kernel. No imports from api/, auth/, accounts/, or
services/.
"""


class IdentityError(Exception):
    """Base class for expected identity failures."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(IdentityError):
    status_code = 400
    code = "validation_error"
    default_message = "Request validation failed."


class UnknownField(ValidationError):
    """Raised when a caller addresses an account field that does not exist."""

    default_message = "Unknown account field."


class ImmutableField(ValidationError):
    """Raised when an update tries to write id, role, or createdAt."""

    default_message = "Field cannot be modified."


class EmailTaken(IdentityError):
    status_code = 400
    code = "email_taken"
    default_message = "Email already exists."


class InvalidCredentials(IdentityError):
    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid email or password."


class InvalidToken(IdentityError):
    status_code = 401
    code = "invalid_token"
    default_message = "Invalid or expired token."


class TokenExpiredOrInvalid(InvalidToken):
    """Raised by the token service when signature, expiry, or type checks fail."""


class InvalidLinkToken(InvalidToken):
    """Raised when an emailed verification or reset link cannot be used."""

    status_code = 400


class Forbidden(IdentityError):
    status_code = 403
    code = "forbidden"
    default_message = "You do not have permission to access this resource."


class NotFound(IdentityError):
    status_code = 404
    code = "not_found"
    default_message = "Account not found."


class InternalError(IdentityError):
    status_code = 500
    code = "internal_error"
