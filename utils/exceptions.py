"""Custom exception classes used across the service.

Every error a handler can raise derives from :class:`ServiceError`, which
carries the HTTP status, a machine-readable ``error`` code and any extra
payload fields.  A single Flask error handler turns them into JSON.
"""


class ServiceError(RuntimeError):
    """Base class for domain-specific exceptions."""

    status_code = 500
    error = "internal_error"

    def __init__(self, message=None, status_code=None, error=None, **payload):
        self.message = message or (self.__doc__ or self.error).strip()
        super().__init__(self.message)
        if status_code is not None:
            self.status_code = status_code
        if error is not None:
            self.error = error
        self.payload = payload

    def to_dict(self):
        body = {'message': self.message, 'error': self.error}
        body.update(self.payload)
        return body


class ValidationError(ServiceError):
    """The given data was invalid."""

    status_code = 422
    error = "validation_error"


class AuthenticationError(ServiceError):
    """Unauthenticated."""

    status_code = 401
    error = "unauthenticated"


class TokenMissing(AuthenticationError):
    """Token not provided."""

    error = "token_missing"


class TokenExpired(AuthenticationError):
    """Token expired."""

    error = "token_expired"


class InvalidToken(AuthenticationError):
    """Invalid token."""

    error = "token_invalid"

    def __init__(self, message=None, reason="malformed", **payload):
        super().__init__(message, **payload)
        self.reason = reason


class TokenBlacklisted(AuthenticationError):
    """Token is blacklisted."""

    error = "token_blacklisted"


class AuthorizationError(ServiceError):
    """This action is unauthorized."""

    status_code = 403
    error = "forbidden"


class ConflictError(ServiceError):
    """Request conflicts with the current state."""

    status_code = 409
    error = "conflict"


class RateLimitError(ConflictError):
    """Too many pending requests."""

    status_code = 429
    error = "rate_limited"


class NotFoundError(ServiceError):
    """Resource not found."""

    status_code = 404
    error = "not_found"


class UpstreamError(ServiceError):
    """Raised when a downstream domain service is unreachable or answers non-2xx."""

    status_code = 502
    error = "upstream_error"


class InternalError(ServiceError):
    """Internal server error."""


class ConfigurationError(ServiceError):
    """Raised when required configuration is missing or invalid."""

    error = "configuration_error"


# Login state machine

class InvalidCredentials(ValidationError):
    """Invalid credentials"""

    error = "invalid_credentials"


class AccountLocked(ServiceError):
    """Account locked. Please contact an administrator."""

    status_code = 423
    error = "account_locked"


class AccountNotApproved(AuthorizationError):
    """Your account is in pending for approval. Please wait for confirmation or contact support for assistance."""

    error = "account_not_approved"


class AccountInactive(AuthorizationError):
    """Account inactive"""

    error = "account_inactive"


class TwoFactorSetupRequired(AuthorizationError):
    """Two-factor authentication is not configured."""

    error = "2fa_not_configured"


class InsufficientPrivileges(AuthorizationError):
    """You do not have permission to access the admin panel."""

    error = "unauthorized_access"


class InvalidTwoFactorCode(ValidationError):
    """Invalid 2FA code"""

    error = "invalid_2fa_code"


class OAuthError(ServiceError):
    """OAuth2 protocol error rendered as ``error`` / ``error_description``."""

    status_code = 400

    def __init__(self, error, description, status_code=None):
        super().__init__(description, status_code=status_code, error=error)
        self.description = description

    def to_dict(self):
        return {'error': self.error, 'error_description': self.description}
