"""Custom exceptions for the MartPOS backend."""


class MartPosError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, code='INTERNAL_ERROR', payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['success'] = False
        rv['error'] = self.message
        rv['code'] = self.code
        return rv


class BusinessLogicError(MartPosError):
    """Exception raised for invalid input or business rule violations."""
    def __init__(self, message, code='BAD_REQUEST', status_code=400, payload=None):
        super().__init__(message, status_code, code, payload)


class NotFoundError(MartPosError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", code='NOT_FOUND', payload=None):
        super().__init__(message, 404, code, payload)


class ConflictError(MartPosError):
    """Raised when a resource already exists."""
    def __init__(self, message, code='CONFLICT', payload=None):
        super().__init__(message, 409, code, payload)


class AuthenticationError(MartPosError):
    """Raised when the caller's identity cannot be established."""
    def __init__(self, message="Authentication required", code='AUTH_REQUIRED', payload=None):
        super().__init__(message, 401, code, payload)


class TokenExpiredError(AuthenticationError):
    """Signature is valid but the token is past its expiry; the client should refresh."""
    def __init__(self, message="Token has expired"):
        super().__init__(message, 'TOKEN_EXPIRED')


class TokenInvalidError(AuthenticationError):
    """Malformed, tampered, revoked or already consumed token; the client must log in again."""
    def __init__(self, message="Invalid token"):
        super().__init__(message, 'TOKEN_INVALID')


class InvalidCredentialsError(AuthenticationError):
    """
    Login failure.

    The message is the same whether the email is unknown or the password is
    wrong so that callers cannot enumerate registered accounts.
    """
    def __init__(self):
        super().__init__("Invalid email or password", 'INVALID_CREDENTIALS')


class AccessDeniedError(MartPosError):
    """Raised when an authenticated principal may not perform an action."""
    def __init__(self, message="Insufficient permissions", code='FORBIDDEN', payload=None):
        super().__init__(message, 403, code, payload)


class RateLimitError(MartPosError):
    """Raised when a client exceeds the allowed request rate."""
    def __init__(self, message="Too many requests, please try again later", retry_after=None):
        payload = {'retry_after': retry_after} if retry_after is not None else None
        super().__init__(message, 429, 'RATE_LIMIT_EXCEEDED', payload)
        self.retry_after = retry_after
