class UserError(Exception):
    """Base class for errors whose message is safe to show to the client."""

    status_code = 400

    def __init__(self, message: str = "Bad request") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(UserError):
    status_code = 400


class AuthenticationError(UserError):
    status_code = 401

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message)


class AccessDeniedError(UserError):
    status_code = 403

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class NotFoundError(UserError):
    status_code = 404

    def __init__(self, message: str = "Not found") -> None:
        super().__init__(message)


class ShareExpiredError(NotFoundError):
    """Share grant is past its TTL. Reported to clients as a plain 404."""

    def __init__(self, message: str = "Share link has expired") -> None:
        super().__init__(message)


class PayloadTooLargeError(UserError):
    status_code = 413


class RateLimitError(UserError):
    status_code = 429

    def __init__(self, message: str = "Too many requests, please try again later.") -> None:
        super().__init__(message)
