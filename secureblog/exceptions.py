"""Error kinds raised by the SecureBlog core services."""


class BlogError(Exception):
    """Base class for errors whose message is safe to show to the caller."""

    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(BlogError):
    """Bad or missing input."""

    status_code = 400


class AuthError(BlogError):
    """Invalid credentials or an active lockout."""

    status_code = 401


class CsrfError(BlogError):
    """Missing, expired or mismatched CSRF token."""

    status_code = 403

    def __init__(self, message: str = "Invalid security token. Please refresh the page."):
        super().__init__(message)


class RateLimitError(BlogError):
    """Too many requests inside the rate-limit window."""

    status_code = 429


class SecurityViolation(BlogError):
    """Upload rejected by the scanning pipeline."""

    status_code = 400


class StorageError(BlogError):
    """File I/O failure. The message never carries filesystem detail."""

    status_code = 500

    def __init__(self, message: str = "An error occurred"):
        super().__init__(message)


class NotFoundError(BlogError):
    """Missing post, backup, user or image."""

    status_code = 404
