"""Custom application exceptions."""


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)


class RateLimitException(AppException):
    """Rate limit exceeded exception."""

    def __init__(self, message: str = "Rate limit exceeded"):
        """Initialize with 429 status code."""
        super().__init__(message, status_code=429)


# Notification engine errors


class ValidationError(AppException):
    """Malformed queue item. Skipped and logged, never retried."""

    def __init__(self, message: str = "Invalid queue item"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class ChannelError(AppException):
    """A channel send failed."""

    def __init__(self, message: str, status_code: int | None = None):
        """Keep the transport status code reported by the channel, if any."""
        super().__init__(message, status_code=502)
        self.channel_status_code = status_code


class TransientChannelError(ChannelError):
    """Timeout, rate limit or server error. Retryable."""


class PermanentChannelError(ChannelError):
    """Endpoint gone, not found or unauthorized. The target gets deactivated."""


class DuplicateSuppressed(AppException):
    """Intentional skip: the same time-set was already delivered recently."""

    def __init__(self, message: str = "Duplicate notification within 24 hours"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class MaxRetriesExceeded(AppException):
    """A retry entry used up its attempts."""

    def __init__(self, message: str = "Max retries exceeded"):
        """Initialize with 500 status code."""
        super().__init__(message, status_code=500)
