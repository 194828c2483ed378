"""Base exception for service-layer errors."""

from typing import Any


class ServiceError(Exception):
    """
    A business error with a machine-readable code and HTTP status.

    ``extra`` carries additional members for the problem response body.
    """

    title: str | None = None

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 400,
        **extra: Any,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.extra = extra
        super().__init__(message)
