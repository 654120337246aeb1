# subtrack/errors.py
"""
Domain errors. Each carries the HTTP status it is rendered with by the
handlers registered in subtrack.main.
"""

from fastapi import status


class SubtrackError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class Unauthorized(SubtrackError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Unauthorized"


class Forbidden(SubtrackError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class NotFound(SubtrackError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class InvalidState(SubtrackError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Invalid state"


class ValidationError(SubtrackError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input"


class StoreUnavailable(SubtrackError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Database unavailable"
