from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    kind = "Internal"

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotFoundError(ServiceError):
    """Missing student, group, enrollment or charge."""

    kind = "NotFound"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class InvalidInputError(ServiceError):
    """Non-positive amount, discount out of range, malformed date or pattern."""

    kind = "InvalidInput"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class ConflictError(ServiceError):
    """Write conflict that survived every retry."""

    kind = "Conflict"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)
