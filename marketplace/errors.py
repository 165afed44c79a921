# marketplace/errors.py
"""
Domain errors raised by services.

main.py turns them into JSON responses: {"detail": ...} with status_code.
"""

from fastapi import status


class AvailabilityError(Exception):
    """Base class for availability/booking domain errors."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidRequestError(AvailabilityError):
    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDeniedError(AvailabilityError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AvailabilityError):
    status_code = status.HTTP_404_NOT_FOUND


class SlotUnavailableError(AvailabilityError):
    """
    The chosen slot was taken or became invalid after it was offered.

    Expected in normal operation: clients re-query slots and retry.
    """

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, detail: str = "Slot no longer available"):
        super().__init__(detail)
