"""Exceptions raised while drafting handbooks."""
from __future__ import annotations

from fastapi import HTTPException, status


class HandbookError(Exception):
    """Base class for handbook failures carrying an HTTP status."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail={"error": self.message})


class HandbookValidationError(HandbookError):
    status_code = status.HTTP_400_BAD_REQUEST


class HandbookNotFoundError(HandbookError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, handbook_id: str) -> None:
        super().__init__("Handbook not found")
        self.handbook_id = handbook_id


class HandbookEntitlementError(HandbookError):
    """The requesting user's plan does not include AI drafting."""

    status_code = status.HTTP_403_FORBIDDEN


class HandbookGenerationError(HandbookError):
    """The language model failed or returned nothing usable."""
