"""Exception taxonomy for the Stockroom integration.

Defines a small hierarchy of exceptions used by the document store, the
inventory ledger, services and the WebSocket API. These extend Home
Assistant's HomeAssistantError to ensure consistent behavior when surfaced
through the platform.

All exceptions accept a human-readable message. ``str(exception)`` returns the
message unchanged.
"""

from __future__ import annotations

from homeassistant.exceptions import HomeAssistantError


class StockroomError(HomeAssistantError):
    """Base exception for Stockroom-related errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ValidationError(StockroomError):
    """Raised when input payloads fail validation or violate invariants."""


class InsufficientStockError(ValidationError):
    """Raised when an adjustment would drive stock negative and that is disallowed."""


class NotFoundError(StockroomError):
    """Raised by API layers when a requested document does not exist."""


class StorageError(StockroomError):
    """Raised when storage operations fail or data is corrupted."""
