"""
Error kinds for the itinerary-generation pipeline.

Every error is terminal for the request that raised it. Each carries:
- code: stable error category (e.g. 'MODEL_RESPONSE_UNPARSEABLE')
- message: human-readable description shown to the caller
- details: optional upstream body or debug information
- status_code: HTTP status used when rendered by the server
"""

from typing import Any


class ItineraryError(Exception):
    """Base class for all itinerary-generation failures."""

    code = "ITINERARY_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Any = None, status_code: int | None = None):
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        super().__init__(f"{self.code}: {message}")

    def to_response(self) -> dict[str, Any]:
        """Render as the failure body: {error, details?}."""
        body: dict[str, Any] = {"error": self.message}
        if self.details not in (None, {}, [], ""):
            body["details"] = self.details
        return body


class MissingCredential(ItineraryError):
    """No bearer token on the triggering request."""

    code = "MISSING_CREDENTIAL"
    status_code = 401


class UpstreamConfigMissing(ItineraryError):
    """The generation-service credential is not configured server-side."""

    code = "UPSTREAM_CONFIG_MISSING"
    status_code = 500


class InventoryFetchFailed(ItineraryError):
    """A part, machine, tooling, tool-type or material lookup failed."""

    code = "INVENTORY_FETCH_FAILED"
    status_code = 500


class ModelInvocationFailed(ItineraryError):
    """The generation service returned a non-success response."""

    code = "MODEL_INVOCATION_FAILED"
    status_code = 502


class ModelResponseUnparseable(ItineraryError):
    """The model text could not be parsed as JSON by any strategy."""

    code = "MODEL_RESPONSE_UNPARSEABLE"
    status_code = 502


class PersistenceFailed(ItineraryError):
    """Storing or reading back an itinerary failed."""

    code = "PERSISTENCE_FAILED"
    status_code = 500
