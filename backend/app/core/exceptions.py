"""
Error taxonomy for trip, itinerary, route and share-link operations.

Each error carries the HTTP status it maps to and a stable ``code`` so the
exception handlers in ``app.main`` can render a uniform body without the
services knowing anything about HTTP.
"""

from typing import Optional


class TripPlannerError(Exception):
    """Base exception for all domain errors."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, context: Optional[dict] = None):
        """
        Initialize exception with message and optional context.

        Args:
            message: Error message shown to the client
            context: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class UnauthenticatedError(TripPlannerError):
    """No principal, or the presented credentials could not be verified."""

    status_code = 401
    code = "unauthenticated"


class ForbiddenError(TripPlannerError):
    """Authenticated, but not the owner of the resource."""

    status_code = 403
    code = "forbidden"


class NotFoundError(TripPlannerError):
    """A trip, point, itinerary, item or share token does not resolve."""

    status_code = 404
    code = "not_found"


class ExpiredError(TripPlannerError):
    """A share link exists but its validity window has passed."""

    status_code = 410
    code = "expired"


class InvalidInputError(TripPlannerError):
    """A required field is missing or a value is not acceptable."""

    status_code = 400
    code = "invalid_input"


class InsufficientPointsError(TripPlannerError):
    """Fewer than two stops with usable coordinates for route composition."""

    status_code = 422
    code = "insufficient_points"


class UpstreamFailureError(TripPlannerError):
    """The route provider (or another collaborator) failed."""

    status_code = 502
    code = "upstream_failure"

    def __init__(self, message: str, provider_status: Optional[str] = None, context: Optional[dict] = None):
        super().__init__(message, context)
        self.provider_status = provider_status
        if provider_status:
            self.context.setdefault("provider_status", provider_status)


class RouteNotFoundError(UpstreamFailureError):
    """The provider answered ZERO_RESULTS: no route exists for these stops/mode."""

    code = "route_not_found"
