"""Shared router dependencies: rate limiter and external collaborators."""

from fastapi import Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.directions import DirectionsClient
from app.core.geocoding import Geocoder
from app.core.route_composer import RouteComposer
from app.core.settings import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.ENABLE_RATE_LIMITING)


def get_directions_client(request: Request) -> DirectionsClient:
    client = getattr(request.app.state, "directions_client", None)
    if client is None:
        client = DirectionsClient()
        request.app.state.directions_client = client
    return client


def get_route_composer(client: DirectionsClient = Depends(get_directions_client)) -> RouteComposer:
    return RouteComposer(client)


def get_geocoder(request: Request) -> Geocoder:
    geocoder = getattr(request.app.state, "geocoder", None)
    if geocoder is None:
        geocoder = Geocoder()
        request.app.state.geocoder = geocoder
    return geocoder
