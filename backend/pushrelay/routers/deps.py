"""Shared router dependencies."""
from fastapi import Request

from ..services.factory import Services


def get_services(request: Request) -> Services:
    """Components built by the application lifespan."""
    return request.app.state.services
