"""Request-scoped access to the service container."""

from __future__ import annotations

from fastapi import Request

from fieldwise.services.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services
