"""Request-scoped access to the notification core built at startup."""

from fastapi import Request

from src.core import NotificationCore


def get_core(request: Request) -> NotificationCore:
    return request.app.state.core
