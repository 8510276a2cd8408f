"""
Workshop simulation HTTP API.

REST endpoints for decisions, events and phase navigation, plus a
WebSocket stream of every published bus event.
"""

from .server import create_app, WorkshopAPI, ConnectionManager

__all__ = [
    "create_app",
    "WorkshopAPI",
    "ConnectionManager",
]
