"""
Academic Sessions Module

Resolves academic-session labels ("2025-26", "25-26") into April-to-March
date ranges used to scope listings and statistics.

API Endpoints:
- GET /sessions - Current session and selectable labels
"""

from .router import router
from .service import (
    InvalidSessionFormatError,
    SessionRange,
    get_available_sessions,
    resolve_session,
)

__all__ = [
    "router",
    "InvalidSessionFormatError",
    "SessionRange",
    "get_available_sessions",
    "resolve_session",
]
