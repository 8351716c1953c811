"""
API routers package
"""
from letsmeet.api import (
    system,
    users,
    meetings,
    applications
)

__all__ = [
    "system",
    "users",
    "meetings",
    "applications"
]
