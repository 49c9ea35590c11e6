"""
Request dependencies shared by the v1 endpoints.

The ``Directory`` and the settings are created once in ``create_app``
and stored on ``app.state``; handlers receive them through these
dependencies instead of importing module‑level singletons.
"""

from typing import Optional

from fastapi import Request

from directory_service.app.services import Directory


def get_directory(request: Request) -> Directory:
    return request.app.state.directory


def get_timeout(request: Request) -> Optional[float]:
    """Deadline in seconds applied to each store operation of the request."""
    return request.app.state.settings.operation_timeout
