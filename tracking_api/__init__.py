# path: tracking_api/__init__.py
"""FastAPI application for the BIM tracking service.

This package contains the REST and WebSocket endpoints, configuration, the
tracked-entity stores and services, and the beacon proximity locator. The
application is started via `main.py` when running in a Docker container or
local development.
"""

__all__ = ["create_app"]
