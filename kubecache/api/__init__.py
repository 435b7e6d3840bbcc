"""Status API for kubecache.

Exposes:
    create_app -- FastAPI application factory.
"""

from kubecache.api.app import create_app

__all__ = ["create_app"]
