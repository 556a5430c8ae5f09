"""REST API for kubedelta.

Exposes read-only cache queries, per-kind sync health and Prometheus
metrics. Built with FastAPI and served by uvicorn.
"""

from kubedelta.api.app import create_app

__all__ = ["create_app"]
