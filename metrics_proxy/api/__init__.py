"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from metrics_proxy.api import create_app

    uvicorn --factory metrics_proxy.api:create_app
"""

from metrics_proxy.api.app import create_app

__all__ = ["create_app"]
