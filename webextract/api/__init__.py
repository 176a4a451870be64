"""HTTP API for the WebExtract service."""

from .endpoints import router, download_router, init_dependencies

__all__ = ["router", "download_router", "init_dependencies"]
