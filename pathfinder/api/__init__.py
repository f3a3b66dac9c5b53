"""HTTP surface of Pathfinder Runner."""

from .server import create_app, create_run_router

__all__ = ["create_app", "create_run_router"]
