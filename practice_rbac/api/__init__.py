"""
HTTP surface for the permission engine.
"""

from .server import create_app

__all__ = ["create_app"]
