"""
API module for the schema designer - optional HTTP transport.
"""

from .http_app import create_app

__all__ = ["create_app"]
