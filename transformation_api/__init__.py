"""HTTP surface for the transformation engine."""

from transformation_api.app import create_app

__all__ = ["create_app"]
