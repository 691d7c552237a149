"""
Domain services for the storefront.
"""

from .catalog import CatalogService

__all__ = ["CatalogService"]
