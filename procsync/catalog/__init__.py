"""Live-database catalog introspection and DDL application."""

from __future__ import annotations

from procsync.catalog.base import CatalogInterface
from procsync.catalog.mysql_catalog import MySQLCatalog

__all__ = [
    "CatalogInterface",
    "MySQLCatalog",
]
