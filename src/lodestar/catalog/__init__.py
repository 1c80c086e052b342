"""Strategy catalog - scaling strategies, adjustments, early-warning rules, roles."""

from lodestar.catalog.loader import (
    AdjustmentCatalog,
    Catalog,
    EarlyWarningRule,
    load_catalog,
)

__all__ = [
    "AdjustmentCatalog",
    "Catalog",
    "EarlyWarningRule",
    "load_catalog",
]
