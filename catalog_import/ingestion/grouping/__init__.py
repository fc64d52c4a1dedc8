"""
Parent Grouping Package
SKU-pattern and name-similarity grouping of variant rows.
"""

from .parent_grouper import ParentGrouper, derive_parent_name, group_rows
from .similarity import are_products_similar, remove_variant_info
from .sku_patterns import SkuPatternAnalyzer, extract_parent_key, shared_parent_sku

__all__ = [
    "ParentGrouper",
    "derive_parent_name",
    "group_rows",
    "are_products_similar",
    "remove_variant_info",
    "SkuPatternAnalyzer",
    "extract_parent_key",
    "shared_parent_sku",
]
