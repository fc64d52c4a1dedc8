"""
Catalog Import
Bulk spreadsheet import pipeline for parent/variant product catalogs.
"""

__version__ = "0.1.0"
