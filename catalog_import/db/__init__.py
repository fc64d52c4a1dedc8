"""
Database ORM Models
SQLAlchemy ORM models for database tables.
"""

from .models import Base, ParentProduct, ProductVariant, ImportProgress

__all__ = [
    "Base",
    "ParentProduct",
    "ProductVariant",
    "ImportProgress",
]
