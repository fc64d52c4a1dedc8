"""
SQLAlchemy ORM Models
Database table definitions for imported catalog products and import progress.
"""

from __future__ import annotations

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, TIMESTAMP,
    ForeignKey, Numeric, Text, JSON, Index
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class ParentProduct(Base):
    """
    Parent product model.

    A product family. Variants link to it through parent_id, so a parent row
    must exist before any of its variants are inserted.
    """
    __tablename__ = 'parent_products'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True,
                  comment='Display name of the product family')
    slug = Column(String(255), nullable=False, index=True)
    parent_sku = Column(String(50), nullable=True, index=True,
                        comment='Shared SKU stem of all variants, null when variants disagree')
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, server_default='active')
    auto_generated = Column(Boolean, nullable=False, server_default='0',
                            comment='Whether the parent was inferred from variant rows')
    import_id = Column(String(36), nullable=True, index=True,
                       comment='Progress id of the import run that created this parent')

    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP, nullable=False, server_default=func.now(), onupdate=func.now())

    variants = relationship("ProductVariant", back_populates="parent", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<ParentProduct(id={self.id}, name={self.name}, parent_sku={self.parent_sku})>"


class ProductVariant(Base):
    """
    Product variant model.

    A concrete purchasable configuration (color, size, width/drop) of a parent.
    """
    __tablename__ = 'product_variants'

    id = Column(Integer, primary_key=True, autoincrement=True)
    parent_id = Column(Integer, ForeignKey('parent_products.id', ondelete='CASCADE'),
                       nullable=False, index=True)
    sku = Column(String(50), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    color = Column(String(50), nullable=True)
    size = Column(String(20), nullable=True)
    width = Column(String(20), nullable=True)
    drop = Column(String(20), nullable=True)

    retail_price = Column(Numeric(10, 2), nullable=True)
    cost_price = Column(Numeric(10, 2), nullable=True)
    stock_quantity = Column(Integer, nullable=False, server_default='0')
    weight = Column(Numeric(10, 3), nullable=True)
    barcode = Column(String(20), nullable=True)
    image_urls = Column(JSON, nullable=True, comment='List of image URLs')
    attributes = Column(JSON, nullable=True, comment='Free-form attributes from the sheet')

    source_row = Column(Integer, nullable=True, comment='Spreadsheet row the variant came from')
    import_id = Column(String(36), nullable=True, index=True)

    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP, nullable=False, server_default=func.now(), onupdate=func.now())

    parent = relationship("ParentProduct", back_populates="variants")

    __table_args__ = (
        Index('idx_product_variants_parent_sku', 'parent_id', 'sku'),
    )

    def __repr__(self):
        return f"<ProductVariant(id={self.id}, sku={self.sku}, parent_id={self.parent_id})>"


class ImportProgress(Base):
    """
    Import progress model.

    Durable half of the progress state machine. The Redis copy is read first,
    this row is the fallback once the cache entry expires.
    """
    __tablename__ = 'import_progress'

    id = Column(String(36), primary_key=True)
    status = Column(String(20), nullable=False, index=True, server_default='pending',
                    comment='pending, processing, completed, failed, cancelled')
    progress_percent = Column(Float, nullable=False, server_default='0')
    message = Column(Text, nullable=True)

    result_data = Column(JSON, nullable=True, comment='Inline result payload')
    result_key = Column(String(64), nullable=True,
                        comment='Temp storage key when the result was spilled to disk')
    error_message = Column(Text, nullable=True)

    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now(), index=True)
    started_at = Column(TIMESTAMP, nullable=True)
    completed_at = Column(TIMESTAMP, nullable=True)
    updated_at = Column(TIMESTAMP, nullable=False, server_default=func.now(), onupdate=func.now())

    @property
    def is_finished(self) -> bool:
        return self.status in ("completed", "failed", "cancelled")

    def __repr__(self):
        return f"<ImportProgress(id={self.id}, status={self.status}, progress={self.progress_percent})>"
