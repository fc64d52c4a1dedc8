"""
Product Creator
Materializes parent products and variants from transformed rows.

Standard mode resolves each variant's parent as rows arrive. Auto-generate
mode creates one parent per ParentGroup first, then links every variant to
its group's parent through the grouper's row index.
"""

import json
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, sessionmaker

from catalog_import.config.settings import ImportSettings, get_settings
from catalog_import.db.models import ParentProduct, ProductVariant
from catalog_import.errors import GroupResolutionError
from catalog_import.ingestion.attribute_extractor import AttributeExtractor
from catalog_import.ingestion.field_rules import slugify
from catalog_import.ingestion.grouping.parent_grouper import derive_parent_name
from catalog_import.ingestion.grouping.sku_patterns import SKU_PATTERNS
from catalog_import.models.imports import ImportResult, ParentGroup
from catalog_import.models.rows import TransformedRow

logger = logging.getLogger(__name__)

NUMERIC_PAIR = dict(SKU_PATTERNS)["numeric_pair"]

RowProgressCallback = Callable[[int], None]


def to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def split_image_urls(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    urls = [u.strip() for u in str(value).split(",") if u.strip()]
    return urls or None


def parse_attributes(value: Any) -> Optional[Dict[str, Any]]:
    if value is None or value == "":
        return None
    parsed = json.loads(value) if isinstance(value, str) else value
    return parsed if isinstance(parsed, dict) else {"values": parsed}


class ProductCreator:
    """
    Writes ParentProduct and ProductVariant rows.

    Every create_* method that takes rows runs inside one session transaction,
    so a chunk is committed or rolled back as a unit. Row-level problems are
    collected in the returned ImportResult; storage errors propagate.

    Args:
        session_factory: Session factory bound to the bulk connection
        settings: Import settings
        import_id: Progress id stamped on created entities
        on_row_progress: Called with the running variant count every
            settings.progress_every_rows rows
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        settings: Optional[ImportSettings] = None,
        import_id: Optional[str] = None,
        on_row_progress: Optional[RowProgressCallback] = None,
        extractor: Optional[AttributeExtractor] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.import_id = import_id
        self.on_row_progress = on_row_progress
        self.extractor = extractor or AttributeExtractor(self.settings)

        self.rows_processed = 0
        self._parents_by_name: Dict[str, int] = {}
        self._parents_by_sku_prefix: Dict[str, int] = {}

    # === STANDARD MODE ===

    def create_standard(self, rows: Sequence[TransformedRow]) -> ImportResult:
        """
        One chunk of standard-mode rows.

        Parent rows create a parent immediately. Variant rows look up their
        parent by parent_name, then by an NNN-NNN SKU sibling, then by the
        name left once variant words are stripped from their product name,
        and create one from their own data as a last resort.
        """
        result = ImportResult()

        with self.session_factory() as session, session.begin():
            variants: Dict[str, ProductVariant] = {}
            for row in rows:
                if row.get("is_parent"):
                    parent = self._create_parent(
                        session,
                        name=row.get("product_name"),
                        parent_sku=row.get("variant_sku") or None,
                        description=row.get("description"),
                        status=row.get("status"),
                        auto_generated=False,
                    )
                    self._parents_by_name[parent.name.lower()] = parent.id
                    result.products_created += 1
                    continue

                if not row.get("variant_sku"):
                    result.skipped_rows += 1
                    logger.debug(f"Row {row.row_number} has no SKU, skipped")
                    continue

                parent_id, created = self._find_parent_for_variant(session, row)
                if created:
                    result.products_created += 1

                self._upsert_variant(session, row, parent_id, variants, result)
                self._tick()

        return result

    def _find_parent_for_variant(self, session: Session, row: TransformedRow) -> Tuple[int, bool]:
        """(parent id, whether a parent was created)."""
        parent_name = row.get("parent_name")
        if parent_name:
            found = self._parent_id_by_name(session, parent_name)
            if found is not None:
                return found, False
            parent = self._create_parent(session, name=parent_name, auto_generated=True)
            self._parents_by_name[parent_name.lower()] = parent.id
            return parent.id, True

        sku = row.get("variant_sku")
        match = NUMERIC_PAIR.match(sku or "")
        if match:
            prefix = match.group(1)
            found = self._parent_id_by_sku_prefix(session, prefix)
            if found is not None:
                return found, False
            name = derive_parent_name([row.get("product_name")], conservative=True)
            parent = self._create_parent(
                session,
                name=name or f"Product {prefix}",
                parent_sku=prefix,
                description=f"Auto-generated parent for SKU group {prefix}",
                auto_generated=True,
            )
            self._parents_by_sku_prefix[prefix] = parent.id
            return parent.id, True

        name = derive_parent_name([row.get("product_name")])
        found = self._parent_id_by_name(session, name)
        if found is not None:
            return found, False

        parent = self._create_parent(
            session,
            name=name,
            description=row.get("description"),
            auto_generated=True,
        )
        self._parents_by_name[name.lower()] = parent.id
        return parent.id, True

    def _parent_id_by_name(self, session: Session, name: Optional[str]) -> Optional[int]:
        if not name:
            return None
        key = name.lower()
        if key not in self._parents_by_name:
            parent_id = (
                session.query(ParentProduct.id)
                .filter(func.lower(ParentProduct.name) == key)
                .order_by(ParentProduct.id)
                .limit(1)
                .scalar()
            )
            if parent_id is None:
                return None
            self._parents_by_name[key] = parent_id
        return self._parents_by_name[key]

    def _parent_id_by_sku_prefix(self, session: Session, prefix: str) -> Optional[int]:
        if prefix not in self._parents_by_sku_prefix:
            parent_id = (
                session.query(ProductVariant.parent_id)
                .filter(ProductVariant.sku.like(f"{prefix}-%"))
                .limit(1)
                .scalar()
            )
            if parent_id is None:
                return None
            self._parents_by_sku_prefix[prefix] = parent_id
        return self._parents_by_sku_prefix[prefix]

    # === AUTO-GENERATE MODE ===

    def create_group_parents(self, groups: Sequence[ParentGroup]) -> Dict[str, int]:
        """
        Phase 1: one parent per group, committed before any variant exists.

        Returns:
            Group key -> parent id
        """
        parent_ids: Dict[str, int] = {}
        with self.session_factory() as session, session.begin():
            for group in groups:
                attributes = group.inferred_parent_attributes
                parent = self._create_parent(
                    session,
                    name=attributes.get("name"),
                    parent_sku=attributes.get("parent_sku"),
                    description=attributes.get("description"),
                    auto_generated=True,
                )
                parent_ids[group.group_key] = parent.id

        logger.info(f"Created {len(parent_ids)} parent products from groups")
        return parent_ids

    def create_grouped_variants(
        self,
        positioned_rows: Sequence[Tuple[int, TransformedRow]],
        row_index: Dict[int, str],
        parent_ids: Dict[str, int],
    ) -> ImportResult:
        """
        Phase 2 for one chunk: re-resolve each row's group and create its variant.

        Args:
            positioned_rows: (position in the grouped row set, row) pairs
            row_index: Row position -> group key, from the grouping phase
            parent_ids: Group key -> parent id, from phase 1
        """
        result = ImportResult()

        with self.session_factory() as session, session.begin():
            variants: Dict[str, ProductVariant] = {}
            for position, row in positioned_rows:
                group_key = row_index.get(position)
                parent_id = parent_ids.get(group_key) if group_key else None
                if parent_id is None:
                    error = GroupResolutionError(row.row_number, group_key)
                    result.add_error(error.message, **error.details)
                    logger.warning(error.message)
                    continue

                if not row.get("variant_sku"):
                    result.skipped_rows += 1
                    continue

                self._upsert_variant(session, row, parent_id, variants, result)
                self._tick()

        return result

    # === SHARED ===

    def _create_parent(
        self,
        session: Session,
        name: Optional[str],
        parent_sku: Optional[str] = None,
        description: Optional[str] = None,
        status: Optional[str] = None,
        auto_generated: bool = False,
    ) -> ParentProduct:
        name = name or "Product Group"
        parent = ParentProduct(
            name=name,
            slug=slugify(name) or "product",
            parent_sku=parent_sku,
            description=description,
            status=status or "active",
            auto_generated=auto_generated,
            import_id=self.import_id,
        )
        session.add(parent)
        session.flush()
        logger.debug(f"Created parent {parent.id} '{name}' (auto={auto_generated})")
        return parent

    def _upsert_variant(
        self,
        session: Session,
        row: TransformedRow,
        parent_id: int,
        seen: Dict[str, ProductVariant],
        result: ImportResult,
    ) -> None:
        sku = row.get("variant_sku")
        variant = seen.get(sku)
        if variant is None:
            variant = session.query(ProductVariant).filter(ProductVariant.sku == sku).one_or_none()

        fields = self._variant_fields(row)
        if variant is None:
            variant = ProductVariant(sku=sku, parent_id=parent_id, **fields)
            session.add(variant)
            result.variants_created += 1
        else:
            variant.parent_id = parent_id
            for key, value in fields.items():
                setattr(variant, key, value)
            result.variants_updated += 1

        seen[sku] = variant

    def _variant_fields(self, row: TransformedRow) -> Dict[str, Any]:
        name = row.get("product_name")
        extracted = self.extractor.extract(name)

        return {
            "name": name,
            "color": row.get("variant_color") or extracted["color"],
            "size": row.get("variant_size") or None,
            "width": row.get("variant_width") or extracted["width"],
            "drop": row.get("variant_drop") or extracted["drop"],
            "retail_price": to_decimal(row.get("retail_price")),
            "cost_price": to_decimal(row.get("cost_price")),
            "stock_quantity": row.get("stock_quantity") or 0,
            "weight": to_decimal(row.get("weight")),
            "barcode": row.get("barcode") or None,
            "image_urls": split_image_urls(row.get("image_urls")),
            "attributes": parse_attributes(row.get("attributes")),
            "source_row": row.row_number,
            "import_id": self.import_id,
        }

    def _tick(self) -> None:
        self.rows_processed += 1
        every = self.settings.progress_every_rows
        if self.on_row_progress is not None and every and self.rows_processed % every == 0:
            self.on_row_progress(self.rows_processed)
