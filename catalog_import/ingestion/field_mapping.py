"""
Field Mapping Guesser
Advisory header -> canonical field suggestions for the column mapping step.
The pipeline itself never uses a guessed mapping unless the caller passes it in.
"""

import logging
import re
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

# Exact (normalized) header names
EXACT_MATCHES: Dict[str, str] = {
    "sku": "variant_sku",
    "variant sku": "variant_sku",
    "product name": "product_name",
    "name": "product_name",
    "title": "product_name",
    "parent name": "parent_name",
    "parent": "parent_name",
    "is parent": "is_parent",
    "description": "description",
    "colour": "variant_color",
    "color": "variant_color",
    "size": "variant_size",
    "width": "variant_width",
    "drop": "variant_drop",
    "rrp": "retail_price",
    "retail price": "retail_price",
    "cost price": "cost_price",
    "wholesale price": "cost_price",
    "price": "retail_price",
    "cost": "cost_price",
    "stock": "stock_quantity",
    "barcode": "barcode",
    "ean": "barcode",
    "weight": "weight",
    "status": "status",
}

# (keyword, field); longer keywords are more specific and win
KEYWORDS: List[tuple] = [
    ("parent name", "parent_name"),
    ("parent product", "parent_name"),
    ("is parent", "is_parent"),
    ("product type", "is_parent"),
    ("cost price", "cost_price"),
    ("wholesale", "cost_price"),
    ("cost", "cost_price"),
    ("retail", "retail_price"),
    ("price", "retail_price"),
    ("rrp", "retail_price"),
    ("quantity", "stock_quantity"),
    ("stock", "stock_quantity"),
    ("qty", "stock_quantity"),
    ("barcode", "barcode"),
    ("ean", "barcode"),
    ("upc", "barcode"),
    ("gtin", "barcode"),
    ("image", "image_urls"),
    ("description", "description"),
    ("colour", "variant_color"),
    ("color", "variant_color"),
    ("weight", "weight"),
    ("width", "variant_width"),
    ("drop", "variant_drop"),
    ("size", "variant_size"),
    ("sku", "variant_sku"),
    ("product", "product_name"),
    ("title", "product_name"),
    ("name", "product_name"),
    ("type", "is_parent"),
]


def normalize_header(header: str) -> str:
    text = re.sub(r"[_\-./]+", " ", str(header).strip().lower())
    return re.sub(r"\s+", " ", text)


def _match(header: str) -> Optional[tuple]:
    """(specificity, field) for one header; exact names outrank any keyword."""
    text = normalize_header(header)
    if not text:
        return None
    if text in EXACT_MATCHES:
        return 1000, EXACT_MATCHES[text]

    matches = [(len(keyword), field) for keyword, field in KEYWORDS if keyword in text]
    if not matches:
        return None
    return max(matches, key=lambda m: m[0])


def guess_field(header: str) -> Optional[str]:
    """Best single guess for one header, or None."""
    matched = _match(header)
    return matched[1] if matched else None


def guess_field_mapping(headers: List[str]) -> Dict[int, str]:
    """
    Suggest {column index: canonical field} for a header row.

    Exact header names are assigned first, then keyword matches from the most
    specific keyword down. A field is never assigned to two columns.
    """
    guesses = []
    for index, header in enumerate(headers):
        matched = _match(header)
        if matched is None:
            continue
        guesses.append((matched[0], index, matched[1]))

    mapping: Dict[int, str] = {}
    taken = set()
    for _, index, field in sorted(guesses, key=lambda g: (-g[0], g[1])):
        if field in taken:
            continue
        mapping[index] = field
        taken.add(field)

    logger.debug(f"Guessed mapping for {len(mapping)}/{len(headers)} columns")
    return dict(sorted(mapping.items()))
