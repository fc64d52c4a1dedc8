"""
Field Rules
Declared transformation rules for canonical catalog fields, plus the registries
of named sanitizers and validators they refer to.

Names are resolved to functions when a FieldRule is constructed, so an unknown
sanitizer or validator fails at import time rather than mid-import.
"""

import re
import unicodedata
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple


class FieldType(str, Enum):
    """Declared cast targets."""

    STRING = "string"
    TEXT = "text"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    EMAIL = "email"
    URL = "url"
    DATE = "date"
    JSON = "json"


MAX_STRING_LENGTH = 255
MAX_TEXT_LENGTH = 65535
DECIMAL_PRECISION = 2


# === SANITIZERS ===


def sanitize_alphanumeric(value: str) -> str:
    return re.sub(r"[^a-zA-Z0-9\s]", "", value)


def sanitize_numeric_only(value: str) -> str:
    return re.sub(r"[^0-9.\-]", "", value)


def sanitize_alpha_only(value: str) -> str:
    return re.sub(r"[^a-zA-Z\s]", "", value)


def slugify(value: str) -> str:
    ascii_value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    ascii_value = re.sub(r"[^a-zA-Z0-9\s-]", "", ascii_value).strip().lower()
    return re.sub(r"[\s_-]+", "-", ascii_value).strip("-")


def sanitize_email(value: str) -> str:
    return re.sub(r"[^a-zA-Z0-9!#$%&'*+\-=?^_`{|}~@.\[\]]", "", value)


def sanitize_url(value: str) -> str:
    return re.sub(r"[^a-zA-Z0-9$\-_.+!*'(),{}|\\^~\[\]`<>#%\";/?:@&=]", "", value)


def sanitize_phone(value: str) -> str:
    return re.sub(r"[^0-9+\-()\s]", "", value)


def sanitize_sku(value: str) -> str:
    return re.sub(r"[^a-zA-Z0-9\-]", "", value).upper()


SANITIZERS: Dict[str, Callable[[str], str]] = {
    "alphanumeric": sanitize_alphanumeric,
    "numeric_only": sanitize_numeric_only,
    "alpha_only": sanitize_alpha_only,
    "slug": slugify,
    "email": sanitize_email,
    "url": sanitize_url,
    "phone": sanitize_phone,
    "sku": sanitize_sku,
}


# === VALIDATORS ===


@dataclass
class ValidationContext:
    """Hooks a persistence layer can supply to the validators."""

    sku_exists: Optional[Callable[[str], bool]] = None


def _as_number(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def validate_positive_number(value: Any, params: Any, field_name: str, context: ValidationContext) -> None:
    number = _as_number(value)
    if number is not None and number < 0:
        raise ValueError(f"Field '{field_name}' must be positive")


def validate_in_list(value: Any, params: Any, field_name: str, context: ValidationContext) -> None:
    allowed = list(params or [])
    if value not in allowed:
        raise ValueError(f"Field '{field_name}' must be one of: {', '.join(map(str, allowed))}")


def validate_unique_sku(value: Any, params: Any, field_name: str, context: ValidationContext) -> None:
    """Extension point; uniqueness lives in the persistence layer."""
    if context.sku_exists is not None and value and context.sku_exists(value):
        raise ValueError(f"SKU '{value}' already exists")


VALIDATORS: Dict[str, Callable[[Any, Any, str, ValidationContext], None]] = {
    "positive_number": validate_positive_number,
    "in_list": validate_in_list,
    "unique_sku": validate_unique_sku,
}


# === RULES ===


@dataclass(frozen=True)
class FieldRule:
    """
    Transformation rule for one canonical field.

    sanitizers run in declared order; validators map a registered name to its
    parameters (True when the validator takes none).
    """

    type: FieldType
    nullable: bool = True
    required: bool = False
    max_length: Optional[int] = None
    precision: int = DECIMAL_PRECISION
    min: Optional[int] = None
    max: Optional[int] = None
    sanitizers: Tuple[str, ...] = ()
    validators: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        for name in self.sanitizers:
            if name not in SANITIZERS:
                raise ValueError(f"Unknown sanitizer: {name}")
        for name in self.validators:
            if name not in VALIDATORS:
                raise ValueError(f"Unknown validator: {name}")
        object.__setattr__(self, "_sanitizer_fns", [SANITIZERS[n] for n in self.sanitizers])
        object.__setattr__(
            self, "_validator_fns", [(VALIDATORS[n], p) for n, p in self.validators.items()]
        )

    @property
    def sanitizer_functions(self) -> List[Callable[[str], str]]:
        return self._sanitizer_fns

    @property
    def validator_functions(self) -> List[Tuple[Callable, Any]]:
        return self._validator_fns

    @property
    def length_limit(self) -> int:
        if self.max_length is not None:
            return self.max_length
        return MAX_TEXT_LENGTH if self.type == FieldType.TEXT else MAX_STRING_LENGTH


DEFAULT_RULES: Dict[str, FieldRule] = {
    "variant_sku": FieldRule(
        type=FieldType.STRING, max_length=50, sanitizers=("sku",),
        validators={"unique_sku": True}, nullable=False,
    ),
    "product_name": FieldRule(type=FieldType.STRING, max_length=255, required=True, nullable=False),
    "parent_name": FieldRule(type=FieldType.STRING, max_length=255),
    "description": FieldRule(type=FieldType.TEXT, max_length=MAX_TEXT_LENGTH),
    "variant_color": FieldRule(type=FieldType.STRING, max_length=50, sanitizers=("alpha_only",)),
    "variant_size": FieldRule(type=FieldType.STRING, max_length=20, sanitizers=("alphanumeric",)),
    "variant_width": FieldRule(type=FieldType.STRING, max_length=20),
    "variant_drop": FieldRule(type=FieldType.STRING, max_length=20),
    "retail_price": FieldRule(
        type=FieldType.DECIMAL, precision=2, validators={"positive_number": True}, min=0,
    ),
    "cost_price": FieldRule(type=FieldType.DECIMAL, precision=2, validators={"positive_number": True}),
    "stock_quantity": FieldRule(
        type=FieldType.INTEGER, validators={"positive_number": True},
        min=0, max=999999, nullable=False,
    ),
    "weight": FieldRule(type=FieldType.DECIMAL, precision=3, validators={"positive_number": True}),
    "barcode": FieldRule(type=FieldType.STRING, max_length=20, sanitizers=("numeric_only",)),
    "is_parent": FieldRule(type=FieldType.BOOLEAN, nullable=False),
    "image_urls": FieldRule(type=FieldType.TEXT, sanitizers=("url",)),
    "status": FieldRule(
        type=FieldType.STRING, max_length=20, validators={"in_list": ["active", "inactive", "draft"]},
    ),
    "launch_date": FieldRule(type=FieldType.DATE),
    "attributes": FieldRule(type=FieldType.JSON),
    "product_url": FieldRule(type=FieldType.URL),
    "contact_email": FieldRule(type=FieldType.EMAIL),
}

# Accepted alternative names -> canonical field
FIELD_ALIASES: Dict[str, str] = {
    "sku": "variant_sku",
    "name": "product_name",
    "color": "variant_color",
    "colour": "variant_color",
    "size": "variant_size",
    "width": "variant_width",
    "drop": "variant_drop",
    "wholesale_price": "cost_price",
    "price": "retail_price",
}


def canonical_field(name: str) -> str:
    key = str(name).strip().lower()
    return FIELD_ALIASES.get(key, key)
