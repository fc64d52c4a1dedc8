"""
Field Transformation Engine
Sanitizes, casts and validates mapped rows one at a time.

A bad field fails its row, never the run: the row is recorded as a
TransformationError and the engine moves on.
"""

import json
import logging
import re
import unicodedata
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
from pydantic import HttpUrl, TypeAdapter, ValidationError

from catalog_import.config.settings import ImportSettings, get_settings
from catalog_import.errors import TransformationException
from catalog_import.ingestion.field_rules import (
    DEFAULT_RULES,
    FieldRule,
    FieldType,
    ValidationContext,
    canonical_field,
)
from catalog_import.models.rows import TransformationError, TransformationResult, TransformedRow
from catalog_import.models.security import SecurityScanner

logger = logging.getLogger(__name__)


INVISIBLE_CHARACTERS = [
    "\u200b",  # Zero-width space
    "\u200c",  # Zero-width non-joiner
    "\u200d",  # Zero-width joiner
    "\u200e",  # Left-to-right mark
    "\u200f",  # Right-to-left mark
    "\ufeff",  # Byte order mark
    "\u00a0",  # Non-breaking space
]
CONTROL_CHARACTERS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
SCIENTIFIC_NOTATION = re.compile(r"^\d+\.?\d*E[+-]?\d+$", re.IGNORECASE)
SERIAL_DATE = re.compile(r"^\d+(\.\d+)?$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

TRUE_VALUES = {"1", "true", "yes", "on", "active"}

EXCEL_EPOCH_1900 = date(1899, 12, 30)
EXCEL_EPOCH_1904 = date(1904, 1, 1)

_http_url = TypeAdapter(HttpUrl)


def remove_invisible_characters(value: str) -> str:
    for char in INVISIBLE_CHARACTERS:
        value = value.replace(char, "")
    return CONTROL_CHARACTERS.sub("", value)


def normalize_whitespace(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def snapshot(values: Dict[str, Any], limit: int = 100) -> Dict[str, Any]:
    """Copy of a raw row safe for logs and error payloads."""
    safe = {}
    for key, value in values.items():
        if isinstance(value, str) and len(value) > limit:
            safe[key] = value[:limit] + "..."
        elif isinstance(value, (datetime, date)):
            safe[key] = value.isoformat()
        else:
            safe[key] = value
    return safe


class FieldTransformationEngine:
    """
    Per-field sanitize -> cast -> validate, then row-level cross-field rules.

    Args:
        rules: Field rules keyed by canonical name (defaults to DEFAULT_RULES)
        settings: Import settings
        context: Validation hooks supplied by the persistence layer
        scanner: Security scanner run before and after transformation
        date_1904: Use the 1904 spreadsheet epoch for serial dates
    """

    def __init__(
        self,
        rules: Optional[Dict[str, FieldRule]] = None,
        settings: Optional[ImportSettings] = None,
        context: Optional[ValidationContext] = None,
        scanner: Optional[type] = SecurityScanner,
        date_1904: bool = False,
    ):
        self.rules = rules if rules is not None else DEFAULT_RULES
        self.settings = settings or get_settings()
        self.context = context or ValidationContext()
        self.scanner = scanner
        self.date_1904 = date_1904

    def transform(self, raw_rows: Iterable[Dict[str, Any]], start_row: int = 2) -> TransformationResult:
        """
        Transform mapped rows.

        Args:
            raw_rows: Mapped rows ({field: raw value}); a "_row_number" key
                overrides the positional row number
            start_row: Row number of the first row when not supplied

        Returns:
            TransformationResult with transformed rows and row errors
        """
        result = TransformationResult()
        rows = list(raw_rows)
        logger.info(f"Starting data transformation: {len(rows)} rows, {len(self.rules)} rules")

        for offset, raw in enumerate(rows):
            values = dict(raw)
            row_number = values.pop("_row_number", start_row + offset)
            try:
                result.add_row(self.transform_row(values, row_number))
            except TransformationException as e:
                result.add_error(
                    TransformationError(
                        row_number=row_number,
                        field=e.field or None,
                        message=e.message,
                        raw_snapshot=snapshot(values),
                    )
                )
                logger.warning(f"Row {row_number} transformation failed: {e.message}")

        logger.info(
            f"Data transformation completed: {result.success_count} ok, {result.error_count} failed"
        )
        return result

    def transform_row(self, values: Dict[str, Any], row_number: int) -> TransformedRow:
        """Transform one mapped row or raise TransformationException."""
        if self.scanner is not None:
            threats = self.scanner.scan_row(values)
            if threats:
                raise TransformationException("", "; ".join(threats))

        transformed: Dict[str, Any] = {}
        for raw_field, value in values.items():
            name = canonical_field(raw_field)
            rule = self.rules.get(name)
            if rule is None:
                logger.debug(f"Unmapped field '{raw_field}' skipped (row {row_number})")
                continue

            try:
                clean = self.sanitize(value, rule)
                typed = self.cast(clean, rule, name)
                transformed[name] = self.validate(typed, rule, name)
            except TransformationException:
                raise
            except (ValueError, TypeError, ArithmeticError, ValidationError) as e:
                raise TransformationException(name, str(e)) from e

        self.validate_cross_field(transformed)
        return TransformedRow(row_number=row_number, values=transformed)

    # === SANITIZE ===

    def sanitize(self, value: Any, rule: FieldRule) -> Any:
        if value is None or (isinstance(value, float) and pd.isna(value)):
            return None
        if rule.type == FieldType.JSON and isinstance(value, (dict, list)):
            return value
        if isinstance(value, bool):
            return "1" if value else "0"

        text = value.isoformat() if isinstance(value, (datetime, date)) else str(value)
        text = remove_invisible_characters(text)
        text = normalize_whitespace(text)
        text = unicodedata.normalize("NFC", text)
        text = text.encode(self.settings.target_encoding, errors="ignore").decode(
            self.settings.target_encoding
        )

        for sanitizer in rule.sanitizer_functions:
            text = sanitizer(text)

        return text

    # === CAST ===

    def cast(self, value: Any, rule: FieldRule, name: str) -> Any:
        if value is None or value == "":
            return None if rule.nullable else self.default_value(rule.type)

        casters = {
            FieldType.STRING: self._cast_string,
            FieldType.TEXT: self._cast_string,
            FieldType.INTEGER: self._cast_integer,
            FieldType.DECIMAL: self._cast_decimal,
            FieldType.BOOLEAN: self._cast_boolean,
            FieldType.EMAIL: self._cast_email,
            FieldType.URL: self._cast_url,
            FieldType.DATE: self._cast_date,
            FieldType.JSON: self._cast_json,
        }
        return casters[rule.type](value, rule, name)

    @staticmethod
    def default_value(field_type: FieldType) -> Any:
        defaults = {
            FieldType.STRING: "",
            FieldType.TEXT: "",
            FieldType.EMAIL: "",
            FieldType.URL: "",
            FieldType.INTEGER: 0,
            FieldType.DECIMAL: "0.00",
            FieldType.BOOLEAN: False,
        }
        return defaults.get(field_type)

    def _cast_string(self, value: str, rule: FieldRule, name: str) -> str:
        if self.scanner is not None:
            value = self.scanner.sanitize_value(value)

        limit = rule.length_limit
        if len(value) > limit:
            logger.warning(f"Field '{name}' truncated from {len(value)} to {limit} characters")
            value = value[:limit]
        return value

    def _cast_integer(self, value: str, rule: FieldRule, name: str) -> int:
        text = value.replace(",", "").replace(" ", "")
        if SCIENTIFIC_NOTATION.match(text):
            text = format(Decimal(text), "f")

        try:
            number = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"Invalid integer value: {value}")

        int_value = int(number.quantize(Decimal(1), rounding=ROUND_HALF_UP))

        if rule.min is not None and int_value < rule.min:
            raise ValueError(f"Value {int_value} below minimum {rule.min}")
        if rule.max is not None and int_value > rule.max:
            raise ValueError(f"Value {int_value} above maximum {rule.max}")
        return int_value

    def _cast_decimal(self, value: str, rule: FieldRule, name: str) -> str:
        text = re.sub(r"[^0-9.eE+\-]", "", value)
        try:
            number = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"Invalid decimal value: {value}")
        if not number.is_finite():
            raise ValueError(f"Invalid decimal value: {value}")

        quantum = Decimal(1).scaleb(-rule.precision)
        return str(number.quantize(quantum, rounding=ROUND_HALF_UP))

    def _cast_boolean(self, value: str, rule: FieldRule, name: str) -> bool:
        text = value.strip().lower()
        if re.match(r"^1\.0+$", text):
            text = "1"
        return text in TRUE_VALUES

    def _cast_email(self, value: str, rule: FieldRule, name: str) -> str:
        email = re.sub(r"[^a-zA-Z0-9!#$%&'*+\-=?^_`{|}~@.\[\]]", "", value)
        if not EMAIL_PATTERN.match(email):
            raise ValueError(f"Invalid email format: {value}")
        return email.lower()

    def _cast_url(self, value: str, rule: FieldRule, name: str) -> str:
        url = value.strip()
        try:
            _http_url.validate_python(url)
        except ValidationError:
            raise ValueError(f"Invalid URL format: {value}")
        return url

    def _cast_date(self, value: str, rule: FieldRule, name: str) -> str:
        if SERIAL_DATE.match(value):
            serial = float(value)
            epoch = EXCEL_EPOCH_1904 if self.date_1904 else EXCEL_EPOCH_1900
            return (epoch + timedelta(days=int(serial))).strftime("%Y-%m-%d")

        try:
            parsed = pd.to_datetime(value, dayfirst=not re.match(r"^\d{4}", value))
        except (ValueError, OverflowError):
            raise ValueError(f"Invalid date format: {value}")
        if pd.isna(parsed):
            raise ValueError(f"Invalid date format: {value}")
        return parsed.strftime("%Y-%m-%d")

    def _cast_json(self, value: Any, rule: FieldRule, name: str) -> str:
        if isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False)
        try:
            json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON: {e.msg}")
        return value

    # === VALIDATE ===

    def validate(self, value: Any, rule: FieldRule, name: str) -> Any:
        if rule.required and (value is None or value == ""):
            raise ValueError(f"Field '{name}' is required")

        if value is None:
            return value

        for validator, params in rule.validator_functions:
            validator(value, params, name, self.context)
        return value

    def validate_cross_field(self, values: Dict[str, Any]) -> None:
        """Row-level business rules."""
        if "is_parent" in values and not values["is_parent"] and not values.get("variant_sku"):
            raise TransformationException("variant_sku", "Variant rows must have a SKU", wrap=False)

        retail = values.get("retail_price")
        cost = values.get("cost_price")
        if retail and cost and Decimal(retail) < Decimal(cost):
            raise TransformationException(
                "retail_price", "Retail price cannot be less than wholesale price", wrap=False
            )


def transform_rows(rows: List[Dict[str, Any]], settings: Optional[ImportSettings] = None) -> TransformationResult:
    """Transform mapped rows with the default rule set."""
    return FieldTransformationEngine(settings=settings).transform(rows)
