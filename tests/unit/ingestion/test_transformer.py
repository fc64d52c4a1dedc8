"""
Field transformation engine: sanitize, cast, validate and row-level rules.
"""

import pytest

from catalog_import.ingestion.field_rules import FieldRule, FieldType, ValidationContext
from catalog_import.ingestion.transformer import FieldTransformationEngine


@pytest.fixture
def transformer(settings):
    return FieldTransformationEngine(settings=settings)


def test_transform_is_idempotent(transformer):
    raw = {
        "variant_sku": " mtmsav225 ",
        "product_name": "Blackout  Roller Blind\u200b Red",
        "retail_price": "19.999",
        "stock_quantity": "12",
        "is_parent": "no",
    }

    first = transformer.transform([raw]).transformed_rows[0]
    second = transformer.transform([raw]).transformed_rows[0]

    assert first.values == second.values
    assert first.values["variant_sku"] == "MTMSAV225"
    assert first.values["product_name"] == "Blackout Roller Blind Red"


def test_decimal_rounds_half_up_without_drift(transformer):
    values = set()
    for _ in range(5):
        row = transformer.transform([{"product_name": "Blind", "retail_price": "19.999"}]).transformed_rows[0]
        values.add(row["retail_price"])

    assert values == {"20.00"}


def test_decimal_uses_declared_precision(transformer):
    row = transformer.transform([{"product_name": "Blind", "weight": "1.23456"}]).transformed_rows[0]
    assert row["weight"] == "1.235"


def test_decimal_strips_currency_symbols(transformer):
    row = transformer.transform([{"product_name": "Blind", "retail_price": "£1,299.5"}]).transformed_rows[0]
    assert row["retail_price"] == "1299.50"


def test_integer_expands_scientific_notation(transformer):
    row = transformer.transform([{"product_name": "Blind", "stock_quantity": "1.5E+3"}]).transformed_rows[0]
    assert row["stock_quantity"] == 1500


def test_integer_above_maximum_fails_row(transformer):
    result = transformer.transform([{"product_name": "Blind", "stock_quantity": "1000000"}])

    assert result.success_count == 0
    assert result.error_count == 1
    error = result.errors[0]
    assert error.field == "stock_quantity"
    assert error.message == (
        "Field 'stock_quantity' transformation failed: Value 1000000 above maximum 999999"
    )


def test_integer_below_minimum_fails_row(transformer):
    result = transformer.transform([{"product_name": "Blind", "stock_quantity": "-5"}])
    assert "below minimum 0" in result.errors[0].message


def test_non_nullable_integer_defaults_to_zero(transformer):
    row = transformer.transform([{"product_name": "Blind", "stock_quantity": ""}]).transformed_rows[0]
    assert row["stock_quantity"] == 0


@pytest.mark.parametrize(
    "raw, expected",
    [("Yes", True), ("TRUE", True), ("active", True), ("1.0", True), ("no", False), ("0", False)],
)
def test_boolean_cast(transformer, raw, expected):
    row = transformer.transform(
        [{"product_name": "Blind", "variant_sku": "A-1", "is_parent": raw}]
    ).transformed_rows[0]
    assert row["is_parent"] is expected


def test_serial_date_uses_1900_epoch(transformer):
    row = transformer.transform([{"product_name": "Blind", "launch_date": "45000"}]).transformed_rows[0]
    assert row["launch_date"] == "2023-03-15"


def test_serial_date_uses_1904_epoch_when_configured(settings):
    transformer = FieldTransformationEngine(settings=settings, date_1904=True)
    row = transformer.transform([{"product_name": "Blind", "launch_date": "0"}]).transformed_rows[0]
    assert row["launch_date"] == "1904-01-01"


@pytest.mark.parametrize("raw", ["2023-03-15", "15/03/2023", "15 March 2023"])
def test_textual_dates_normalize(transformer, raw):
    row = transformer.transform([{"product_name": "Blind", "launch_date": raw}]).transformed_rows[0]
    assert row["launch_date"] == "2023-03-15"


def test_invalid_email_fails_field(transformer):
    result = transformer.transform([{"product_name": "Blind", "contact_email": "not-an-email"}])
    assert result.errors[0].field == "contact_email"


def test_email_is_lowercased(transformer):
    row = transformer.transform(
        [{"product_name": "Blind", "contact_email": " Sales@Example.COM "}]
    ).transformed_rows[0]
    assert row["contact_email"] == "sales@example.com"


def test_invalid_url_fails_field(transformer):
    result = transformer.transform([{"product_name": "Blind", "product_url": "not a url"}])
    assert result.errors[0].field == "product_url"


def test_json_string_must_parse(transformer):
    ok = transformer.transform([{"product_name": "Blind", "attributes": '{"fabric": "linen"}'}])
    bad = transformer.transform([{"product_name": "Blind", "attributes": "{fabric"}])

    assert ok.transformed_rows[0]["attributes"] == '{"fabric": "linen"}'
    assert bad.errors[0].field == "attributes"
    assert "Invalid JSON" in bad.errors[0].message


def test_structured_json_is_reencoded(transformer):
    row = transformer.transform([{"product_name": "Blind", "attributes": {"a": 1}}]).transformed_rows[0]
    assert row["attributes"] == '{"a": 1}'


def test_string_truncated_to_max_length(transformer):
    row = transformer.transform([{"product_name": "Blind", "variant_color": "Red" * 30}]).transformed_rows[0]
    assert len(row["variant_color"]) == 50


def test_alpha_only_sanitizer(transformer):
    row = transformer.transform([{"product_name": "Blind", "variant_color": "Red-123!"}]).transformed_rows[0]
    assert row["variant_color"] == "Red"


def test_required_field_missing(transformer):
    result = transformer.transform([{"product_name": "", "variant_sku": "A-1"}])
    assert result.errors[0].message == (
        "Field 'product_name' transformation failed: Field 'product_name' is required"
    )


def test_variant_without_sku_fails_cross_field_rule(transformer):
    result = transformer.transform([{"product_name": "Blind", "is_parent": "0"}])

    assert result.error_count == 1
    assert result.errors[0].message == "Variant rows must have a SKU"
    assert result.errors[0].field == "variant_sku"


def test_parent_row_without_sku_is_valid(transformer):
    result = transformer.transform([{"product_name": "Blind", "is_parent": "1"}])
    assert result.success_count == 1


def test_retail_below_cost_fails_row(transformer):
    result = transformer.transform(
        [{"product_name": "Blind", "retail_price": "5.00", "cost_price": "10"}]
    )
    assert result.errors[0].message == "Retail price cannot be less than wholesale price"


def test_script_payload_is_rejected(transformer):
    result = transformer.transform([{"product_name": "<script>alert(1)</script>", "variant_sku": "A-1"}])

    assert result.error_count == 1
    assert result.errors[0].field is None
    assert "script tag detected" in result.errors[0].message


def test_remaining_markup_is_escaped(transformer):
    row = transformer.transform(
        [{"product_name": "Blind", "description": "Width <b>90</b> & drop"}]
    ).transformed_rows[0]
    assert row["description"] == "Width &lt;b&gt;90&lt;/b&gt; &amp; drop"


def test_unmapped_fields_are_skipped(transformer):
    row = transformer.transform([{"product_name": "Blind", "supplier_notes": "x"}]).transformed_rows[0]
    assert "supplier_notes" not in row


def test_aliases_resolve_to_canonical_fields(transformer):
    row = transformer.transform([{"name": "Blind", "sku": "ab-1", "colour": "Blue"}]).transformed_rows[0]
    assert row.values == {"product_name": "Blind", "variant_sku": "AB-1", "variant_color": "Blue"}


def test_bad_row_does_not_stop_the_batch(transformer):
    rows = [
        {"_row_number": 2, "product_name": "Blind A", "retail_price": "10"},
        {"_row_number": 3, "product_name": "Blind B", "retail_price": "abc"},
        {"_row_number": 4, "product_name": "Blind C", "retail_price": "12"},
    ]

    result = transformer.transform(rows)

    assert result.success_count == 2
    assert result.error_count == 1
    assert result.error_rows == [3]
    assert result.errors[0].raw_snapshot["retail_price"] == "abc"
    assert [r.row_number for r in result.transformed_rows] == [2, 4]


def test_unique_sku_hook_is_consulted(settings):
    transformer = FieldTransformationEngine(
        settings=settings, context=ValidationContext(sku_exists=lambda sku: sku == "TAKEN-1")
    )
    result = transformer.transform([{"product_name": "Blind", "variant_sku": "taken-1"}])
    assert "already exists" in result.errors[0].message


def test_unknown_sanitizer_fails_at_rule_declaration():
    with pytest.raises(ValueError, match="Unknown sanitizer"):
        FieldRule(type=FieldType.STRING, sanitizers=("rot13",))
