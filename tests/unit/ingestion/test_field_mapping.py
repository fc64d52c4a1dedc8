"""
Header -> canonical field guesses
"""

from catalog_import.ingestion.field_mapping import guess_field, guess_field_mapping, normalize_header


def test_normalize_header():
    assert normalize_header("  Variant_SKU ") == "variant sku"
    assert normalize_header("Retail-Price/Unit") == "retail price unit"


def test_standard_catalog_headers(catalog_headers, catalog_mapping):
    assert guess_field_mapping(catalog_headers) == catalog_mapping


def test_keyword_guesses():
    assert guess_field("Wholesale Price (GBP)") == "cost_price"
    assert guess_field("Qty on hand") == "stock_quantity"
    assert guess_field("Main Image URL") == "image_urls"
    assert guess_field("Supplier ref") is None


def test_field_assigned_to_one_column_only():
    mapping = guess_field_mapping(["Price", "Trade Price", "Name"])
    assert mapping == {0: "retail_price", 2: "product_name"}


def test_blank_headers_are_skipped():
    assert guess_field_mapping(["", "SKU"]) == {1: "variant_sku"}
