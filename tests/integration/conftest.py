"""
Integration test fixtures
"""

import pytest

from catalog_import.ingestion.pipeline import CatalogImportPipeline


@pytest.fixture
def pipeline(settings, engine, tracker, steady_memory):
    """Pipeline on the test database with an in-memory progress cache."""
    return CatalogImportPipeline(settings=settings, engine=engine, tracker=tracker, memory_probe=steady_memory)


@pytest.fixture
def large_catalog(write_csv, catalog_headers):
    """
    2,500-row standard catalog.

    Every 250th row is a parent row, rows with index % 97 == 1 carry an
    unparseable price, everything else is a variant of the preceding parent.
    """
    rows = []
    invalid_rows = []
    for i in range(2500):
        family = f"Blind Family {i // 250}"
        if i % 250 == 0:
            rows.append(["", family, "", "yes", "", "", "", "", "", ""])
            continue

        price = "abc" if i % 97 == 1 else "19.99"
        if price == "abc":
            invalid_rows.append(i + 2)
        rows.append(
            [f"V-{i:05d}", f"Roller Blind {i}", family, "no", "Red", "M", price, "5.00", "3", "5012345678900"]
        )

    path = write_csv(catalog_headers, rows, name="large_catalog.csv")
    return {"path": path, "parents": 10, "invalid_rows": invalid_rows}
