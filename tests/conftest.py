"""
Pytest configuration and shared fixtures
"""

import csv
import json
from pathlib import Path

import pytest
from openpyxl import Workbook
from sqlalchemy import create_engine

from catalog_import.config.settings import ImportSettings
from catalog_import.db.models import Base
from catalog_import.db.session import create_session_factory
from catalog_import.ingestion.progress import ProgressTracker

MB = 1024 * 1024


class InMemoryCache:
    """Dict-backed stand-in for RedisCache, JSON round-tripping like the real client."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    def get(self, key):
        data = self.store.get(key)
        return None if data is None else json.loads(data)

    def set(self, key, value, ttl=None):
        self.store[key] = json.dumps(value, default=str)
        self.ttls[key] = ttl
        return True

    def delete(self, key):
        return self.store.pop(key, None) is not None

    def exists(self, key):
        return key in self.store


@pytest.fixture
def settings(tmp_path):
    """Settings isolated to the test's temp directory."""
    return ImportSettings(
        database_url=f"sqlite:///{tmp_path / 'catalog.db'}",
        temp_data_dir=str(tmp_path / "temp_data"),
        memory_limit_mb=512,
        progress_every_rows=50,
    )


@pytest.fixture
def engine(settings):
    """File-backed SQLite engine with the schema created."""
    engine = create_engine(settings.database_url, connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def tracker(session_factory, cache, settings):
    return ProgressTracker(session_factory=session_factory, cache=cache, settings=settings)


@pytest.fixture
def steady_memory():
    """Memory probe well under the default 512 MB limit."""
    return lambda: 100 * MB


@pytest.fixture
def write_csv(tmp_path):
    """Write a CSV file and return its path."""

    def _write(headers, rows, name="catalog.csv"):
        path = tmp_path / name
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(headers)
            writer.writerows(rows)
        return str(path)

    return _write


@pytest.fixture
def write_xlsx(tmp_path):
    """Write a workbook from {sheet name: [header, *rows]} and return its path."""

    def _write(sheets, name="catalog.xlsx"):
        workbook = Workbook()
        workbook.remove(workbook.active)
        for sheet_name, rows in sheets.items():
            worksheet = workbook.create_sheet(sheet_name)
            for row in rows:
                worksheet.append(list(row))
        path = tmp_path / name
        workbook.save(path)
        return str(path)

    return _write


@pytest.fixture
def catalog_headers():
    return [
        "SKU", "Product Name", "Parent Name", "Is Parent", "Colour", "Size",
        "Retail Price", "Cost Price", "Stock", "Barcode",
    ]


@pytest.fixture
def catalog_mapping():
    return {
        0: "variant_sku",
        1: "product_name",
        2: "parent_name",
        3: "is_parent",
        4: "variant_color",
        5: "variant_size",
        6: "retail_price",
        7: "cost_price",
        8: "stock_quantity",
        9: "barcode",
    }
