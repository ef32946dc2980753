# tests/conftest.py
# Ensure project root (parent of tests) is on sys.path so the flat modules import.
import os
import sys
from pathlib import Path

import mongomock
import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

# Orders in API tests are accepted without the simulated gateway delay
os.environ.setdefault("PAYMENT_PROCESSING_DELAY", "0")

import selections  # noqa: E402
from schemas import StoredProduct  # noqa: E402


@pytest.fixture
def db():
    selections.clear_cache()
    return mongomock.MongoClient().storefront


@pytest.fixture
def client(db):
    from fastapi.testclient import TestClient
    from main import app, get_db

    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_product(product_id="P1", price=50.0, name="Linen Dress", **extra):
    data = {
        "id": product_id,
        "name": name,
        "price": price,
        "images": ["front.jpg", "back.jpg"],
        "colors": [{"name": "Black", "value": "#000000", "image_index": 0}],
        "sizes": ["S", "M", "L"],
        "category": "Dresses",
    }
    data.update(extra)
    return StoredProduct(**data)


@pytest.fixture
def product():
    return make_product()
