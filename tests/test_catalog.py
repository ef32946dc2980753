# tests/test_catalog.py
from datetime import datetime

from catalog import filter_products, search_query, sort_products


def catalog():
    return [
        {"name": "Silk Top", "price": 80.0, "category": "Tops", "sizes": ["S", "M"],
         "colors": [{"name": "Ivory"}], "created_at": datetime(2024, 1, 3)},
        {"name": "linen dress", "price": 120.0, "category": "Dresses", "sizes": ["M", "L"],
         "colors": [{"name": "Black"}, {"name": "Sand"}], "created_at": datetime(2024, 1, 1)},
        {"name": "Belt", "price": 25.0, "category": "Accessories", "sizes": [],
         "colors": [{"name": "black"}], "created_at": datetime(2024, 1, 2)},
    ]


def names(products):
    return [p["name"] for p in products]


def test_no_filters_keeps_everything():
    assert names(filter_products(catalog())) == ["Silk Top", "linen dress", "Belt"]


def test_filter_by_category_color_size_price():
    assert names(filter_products(catalog(), categories=["Tops", "Accessories"])) == ["Silk Top", "Belt"]
    assert names(filter_products(catalog(), colors=["BLACK"])) == ["linen dress", "Belt"]
    assert names(filter_products(catalog(), sizes=["L", "XL"])) == ["linen dress"]
    assert names(filter_products(catalog(), price_range=(25.0, 80.0))) == ["Silk Top", "Belt"]
    assert names(filter_products(catalog(), colors=["black"], price_range=(0, 50))) == ["Belt"]


def test_sort_orders():
    assert names(sort_products(catalog(), "price-low-high")) == ["Belt", "Silk Top", "linen dress"]
    assert names(sort_products(catalog(), "price-high-low")) == ["linen dress", "Silk Top", "Belt"]
    assert names(sort_products(catalog(), "name-a-z")) == ["Belt", "linen dress", "Silk Top"]
    assert names(sort_products(catalog(), "name-z-a")) == ["Silk Top", "linen dress", "Belt"]
    assert names(sort_products(catalog(), "newest")) == ["Silk Top", "Belt", "linen dress"]
    assert names(sort_products(catalog(), "best-selling")) == ["Silk Top", "linen dress", "Belt"]


def test_search_query_escapes_regex():
    query = search_query("a+b")
    assert query["is_active"] is True
    assert query["$or"][0]["name"]["$regex"] == r"a\+b"
