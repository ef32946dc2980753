"""
Catalog queries: shop filters, sort orders and text search.

Products are handled as plain documents, the way the API returns them.
"""
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

Doc = Dict[str, Any]

SORT_OPTIONS = ("best-selling", "price-low-high", "price-high-low", "name-a-z", "name-z-a", "newest")


def filter_products(
    products: Iterable[Doc],
    categories: Optional[List[str]] = None,
    colors: Optional[List[str]] = None,
    sizes: Optional[List[str]] = None,
    price_range: Optional[Tuple[float, float]] = None,
) -> List[Doc]:
    wanted_colors = {c.lower() for c in colors or []}
    result = []
    for product in products:
        if categories and product.get("category") not in categories:
            continue
        if wanted_colors:
            names = {(c.get("name") or "").lower() for c in product.get("colors") or []}
            if not names & wanted_colors:
                continue
        if sizes and not set(sizes) & set(product.get("sizes") or []):
            continue
        if price_range is not None:
            low, high = price_range
            if not low <= float(product.get("price", 0)) <= high:
                continue
        result.append(product)
    return result


def sort_products(products: Iterable[Doc], sort_by: str = "best-selling") -> List[Doc]:
    products = list(products)
    if sort_by == "price-low-high":
        return sorted(products, key=lambda p: float(p.get("price", 0)))
    if sort_by == "price-high-low":
        return sorted(products, key=lambda p: float(p.get("price", 0)), reverse=True)
    if sort_by == "name-a-z":
        return sorted(products, key=lambda p: (p.get("name") or "").casefold())
    if sort_by == "name-z-a":
        return sorted(products, key=lambda p: (p.get("name") or "").casefold(), reverse=True)
    if sort_by == "newest":
        return sorted(products, key=_created_ts, reverse=True)
    # best-selling keeps catalog order
    return products


def search_query(term: str) -> Doc:
    """Case-insensitive match on name, description or category, active products only."""
    pattern = {"$regex": re.escape(term), "$options": "i"}
    return {
        "is_active": True,
        "$or": [{"name": pattern}, {"description": pattern}, {"category": pattern}],
    }


def _created_ts(product: Doc) -> float:
    created = product.get("created_at")
    return created.timestamp() if created is not None else 0.0
