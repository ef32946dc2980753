"""
Per-user saved addresses and favourite products.

Both stores are scoped to a user id supplied by the caller; identifying the
user is the API layer's job.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import DESCENDING

from checkout import UNITED_STATES
from database import create_document
from errors import DuplicateItem, InvalidAddress, NotFound
from schemas import Address

logger = logging.getLogger(__name__)


def _object_id(value: str) -> Optional[ObjectId]:
    return ObjectId(value) if ObjectId.is_valid(value) else None


def missing_address_fields(address: Address) -> List[str]:
    required = ["first_name", "last_name", "address_line1", "city", "country"]
    if address.country == UNITED_STATES:
        required += ["state", "postal_code"]
    return [name for name in required if not (getattr(address, name) or "").strip()]


class AddressBook:
    """A user's saved addresses. At most one default per address type."""

    def __init__(self, db, user_id: str):
        self.collection = db["address"]
        self.user_id = user_id

    def _check(self, address: Address) -> None:
        missing = missing_address_fields(address)
        if missing:
            raise InvalidAddress(missing)

    def _clear_default(self, address_type: str) -> None:
        self.collection.update_many(
            {"user_id": self.user_id, "type": address_type, "is_default": True},
            {"$set": {"is_default": False}},
        )

    def _filter(self, address_id: str) -> Dict[str, Any]:
        _id = _object_id(address_id)
        if _id is None:
            raise NotFound("address", address_id)
        return {"_id": _id, "user_id": self.user_id}

    def list_addresses(self) -> List[Dict[str, Any]]:
        """Defaults first, then newest first."""
        cursor = self.collection.find({"user_id": self.user_id}).sort(
            [("is_default", DESCENDING), ("created_at", DESCENDING), ("_id", DESCENDING)]
        )
        return list(cursor)

    def get(self, address_id: str) -> Address:
        doc = self.collection.find_one(self._filter(address_id))
        if doc is None:
            raise NotFound("address", address_id)
        return Address.model_validate(doc)

    def add(self, address: Address) -> str:
        self._check(address)
        if address.is_default:
            self._clear_default(address.type)
        data = address.model_dump()
        data["user_id"] = self.user_id
        address_id = create_document(self.collection.database, self.collection.name, data)
        logger.info("Address %s added", address_id)
        return address_id

    def update(self, address_id: str, address: Address) -> None:
        self._check(address)
        query = self._filter(address_id)
        if self.collection.find_one(query, {"_id": 1}) is None:
            raise NotFound("address", address_id)
        if address.is_default:
            self._clear_default(address.type)
        data = address.model_dump()
        data["updated_at"] = datetime.now(timezone.utc)
        self.collection.update_one(query, {"$set": data})

    def delete(self, address_id: str) -> None:
        result = self.collection.delete_one(self._filter(address_id))
        if result.deleted_count == 0:
            raise NotFound("address", address_id)

    def default(self, address_type: str = "shipping") -> Optional[Address]:
        doc = self.collection.find_one({"user_id": self.user_id, "type": address_type, "is_default": True})
        return Address.model_validate(doc) if doc else None


class Favourites:
    def __init__(self, db, user_id: str):
        self.collection = db["favourite"]
        self.products = db["product"]
        self.user_id = user_id

    def list_favourites(self) -> List[Dict[str, Any]]:
        """Favourite products, most recently added first."""
        favs = list(
            self.collection.find({"user_id": self.user_id}).sort([("created_at", DESCENDING), ("_id", DESCENDING)])
        )
        oids = [oid for oid in (_object_id(f["product_id"]) for f in favs) if oid is not None]
        products = {str(doc["_id"]): doc for doc in self.products.find({"_id": {"$in": oids}})}

        result = []
        for fav in favs:
            product = products.get(fav["product_id"])
            if product is None:
                continue
            images = product.get("images") or []
            result.append({
                "id": str(fav["_id"]),
                "product_id": fav["product_id"],
                "product_name": product.get("name"),
                "product_price": product.get("price"),
                "product_image": images[0] if images else None,
                "product_category": product.get("category"),
                "added_at": fav.get("created_at"),
            })
        return result

    def add(self, product_id: str) -> str:
        _id = _object_id(product_id)
        if _id is None or self.products.find_one({"_id": _id}, {"_id": 1}) is None:
            raise NotFound("product", product_id)
        if self.collection.find_one({"user_id": self.user_id, "product_id": product_id}, {"_id": 1}) is not None:
            raise DuplicateItem("favourite", product_id)
        return create_document(
            self.collection.database, self.collection.name, {"user_id": self.user_id, "product_id": product_id}
        )

    def remove(self, product_id: str) -> None:
        result = self.collection.delete_one({"user_id": self.user_id, "product_id": product_id})
        if result.deleted_count == 0:
            raise NotFound("favourite", product_id)
