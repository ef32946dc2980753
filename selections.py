"""
Admin-curated ordered selections.

Home "Discover" picks (up to 4 products) and the Instagram featured posts
(3 on desktop, 4 on mobile) share one mechanism: each ordering lives in a
single document, so replacing it is one write and readers see either the old
list or the new one. A rejected replace writes nothing.
"""
import copy
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import DuplicateItem, InvalidSurface, NotFound, TooFewSelected, TooManySelected

logger = logging.getLogger(__name__)

HOME_DISCOVER_LIMIT = 4
SURFACE_LIMITS = {"desktop": 3, "mobile": 4}

_UNSET = object()

# Last successfully read copy of each ordering, keyed by (collection, document id)
_last_good: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}


def clear_cache() -> None:
    _last_good.clear()


def _now():
    return datetime.now(timezone.utc)


def _dedupe(item_ids: Iterable[str]) -> List[str]:
    # A repeated id keeps the position of its last occurrence
    last = {item_id: i for i, item_id in enumerate(item_ids)}
    return sorted(last, key=last.get)


def _position_key(entry: Dict[str, Any]):
    position = entry.get("position")
    return (position is None, position or 0)


class OrderedSelection:
    """One positioned list of item ids, stored as ``{_id: surface, entries: [...]}``.

    Each entry is ``{"item_id", "show", "position"}``. ``exact`` surfaces must
    be replaced with exactly ``limit`` items; others accept up to ``limit``.
    """

    def __init__(
        self,
        db,
        collection: str,
        surface: str,
        limit: int,
        exact: bool = False,
        exists: Optional[Callable[[List[str]], List[str]]] = None,
    ):
        self.collection = db[collection]
        self.surface = surface
        self.limit = limit
        self.exact = exact
        self.exists = exists
        self._cache_key = (self.collection.full_name, surface)

    def entries(self) -> List[Dict[str, Any]]:
        try:
            doc = self.collection.find_one({"_id": self.surface})
        except PyMongoError as e:
            if self._cache_key not in _last_good:
                raise
            logger.warning("Selection read failed for %s, serving cached copy: %s", self.surface, e)
            return copy.deepcopy(_last_good[self._cache_key])
        entries = list((doc or {}).get("entries", []))
        _last_good[self._cache_key] = copy.deepcopy(entries)
        return entries

    def list_selection(self) -> List[Dict[str, Any]]:
        shown = [e for e in self.entries() if e.get("show", True)]
        shown.sort(key=_position_key)
        return [{"item_id": e["item_id"], "position": e.get("position")} for e in shown]

    def _save(self, entries: List[Dict[str, Any]]) -> None:
        self.collection.update_one(
            {"_id": self.surface},
            {"$set": {"entries": entries, "updated_at": _now()}},
            upsert=True,
        )
        _last_good[self._cache_key] = copy.deepcopy(entries)

    def replace(self, item_ids: List[str]) -> List[Dict[str, Any]]:
        # Counts apply to the request as sent, repeats included
        if len(item_ids) > self.limit:
            raise TooManySelected(self.surface, len(item_ids), self.limit)
        if self.exact and len(item_ids) < self.limit:
            raise TooFewSelected(self.surface, len(item_ids), self.limit)
        ordered = _dedupe(item_ids)
        if self.exists is not None:
            missing = self.exists(ordered)
            if missing:
                raise NotFound("item", missing[0])

        self._save([{"item_id": item_id, "show": True, "position": i} for i, item_id in enumerate(ordered)])
        logger.info("Selection %s replaced with %d items", self.surface, len(ordered))
        return self.list_selection()

    def set_entry(self, item_id: str, show=_UNSET, position=_UNSET) -> Dict[str, Any]:
        """Change one item's flag and/or position. Other entries are left as they are."""
        entries = self.plan_entry(item_id, show=show, position=position)
        self._save(entries)
        return next(e for e in entries if e["item_id"] == item_id)

    def plan_entry(self, item_id: str, show=_UNSET, position=_UNSET) -> List[Dict[str, Any]]:
        """Entries as they would be after ``set_entry``, without writing them."""
        entries = self.entries()
        entry = next((e for e in entries if e["item_id"] == item_id), None)
        if entry is None:
            entry = {"item_id": item_id, "show": False, "position": None}
            entries.append(entry)

        if show is not _UNSET:
            if show and not entry["show"]:
                shown = sum(1 for e in entries if e["show"])
                if shown >= self.limit:
                    raise TooManySelected(self.surface, shown + 1, self.limit)
                if position is _UNSET and entry["position"] is None:
                    taken = [e["position"] for e in entries if e["show"] and e["position"] is not None]
                    entry["position"] = max(taken) + 1 if taken else 0
            if not show and position is _UNSET:
                entry["position"] = None
            entry["show"] = bool(show)
        if position is not _UNSET:
            entry["position"] = position
        return entries

    def drop(self, item_id: str) -> None:
        entries = self.entries()
        kept = [e for e in entries if e["item_id"] != item_id]
        if len(kept) != len(entries):
            self._save(kept)


# ------------------------- Home Discover -------------------------
def _object_id(value: str) -> Optional[ObjectId]:
    return ObjectId(value) if ObjectId.is_valid(value) else None


class HomeDiscoverStore:
    def __init__(self, db):
        self.products = db["product"]
        self.selection = OrderedSelection(
            db, "home_selection", "home", HOME_DISCOVER_LIMIT, exists=self._missing_products
        )

    def _missing_products(self, product_ids: List[str]) -> List[str]:
        oids = [oid for oid in (_object_id(pid) for pid in product_ids) if oid is not None]
        found = {str(doc["_id"]) for doc in self.products.find({"_id": {"$in": oids}}, {"_id": 1})}
        return [pid for pid in product_ids if pid not in found]

    def list_selection(self) -> List[Dict[str, Any]]:
        return [
            {"product_id": entry["item_id"], "position": entry["position"]}
            for entry in self.selection.list_selection()
        ]

    def replace_selection(self, product_ids: List[str]) -> List[Dict[str, Any]]:
        self.selection.replace(product_ids)
        return self.list_selection()

    def list_products(self) -> List[Dict[str, Any]]:
        """Active products in selection order."""
        ids = [entry["product_id"] for entry in self.list_selection()]
        oids = [oid for oid in (_object_id(pid) for pid in ids) if oid is not None]
        docs = {str(doc["_id"]): doc for doc in self.products.find({"_id": {"$in": oids}, "is_active": True})}
        return [docs[pid] for pid in ids if pid in docs]


# ------------------------- Instagram -------------------------
class InstagramStore:
    def __init__(self, db):
        self.posts = db["instagram_post"]
        self.surfaces = {
            surface: OrderedSelection(db, "instagram_surface", surface, limit, exact=True, exists=self._missing_posts)
            for surface, limit in SURFACE_LIMITS.items()
        }
        self._cache_key = (self.posts.full_name, "*")

    def _surface(self, surface: str) -> OrderedSelection:
        if surface not in self.surfaces:
            raise InvalidSurface(surface)
        return self.surfaces[surface]

    def _missing_posts(self, post_ids: List[str]) -> List[str]:
        found = {doc["_id"] for doc in self.posts.find({"_id": {"$in": list(post_ids)}}, {"_id": 1})}
        return [pid for pid in post_ids if pid not in found]

    def _require_post(self, post_id: str) -> None:
        if self.posts.find_one({"_id": post_id}, {"_id": 1}) is None:
            raise NotFound("post", post_id)

    def list_posts(self) -> List[Dict[str, Any]]:
        try:
            docs = list(self.posts.find().sort("position", 1))
        except PyMongoError as e:
            if self._cache_key not in _last_good:
                raise
            logger.warning("Instagram post read failed, serving cached copy: %s", e)
            docs = copy.deepcopy(_last_good[self._cache_key])
        else:
            _last_good[self._cache_key] = copy.deepcopy(docs)

        flags = {surface: {e["item_id"]: e for e in sel.entries()} for surface, sel in self.surfaces.items()}
        result = []
        for doc in docs:
            post = {"id": doc["_id"], "image": doc["image"], "link": doc["link"], "position": doc["position"]}
            for surface in SURFACE_LIMITS:
                entry = flags[surface].get(doc["_id"]) or {}
                post[f"show_on_{surface}"] = bool(entry.get("show", False))
                post[f"{surface}_position"] = entry.get("position")
            result.append(post)
        return result

    def featured(self, surface: str) -> List[Dict[str, Any]]:
        """Posts shown on ``surface``, in that surface's order."""
        self._surface(surface)
        key = f"{surface}_position"
        posts = [p for p in self.list_posts() if p[f"show_on_{surface}"]]
        return sorted(posts, key=lambda p: (p[key] is None, p[key] or 0))

    def add_post(self, post_id: str, image: str, link: str) -> Dict[str, Any]:
        if self.posts.find_one({"_id": post_id}, {"_id": 1}) is not None:
            raise DuplicateItem("post", post_id)
        last = self.posts.find_one({}, sort=[("position", -1)])
        position = last["position"] + 1 if last else 0
        try:
            self.posts.insert_one(
                {"_id": post_id, "image": image, "link": link, "position": position, "created_at": _now()}
            )
        except DuplicateKeyError:
            raise DuplicateItem("post", post_id)
        logger.info("Instagram post %s added at position %d", post_id, position)
        return {"id": post_id, "image": image, "link": link, "position": position}

    def replace_selection(self, surface: str, post_ids: List[str]) -> List[Dict[str, Any]]:
        return self._surface(surface).replace(post_ids)

    def toggle_membership(self, post_id: str, surface: str, enabled: bool) -> Dict[str, Any]:
        selection = self._surface(surface)
        self._require_post(post_id)
        return selection.set_entry(post_id, show=enabled)

    def update_post(self, post_id: str, **fields) -> None:
        """Partial update of ``show_on_<surface>`` / ``<surface>_position`` fields."""
        self._require_post(post_id)
        planned = []
        for surface, selection in self.surfaces.items():
            show = fields.get(f"show_on_{surface}", _UNSET)
            position = fields.get(f"{surface}_position", _UNSET)
            if show is _UNSET and position is _UNSET:
                continue
            planned.append((selection, selection.plan_entry(post_id, show=show, position=position)))
        # Every surface change is checked before any of them is written
        for selection, entries in planned:
            selection._save(entries)

    def delete_post(self, post_id: str) -> None:
        result = self.posts.delete_one({"_id": post_id})
        if result.deleted_count == 0:
            raise NotFound("post", post_id)
        for selection in self.surfaces.values():
            selection.drop(post_id)
        logger.info("Instagram post %s deleted", post_id)
