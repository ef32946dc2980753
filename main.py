import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import List, Optional, Dict, Any
from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.concurrency import run_in_threadpool
from bson import ObjectId

import database
from database import create_document, get_documents
from accounts import AddressBook, Favourites
from cart import Cart
from catalog import SORT_OPTIONS, filter_products, search_query, sort_products
from checkout import CheckoutFlow, apply_saved_address
from errors import (
    DuplicateItem,
    InvalidAddress,
    InvalidSurface,
    InvalidTransition,
    NotFound,
    ProcessingTimedOut,
    SelectionSizeError,
)
from schemas import (
    Address,
    CalcItem,
    CalcRequest,
    FavouriteCreate,
    HomeDiscoverUpdate,
    InstagramPostCreate,
    InstagramPostPatch,
    InstagramReorder,
    Order,
    OrderRequest,
    Product,
    StoredProduct,
)
from selections import HomeDiscoverStore, InstagramStore

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

app = FastAPI(title="Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_db():
    if database.db is None:
        raise HTTPException(status_code=503, detail="Database not available")
    return database.db


def to_str_id(doc: dict) -> dict:
    if not doc:
        return doc
    d = dict(doc)
    if d.get("_id") is not None:
        d["id"] = str(d.pop("_id"))
    return d


def ensure_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid ID format")


@app.get("/")
def read_root():
    return {"message": "Storefront API running"}


@app.get("/api/health")
def health():
    return {"status": "OK", "message": "Server is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }

    db = database.db
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            try:
                response["collections"] = db.list_collection_names()[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"

    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"

    return response


# ------------------------- Products -------------------------
@app.get("/api/products")
def list_products(
    category: Optional[List[str]] = Query(None),
    color: Optional[List[str]] = Query(None),
    size: Optional[List[str]] = Query(None),
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    sort: str = "best-selling",
    db=Depends(get_db),
) -> List[Dict[str, Any]]:
    if sort not in SORT_OPTIONS:
        raise HTTPException(status_code=400, detail=f"sort must be one of: {', '.join(SORT_OPTIONS)}")

    products = [to_str_id(p) for p in get_documents(db, "product", {"is_active": True}, sort=[("created_at", -1)])]
    price_range = None
    if min_price is not None or max_price is not None:
        price_range = (min_price if min_price is not None else 0.0,
                       max_price if max_price is not None else float("inf"))
    products = filter_products(products, categories=category, colors=color, sizes=size, price_range=price_range)
    return sort_products(products, sort)


@app.get("/api/products/search/{term}")
def search_products(term: str, db=Depends(get_db)):
    docs = get_documents(db, "product", search_query(term), sort=[("created_at", -1)])
    return [to_str_id(d) for d in docs]


@app.get("/api/products/category/{category}")
def products_by_category(category: str, db=Depends(get_db)):
    docs = get_documents(db, "product", {"is_active": True, "category": category}, sort=[("created_at", -1)])
    return [to_str_id(d) for d in docs]


@app.get("/api/products/{product_id}")
def get_product(product_id: str, db=Depends(get_db)):
    _id = ensure_object_id(product_id)
    doc = db["product"].find_one({"_id": _id, "is_active": True})
    if not doc:
        raise HTTPException(status_code=404, detail="Product not found")
    return to_str_id(doc)


@app.post("/api/products", status_code=201)
def create_product(product: Product, db=Depends(get_db)):
    data = product.model_dump()
    data["is_active"] = True
    inserted_id = create_document(db, "product", data)
    logger.info("Product %s created", inserted_id)
    return {"id": inserted_id, "message": "Product created successfully"}


@app.put("/api/products/{product_id}")
def update_product(product_id: str, product: Product, db=Depends(get_db)):
    _id = ensure_object_id(product_id)
    data = product.model_dump(exclude={"is_active"})
    data["updated_at"] = datetime.now(timezone.utc)
    result = db["product"].update_one({"_id": _id}, {"$set": data})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"message": "Product updated successfully"}


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, db=Depends(get_db)):
    # Soft delete: the product stays referenced by orders and selections
    _id = ensure_object_id(product_id)
    result = db["product"].update_one(
        {"_id": _id},
        {"$set": {"is_active": False, "updated_at": datetime.now(timezone.utc)}},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"message": "Product deleted successfully"}


# ------------------------- Home Discover -------------------------
@app.get("/api/home-discover")
def get_home_discover(db=Depends(get_db)):
    return HomeDiscoverStore(db).list_selection()


@app.get("/api/home-discover/products")
def get_home_discover_products(db=Depends(get_db)):
    return [to_str_id(d) for d in HomeDiscoverStore(db).list_products()]


@app.put("/api/home-discover")
def update_home_discover(payload: HomeDiscoverUpdate, db=Depends(get_db)):
    try:
        HomeDiscoverStore(db).replace_selection(payload.product_ids)
    except SelectionSizeError as e:
        raise HTTPException(status_code=400, detail=f"You can select up to {e.limit} products for the Discover section")
    except NotFound as e:
        raise HTTPException(status_code=404, detail=f"Product not found: {e.identifier}")
    return {"success": True}


# ------------------------- Instagram -------------------------
@app.get("/api/instagram-posts")
def list_instagram_posts(db=Depends(get_db)):
    return InstagramStore(db).list_posts()


@app.post("/api/instagram-posts", status_code=201)
def add_instagram_post(payload: InstagramPostCreate, db=Depends(get_db)):
    if not payload.id or not payload.image or not payload.link:
        raise HTTPException(status_code=400, detail="id, image, and link are required")
    try:
        InstagramStore(db).add_post(payload.id, payload.image, payload.link)
    except DuplicateItem:
        raise HTTPException(status_code=409, detail="Post already exists")
    return {"success": True}


@app.put("/api/instagram-posts/reorder")
def reorder_instagram_posts(payload: InstagramReorder, db=Depends(get_db)):
    try:
        InstagramStore(db).replace_selection(payload.surface, payload.ids)
    except InvalidSurface as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SelectionSizeError as e:
        raise HTTPException(status_code=400, detail=f"Expected {e.limit} ids for {e.surface}")
    except NotFound as e:
        raise HTTPException(status_code=404, detail=f"Post not found: {e.identifier}")
    return {"success": True}


@app.patch("/api/instagram-posts/{post_id}")
def update_instagram_post(post_id: str, payload: InstagramPostPatch, db=Depends(get_db)):
    fields = {}
    for name in ("show_on_desktop", "show_on_mobile"):
        value = getattr(payload, name)
        if isinstance(value, bool):
            fields[name] = value
    for name in ("desktop_position", "mobile_position"):
        # An explicit null clears the position; an absent field leaves it alone
        if name in payload.model_fields_set:
            fields[name] = getattr(payload, name)
    if not fields:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    try:
        InstagramStore(db).update_post(post_id, **fields)
    except NotFound:
        raise HTTPException(status_code=404, detail="Post not found")
    except SelectionSizeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True}


@app.delete("/api/instagram-posts/{post_id}")
def delete_instagram_post(post_id: str, db=Depends(get_db)):
    try:
        InstagramStore(db).delete_post(post_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Post not found")
    return {"success": True}


# ------------------------- Accounts -------------------------
def get_current_user(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity as established by the upstream auth layer."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Access token required")
    return x_user_id


@app.get("/api/addresses")
def list_addresses(user_id: str = Depends(get_current_user), db=Depends(get_db)):
    return [to_str_id(d) for d in AddressBook(db, user_id).list_addresses()]


@app.post("/api/addresses", status_code=201)
def add_address(address: Address, user_id: str = Depends(get_current_user), db=Depends(get_db)):
    try:
        address_id = AddressBook(db, user_id).add(address)
    except InvalidAddress as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"id": address_id, "message": "Address added successfully"}


@app.put("/api/addresses/{address_id}")
def update_address(address_id: str, address: Address, user_id: str = Depends(get_current_user), db=Depends(get_db)):
    try:
        AddressBook(db, user_id).update(address_id, address)
    except InvalidAddress as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFound:
        raise HTTPException(status_code=404, detail="Address not found")
    return {"message": "Address updated successfully"}


@app.delete("/api/addresses/{address_id}")
def delete_address(address_id: str, user_id: str = Depends(get_current_user), db=Depends(get_db)):
    try:
        AddressBook(db, user_id).delete(address_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Address not found")
    return {"message": "Address deleted successfully"}


@app.get("/api/addresses/{address_id}/shipping-info")
def address_shipping_info(address_id: str, email: str = "", user_id: str = Depends(get_current_user), db=Depends(get_db)):
    """Checkout shipping form prefilled from a saved address."""
    try:
        address = AddressBook(db, user_id).get(address_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Address not found")
    return apply_saved_address(address, email=email)


@app.get("/api/favourites")
def list_favourites(user_id: str = Depends(get_current_user), db=Depends(get_db)):
    return Favourites(db, user_id).list_favourites()


@app.post("/api/favourites")
def add_favourite(payload: FavouriteCreate, user_id: str = Depends(get_current_user), db=Depends(get_db)):
    try:
        favourite_id = Favourites(db, user_id).add(payload.product_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Product not found")
    except DuplicateItem:
        raise HTTPException(status_code=400, detail="Product already in favourites")
    return {"success": True, "id": favourite_id}


@app.delete("/api/favourites/{product_id}")
def remove_favourite(product_id: str, user_id: str = Depends(get_current_user), db=Depends(get_db)):
    try:
        Favourites(db, user_id).remove(product_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Favourite not found")
    return {"success": True}


# ------------------------- Pricing / Cart Calc -------------------------
def build_cart(db, items: List[CalcItem]) -> Cart:
    """Rebuild a cart from live catalog prices."""
    cart = Cart()
    for ci in items:
        _id = ensure_object_id(ci.product_id)
        doc = db["product"].find_one({"_id": _id, "is_active": True})
        if not doc:
            raise HTTPException(status_code=404, detail=f"Product {ci.product_id} not found")
        product = StoredProduct.model_validate(to_str_id(doc))
        cart.add(product, ci.color, ci.size, ci.color_value, ci.quantity)
    return cart


@app.post("/api/calc")
def calculate_order(payload: CalcRequest, db=Depends(get_db)):
    cart = build_cart(db, payload.items)
    breakdown = []
    for item in cart.items():
        breakdown.append({
            "id": item.id,
            "product_id": item.product.id,
            "name": item.product.name,
            "price": item.product.price,
            "quantity": item.quantity,
            "color": item.selected_color,
            "size": item.selected_size,
            "line_total": round(float(item.line_total), 2),
        })
    return {"items": breakdown, "item_count": cart.item_count, **cart.totals().rounded().as_dict()}


# ------------------------- Orders -------------------------
@app.post("/api/orders", status_code=201)
async def create_order(payload: OrderRequest, db=Depends(get_db)):
    cart = await run_in_threadpool(build_cart, db, payload.items)
    if not cart.items():
        raise HTTPException(status_code=400, detail="Cart is empty")

    async def persist(order: Order) -> None:
        # Plain executor future: the checkout timeout can cancel the wait
        await asyncio.to_thread(create_document, db, "order", order)

    flow = CheckoutFlow(cart, recorder=persist)
    errors = flow.submit_shipping(payload.shipping)
    if errors:
        raise HTTPException(status_code=400, detail={"step": "shipping", "errors": errors})
    errors = flow.submit_payment(payload.payment)
    if errors:
        raise HTTPException(status_code=400, detail={"step": "payment", "errors": errors})

    try:
        order_id = await flow.place_order()
    except ProcessingTimedOut as e:
        raise HTTPException(status_code=504, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"order_id": order_id, "status": flow.order.status, "summary": flow.order.model_dump(include={"subtotal", "shipping", "tax", "total"})}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
