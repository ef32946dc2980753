# tests/test_accounts.py
import pytest
from bson import ObjectId

from accounts import AddressBook, Favourites, missing_address_fields
from errors import DuplicateItem, InvalidAddress, NotFound
from schemas import Address

USER = {"X-User-Id": "user-1"}


def home(**overrides):
    data = dict(
        first_name="Ada",
        last_name="Lovelace",
        address_line1="1 Main St",
        city="Springfield",
        state="Illinois",
        postal_code="62701",
        country="United States",
    )
    data.update(overrides)
    return Address(**data)


def seed_product(db, name="Linen Dress"):
    result = db["product"].insert_one(
        {"name": name, "price": 50.0, "images": ["front.jpg", "back.jpg"], "category": "Dresses", "is_active": True}
    )
    return str(result.inserted_id)


# ------------------------- Addresses -------------------------
def test_required_address_fields_depend_on_country():
    assert missing_address_fields(home()) == []
    assert missing_address_fields(home(state=None, postal_code="")) == ["state", "postal_code"]
    assert missing_address_fields(home(country="Georgia", state=None, postal_code=None)) == []
    assert missing_address_fields(home(first_name=" ")) == ["first_name"]


def test_single_default_per_type(db):
    book = AddressBook(db, "user-1")
    first = book.add(home(is_default=True))
    second = book.add(home(address_line1="2 Elm St", is_default=True))
    book.add(home(address_line1="3 Oak St", type="billing", is_default=True))

    shipping = [a for a in book.list_addresses() if a["type"] == "shipping"]
    assert [str(a["_id"]) for a in shipping] == [second, first]
    assert [a["is_default"] for a in shipping] == [True, False]
    assert book.default("shipping").address_line1 == "2 Elm St"
    assert book.default("billing").address_line1 == "3 Oak St"


def test_update_default_clears_previous(db):
    book = AddressBook(db, "user-1")
    first = book.add(home(is_default=True))
    second = book.add(home(address_line1="2 Elm St"))
    book.update(second, home(address_line1="2 Elm St", is_default=True))

    assert book.get(first).is_default is False
    assert book.get(second).is_default is True


def test_invalid_address_is_not_stored(db):
    book = AddressBook(db, "user-1")
    with pytest.raises(InvalidAddress) as exc:
        book.add(home(postal_code=""))
    assert exc.value.fields == ["postal_code"]
    assert book.list_addresses() == []


def test_addresses_are_scoped_to_user(db):
    address_id = AddressBook(db, "user-1").add(home())
    other = AddressBook(db, "user-2")
    assert other.list_addresses() == []
    with pytest.raises(NotFound):
        other.get(address_id)
    with pytest.raises(NotFound):
        other.delete(address_id)
    with pytest.raises(NotFound):
        other.update(address_id, home())
    with pytest.raises(NotFound):
        other.delete("not-an-id")


# ------------------------- Favourites -------------------------
def test_favourites_add_list_remove(db):
    first = seed_product(db, "Linen Dress")
    second = seed_product(db, "Silk Top")
    favs = Favourites(db, "user-1")
    favs.add(first)
    favs.add(second)

    listed = favs.list_favourites()
    assert [f["product_name"] for f in listed] == ["Silk Top", "Linen Dress"]
    assert listed[0]["product_image"] == "front.jpg"

    with pytest.raises(DuplicateItem):
        favs.add(first)
    with pytest.raises(NotFound):
        favs.add(str(ObjectId()))

    favs.remove(first)
    assert [f["product_id"] for f in favs.list_favourites()] == [second]
    with pytest.raises(NotFound):
        favs.remove(first)
    assert Favourites(db, "user-2").list_favourites() == []


# ------------------------- API -------------------------
def test_account_routes_need_a_user(client):
    assert client.get("/api/addresses").status_code == 401
    assert client.get("/api/favourites").status_code == 401


def test_address_routes(client):
    payload = home(is_default=True).model_dump()
    res = client.post("/api/addresses", json=payload, headers=USER)
    assert res.status_code == 201
    address_id = res.json()["id"]

    bad = dict(payload, city="")
    assert client.post("/api/addresses", json=bad, headers=USER).status_code == 400

    listed = client.get("/api/addresses", headers=USER).json()
    assert [a["id"] for a in listed] == [address_id]

    res = client.put(f"/api/addresses/{address_id}", json=dict(payload, address_line2="Apt 2"), headers=USER)
    assert res.status_code == 200

    res = client.get(f"/api/addresses/{address_id}/shipping-info", params={"email": "ada@example.com"}, headers=USER)
    assert res.status_code == 200
    assert res.json()["address"] == "1 Main St, Apt 2"
    assert res.json()["email"] == "ada@example.com"

    assert client.delete(f"/api/addresses/{address_id}", headers={"X-User-Id": "user-2"}).status_code == 404
    assert client.delete(f"/api/addresses/{address_id}", headers=USER).status_code == 200
    assert client.put(f"/api/addresses/{address_id}", json=payload, headers=USER).status_code == 404


def test_favourite_routes(client, db):
    pid = seed_product(db)
    assert client.post("/api/favourites", json={"productId": pid}, headers=USER).status_code == 200
    assert client.post("/api/favourites", json={"productId": pid}, headers=USER).status_code == 400
    assert client.post("/api/favourites", json={"productId": str(ObjectId())}, headers=USER).status_code == 404

    favs = client.get("/api/favourites", headers=USER).json()
    assert [f["product_id"] for f in favs] == [pid]

    assert client.delete(f"/api/favourites/{pid}", headers=USER).status_code == 200
    assert client.delete(f"/api/favourites/{pid}", headers=USER).status_code == 404
