# tests/test_cart.py
from decimal import Decimal
import pytest

from cart import Cart, load_cart, save_cart, variant_key
from errors import InvalidQuantity
from conftest import make_product


def test_variant_key_is_deterministic():
    assert variant_key("P1", "Black", "M") == variant_key("P1", "Black", "M")
    assert variant_key("P1", "Black", "M") != variant_key("P1", "Black", "L")
    assert variant_key("P1", "Black", "M") != variant_key("P2", "Black", "M")
    assert variant_key("P1", "Black", "M") == "P1-Black-M"


def test_add_same_variant_merges(product):
    cart = Cart()
    cart.add(product, "Black", "M", "#000000", 1)
    cart.add(product, "Black", "M", "#000000", 2)

    items = cart.items()
    assert len(items) == 1
    assert items[0].quantity == 3
    assert items[0].id == "P1-Black-M"


def test_add_different_variants_keeps_insertion_order(product):
    cart = Cart()
    cart.add(product, "Black", "M")
    cart.add(product, "Black", "S")
    cart.add(make_product("P2", price=20.0), "Black", "M")
    cart.add(product, "Black", "M")

    assert [i.id for i in cart.items()] == ["P1-Black-M", "P1-Black-S", "P2-Black-M"]
    assert cart.item_count == 4


def test_add_opens_cart(product):
    cart = Cart()
    assert cart.is_open is False
    cart.add(product, "Black", "M")
    assert cart.is_open is True
    cart.toggle()
    assert cart.is_open is False


@pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", True])
def test_add_rejects_bad_quantity(product, quantity):
    cart = Cart()
    with pytest.raises(InvalidQuantity):
        cart.add(product, "Black", "M", quantity=quantity)
    assert cart.items() == []


@pytest.mark.parametrize("quantity", [0, -3])
def test_update_quantity_zero_or_negative_removes(product, quantity):
    cart = Cart()
    cart.add(product, "Black", "M")
    cart.update_quantity("P1-Black-M", quantity)
    assert cart.items() == []


def test_update_quantity_sets_value(product):
    cart = Cart()
    cart.add(product, "Black", "M")
    cart.update_quantity("P1-Black-M", 5)
    assert cart.items()[0].quantity == 5


def test_update_quantity_rejects_fractions(product):
    cart = Cart()
    cart.add(product, "Black", "M", quantity=2)
    with pytest.raises(InvalidQuantity):
        cart.update_quantity("P1-Black-M", 2.5)
    assert cart.items()[0].quantity == 2


def test_update_unknown_item_is_noop(product):
    cart = Cart()
    cart.add(product, "Black", "M")
    cart.update_quantity("missing", 4)
    assert cart.items()[0].quantity == 1


def test_remove_and_clear(product):
    cart = Cart()
    cart.add(product, "Black", "M")
    cart.add(product, "Black", "L")
    cart.remove("P1-Black-M")
    cart.remove("P1-Black-M")
    assert [i.id for i in cart.items()] == ["P1-Black-L"]

    cart.clear()
    assert cart.items() == []
    assert cart.item_count == 0


def test_items_returns_a_copy(product):
    cart = Cart()
    cart.add(product, "Black", "M")
    cart.items().clear()
    assert len(cart) == 1


def test_cart_totals_scenario(product):
    cart = Cart()
    cart.add(product, "Black", "M", "#000000", 1)
    cart.add(product, "Black", "M", "#000000", 2)

    totals = cart.totals()
    assert totals.subtotal == Decimal("150.00")
    assert totals.shipping == Decimal("10.00")
    assert totals.tax == Decimal("15.00")
    assert totals.total == Decimal("175.00")


def test_snapshot_round_trip_through_file(tmp_path, product):
    cart = Cart()
    cart.add(product, "Black", "M", "#000000", 2)
    cart.add(make_product("P2", price=12.5), "Black", "S")

    path = tmp_path / "cart.json"
    save_cart(cart, path)
    restored = load_cart(path)

    assert [(i.id, i.quantity) for i in restored.items()] == [("P1-Black-M", 2), ("P2-Black-S", 1)]
    assert restored.totals() == cart.totals()


def test_load_missing_file_gives_empty_cart(tmp_path):
    assert load_cart(tmp_path / "nope.json").items() == []


def test_load_corrupt_file_gives_empty_cart(tmp_path):
    path = tmp_path / "cart.json"
    path.write_text("{not json", encoding="utf-8")
    assert load_cart(path).items() == []

    path.write_text('[{"id": "x"}]', encoding="utf-8")
    assert load_cart(path).items() == []
