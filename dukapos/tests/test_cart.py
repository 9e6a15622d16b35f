from datetime import datetime, timezone
from decimal import Decimal

import pytest

from dukapos.app.cart import Cart, CartError, CartProduct, build_cart, generate_receipt_number, q_money


def _product(pid="p1", price="116.00", stock=5, vat="16.00", name=None):
    return CartProduct(
        id=pid,
        name=name or f"Product {pid}",
        selling_price=Decimal(price),
        stock_quantity=stock,
        vat_rate=Decimal(vat),
    )


def test_add_new_product_creates_single_unit_line():
    cart = Cart()
    item = cart.add(_product())
    assert len(cart) == 1
    assert item.quantity == 1
    assert item.line_total == Decimal("116.00")


def test_add_existing_product_increments_quantity():
    cart = Cart()
    p = _product(stock=3)
    cart.add(p)
    cart.add(p)
    assert len(cart) == 1
    assert cart.find("p1").quantity == 2
    assert cart.find("p1").line_total == Decimal("232.00")


def test_add_beyond_stock_is_rejected():
    cart = Cart()
    p = _product(stock=2)
    cart.add(p)
    cart.add(p)
    with pytest.raises(CartError) as ex:
        cart.add(p)
    assert str(ex.value) == "Not enough stock available"
    assert cart.find("p1").quantity == 2


def test_add_out_of_stock_product_is_rejected():
    with pytest.raises(CartError):
        Cart().add(_product(stock=0))


def test_update_quantity_recomputes_and_drops_zero_lines():
    cart = Cart()
    cart.add(_product("a", price="10.00"))
    cart.add(_product("b", price="20.00"))
    item = cart.update_quantity("a", 4)
    assert item.quantity == 4
    assert item.line_total == Decimal("40.00")

    assert cart.update_quantity("b", -3) is None
    assert [i.product_id for i in cart] == ["a"]


def test_remove_drops_line():
    cart = Cart()
    cart.add(_product("a"))
    cart.add(_product("b"))
    cart.remove("a")
    assert [i.product_id for i in cart] == ["b"]


def test_totals_extract_inclusive_vat_per_line():
    cart = Cart()
    cart.add(_product("a", price="116.00", vat="16"), 2)
    cart.add(_product("b", price="50.00", vat="0"), 1)
    totals = cart.totals()
    # 232 * 16 / 116 = 32; zero-rated lines add nothing.
    assert totals.subtotal == Decimal("282.00")
    assert totals.vat_amount == Decimal("32.00")
    assert totals.total == totals.subtotal


def test_totals_round_half_up_to_cents():
    cart = Cart()
    cart.add(_product("a", price="10.00", vat="16"), 1)
    totals = cart.totals()
    # 10 * 16 / 116 = 1.3793...
    assert totals.vat_amount == Decimal("1.38")
    assert q_money(Decimal("0.005")) == Decimal("0.01")


def test_empty_cart_totals_are_zero():
    totals = Cart().totals()
    assert totals.as_dict() == {"subtotal": Decimal("0.00"), "vat_amount": Decimal("0.00"), "total": Decimal("0.00")}


def test_build_cart_merges_duplicate_lines_and_checks_stock():
    products = [_product("a", stock=3)]
    cart = build_cart(products, [("a", 1), ("a", 2)])
    assert cart.find("a").quantity == 3

    with pytest.raises(CartError):
        build_cart(products, [("a", 2), ("a", 2)])


def test_build_cart_rejects_unknown_product():
    with pytest.raises(CartError) as ex:
        build_cart([_product("a")], [("zzz", 1)])
    assert "zzz" in str(ex.value)


def test_receipt_number_uses_epoch_milliseconds():
    now = datetime(2025, 10, 27, 11, 22, 31, 123000, tzinfo=timezone.utc)
    assert generate_receipt_number(now) == f"RCP-{int(now.timestamp() * 1000)}"
    assert generate_receipt_number(now, prefix="SHOP").startswith("SHOP-")
