import uuid
from decimal import Decimal

import pytest
from fastapi import HTTPException

from dukapos.app.routers import products as products_router
from dukapos.app.routers.products import ProductIn, ProductUpdate, _build_product_patch, _target_store


def test_build_product_patch_keeps_column_order_and_values():
    patch = ProductUpdate(selling_price="150.00", name=" Bread ", active=False).model_dump(exclude_unset=True)
    fields, params = _build_product_patch(patch)
    assert fields == ["name = %s", "selling_price = %s", "active = %s"]
    assert params == ["Bread", Decimal("150.00"), False]


def test_build_product_patch_allows_clearing_nullable_columns():
    fields, params = _build_product_patch({"barcode": None, "reorder_level": None})
    assert fields == ["barcode = %s", "reorder_level = %s"]
    assert params == [None, None]


@pytest.mark.parametrize(
    "patch",
    [
        {"name": None},
        {"selling_price": None},
        {"stock_quantity": -1},
        {"reorder_level": -5},
    ],
)
def test_build_product_patch_rejects_invalid_values(patch):
    with pytest.raises(HTTPException) as ex:
        _build_product_patch(patch)
    assert ex.value.status_code == 400


def test_target_store_scopes_non_admins_to_their_store():
    other = uuid.uuid4()
    manager = {"user_id": "u1", "store_id": "s1", "roles": ["manager"]}
    assert _target_store(manager, None) == "s1"
    with pytest.raises(HTTPException) as ex:
        _target_store(manager, other)
    assert ex.value.status_code == 403

    admin = {"user_id": "u2", "store_id": None, "roles": ["admin"]}
    assert _target_store(admin, other) == str(other)


def test_product_defaults_follow_schema():
    p = ProductIn(name="Soap", selling_price="45.00")
    assert p.vat_rate == Decimal("16.00")
    assert p.reorder_level == 10
    assert p.cost_price == Decimal("0")
    assert p.active is True


class _Cursor:
    def __init__(self):
        self.executed = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, sql, params=None):
        self.executed.append((" ".join(str(sql).lower().split()), tuple(params or ())))

    def fetchone(self):
        return {"id": "new-product"}


class _Conn:
    def __init__(self, cur):
        self.cur = cur

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def cursor(self):
        return self.cur


def test_create_product_inserts_into_callers_store(monkeypatch):
    cur = _Cursor()
    monkeypatch.setattr(products_router, "get_conn", lambda: _Conn(cur))
    out = products_router.create_product(
        ProductIn(name="Soap", selling_price="45.00", stock_quantity=12),
        user={"user_id": "u1", "store_id": "s1", "roles": ["manager"]},
    )
    assert out == {"id": "new-product"}
    sql, params = cur.executed[-1]
    assert sql.startswith("insert into products")
    assert params[0] == "Soap"
    assert params[5] == "s1"
    assert params[7] == Decimal("45.00")
    assert params[8] == 12


MANAGER_A = {"user_id": "u1", "store_id": "store-A", "roles": ["manager"]}
ADMIN = {"user_id": "u9", "store_id": None, "roles": ["admin"]}


def test_manager_product_writes_are_limited_to_their_store(monkeypatch):
    cur = _Cursor()
    monkeypatch.setattr(products_router, "get_conn", lambda: _Conn(cur))
    pid = uuid.uuid4()

    products_router.update_product(pid, ProductUpdate(selling_price="99.00"), user=MANAGER_A)
    sql, params = cur.executed[-1]
    assert sql == "update products set selling_price = %s where id = %s and store_id = %s returning id"
    assert params == (Decimal("99.00"), str(pid), "store-A")

    products_router.deactivate_product(pid, user=MANAGER_A)
    sql, params = cur.executed[-1]
    assert sql == "update products set active = false where id = %s and store_id = %s returning id"
    assert params == (str(pid), "store-A")

    products_router.get_product(pid, user=MANAGER_A)
    sql, params = cur.executed[-1]
    assert sql.endswith("from products where id = %s and store_id = %s")
    assert params == (str(pid), "store-A")


def test_admin_product_writes_reach_any_store(monkeypatch):
    cur = _Cursor()
    monkeypatch.setattr(products_router, "get_conn", lambda: _Conn(cur))
    pid = uuid.uuid4()
    products_router.deactivate_product(pid, user=ADMIN)
    sql, params = cur.executed[-1]
    assert sql == "update products set active = false where id = %s returning id"
    assert params == (str(pid),)


def test_manager_without_store_cannot_patch_products(monkeypatch):
    cur = _Cursor()
    monkeypatch.setattr(products_router, "get_conn", lambda: _Conn(cur))
    with pytest.raises(HTTPException) as ex:
        products_router.deactivate_product(uuid.uuid4(), user={"user_id": "u1", "store_id": None, "roles": ["manager"]})
    assert ex.value.status_code == 400
    assert cur.executed == []
