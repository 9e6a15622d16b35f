from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional
from decimal import Decimal
import uuid

from ..db import get_conn, set_user_context
from ..deps import get_current_user, has_any_role, require_role, require_store, store_scope
from ..jsonlog import json_log
from ..validation import Money, Name, VatRate

router = APIRouter(prefix="/products", tags=["products"])

PRODUCT_COLUMNS = """
    id, name, description, sku, barcode, category_id, store_id,
    cost_price, selling_price, stock_quantity, reorder_level, vat_rate,
    active, created_at, updated_at
"""


class ProductIn(BaseModel):
    name: Name
    description: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    category_id: Optional[uuid.UUID] = None
    store_id: Optional[uuid.UUID] = None
    cost_price: Money = Decimal("0")
    selling_price: Money
    stock_quantity: int = 0
    reorder_level: Optional[int] = 10
    vat_rate: VatRate = Decimal("16.00")
    active: bool = True


class ProductUpdate(BaseModel):
    name: Optional[Name] = None
    description: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    category_id: Optional[uuid.UUID] = None
    cost_price: Optional[Money] = None
    selling_price: Optional[Money] = None
    stock_quantity: Optional[int] = None
    reorder_level: Optional[int] = None
    vat_rate: Optional[VatRate] = None
    active: Optional[bool] = None


# Columns that may be patched, in a stable order.
_PATCHABLE = (
    "name",
    "description",
    "sku",
    "barcode",
    "category_id",
    "cost_price",
    "selling_price",
    "stock_quantity",
    "reorder_level",
    "vat_rate",
    "active",
)
_NOT_NULL = {"name", "cost_price", "selling_price", "stock_quantity"}


def _build_product_patch(patch: dict) -> tuple[list[str], list]:
    fields = []
    params = []
    for col in _PATCHABLE:
        if col not in patch:
            continue
        val = patch[col]
        if val is None and col in _NOT_NULL:
            raise HTTPException(status_code=400, detail=f"{col} cannot be empty")
        if col == "stock_quantity" and val < 0:
            raise HTTPException(status_code=400, detail="stock_quantity must be >= 0")
        if col == "reorder_level" and val is not None and val < 0:
            raise HTTPException(status_code=400, detail="reorder_level must be >= 0")
        if col == "category_id" and val is not None:
            val = str(val)
        fields.append(f"{col} = %s")
        params.append(val)
    return fields, params


def _require_category_in_store(cur, category_id: Optional[str], store_id: str) -> None:
    if not category_id:
        return
    cur.execute(
        "SELECT 1 FROM categories WHERE id = %s AND store_id = %s",
        (category_id, store_id),
    )
    if not cur.fetchone():
        raise HTTPException(status_code=400, detail="invalid category_id")


def _target_store(user: dict, requested: Optional[uuid.UUID]) -> str:
    # Admins may manage any store; everyone else works in their own.
    if requested and has_any_role(user, "admin"):
        return str(requested)
    store_id = require_store(user)
    if requested and str(requested) != store_id:
        raise HTTPException(status_code=403, detail="store access denied")
    return store_id


def _id_filter(row_id, scope: Optional[str]) -> tuple[str, list]:
    if scope:
        return "id = %s AND store_id = %s", [str(row_id), scope]
    return "id = %s", [str(row_id)]


@router.get("")
def list_products(
    include_inactive: bool = False,
    category_id: Optional[uuid.UUID] = None,
    user=Depends(get_current_user),
):
    store_id = require_store(user)
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT {PRODUCT_COLUMNS}
                FROM products
                WHERE store_id = %s
                  AND (%s OR active = true)
                  AND (%s::uuid IS NULL OR category_id = %s::uuid)
                ORDER BY name
                """,
                (store_id, include_inactive, category_id, category_id),
            )
            return {"products": cur.fetchall()}


@router.get("/low-stock")
def list_low_stock(user=Depends(get_current_user)):
    store_id = require_store(user)
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT {PRODUCT_COLUMNS}
                FROM products
                WHERE store_id = %s
                  AND active = true
                  AND stock_quantity <= COALESCE(reorder_level, 0)
                ORDER BY stock_quantity, name
                """,
                (store_id,),
            )
            return {"products": cur.fetchall()}


@router.get("/{product_id}")
def get_product(product_id: uuid.UUID, user=Depends(get_current_user)):
    where, params = _id_filter(product_id, store_scope(user))
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE {where}", params)
            row = cur.fetchone()
            if not row:
                raise HTTPException(status_code=404, detail="product not found")
            return {"product": row}


@router.post("", dependencies=[Depends(require_role("admin", "manager"))])
def create_product(data: ProductIn, user=Depends(get_current_user)):
    if data.stock_quantity < 0:
        raise HTTPException(status_code=400, detail="stock_quantity must be >= 0")
    if data.reorder_level is not None and data.reorder_level < 0:
        raise HTTPException(status_code=400, detail="reorder_level must be >= 0")
    store_id = _target_store(user, data.store_id)
    category_id = str(data.category_id) if data.category_id else None
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            _require_category_in_store(cur, category_id, store_id)
            cur.execute(
                """
                INSERT INTO products
                  (id, name, description, sku, barcode, category_id, store_id,
                   cost_price, selling_price, stock_quantity, reorder_level, vat_rate, active)
                VALUES
                  (gen_random_uuid(), %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING id
                """,
                (
                    data.name,
                    data.description,
                    data.sku,
                    data.barcode,
                    category_id,
                    store_id,
                    data.cost_price,
                    data.selling_price,
                    data.stock_quantity,
                    data.reorder_level,
                    data.vat_rate,
                    bool(data.active),
                ),
            )
            pid = cur.fetchone()["id"]
    json_log("info", "products.created", product_id=pid, store_id=store_id, user_id=user["user_id"])
    return {"id": pid}


@router.patch("/{product_id}", dependencies=[Depends(require_role("admin", "manager"))])
def update_product(product_id: uuid.UUID, data: ProductUpdate, user=Depends(get_current_user)):
    patch = data.model_dump(exclude_unset=True)
    if not patch:
        return {"ok": True}
    fields, params = _build_product_patch(patch)
    where, where_params = _id_filter(product_id, store_scope(user))
    params.extend(where_params)
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            if patch.get("category_id"):
                cur.execute(f"SELECT store_id FROM products WHERE {where}", where_params)
                row = cur.fetchone()
                if not row:
                    raise HTTPException(status_code=404, detail="product not found")
                _require_category_in_store(cur, str(patch["category_id"]), str(row["store_id"]))
            cur.execute(
                f"""
                UPDATE products
                SET {', '.join(fields)}
                WHERE {where}
                RETURNING id
                """,
                params,
            )
            if not cur.fetchone():
                raise HTTPException(status_code=404, detail="product not found")
    return {"ok": True}


@router.post("/{product_id}/deactivate", dependencies=[Depends(require_role("admin", "manager"))])
def deactivate_product(product_id: uuid.UUID, user=Depends(get_current_user)):
    where, params = _id_filter(product_id, store_scope(user))
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(f"UPDATE products SET active = false WHERE {where} RETURNING id", params)
            if not cur.fetchone():
                raise HTTPException(status_code=404, detail="product not found")
    return {"ok": True}
