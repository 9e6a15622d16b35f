from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional
import uuid

from ..db import get_conn, set_user_context
from ..deps import get_current_user, require_store
from .pos import _like_pattern

router = APIRouter(prefix="/customers", tags=["customers"])


class CustomerIn(BaseModel):
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None


class CustomerUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None


def _clean(v: Optional[str]) -> Optional[str]:
    return (v or "").strip() or None


@router.get("")
def list_customers(q: Optional[str] = None, user=Depends(get_current_user)):
    store_id = require_store(user)
    pattern = _like_pattern(q)
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, name, email, phone, address, store_id, total_purchases, updated_at
                FROM customers
                WHERE store_id = %s
                  AND (%s::text IS NULL OR name ILIKE %s OR phone ILIKE %s)
                ORDER BY name
                """,
                (store_id, pattern, pattern, pattern),
            )
            return {"customers": cur.fetchall()}


@router.post("")
def create_customer(data: CustomerIn, user=Depends(get_current_user)):
    name = _clean(data.name)
    phone = _clean(data.phone)
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    if not phone:
        raise HTTPException(status_code=400, detail="phone is required")
    store_id = require_store(user)
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO customers (id, name, email, phone, address, store_id)
                VALUES (gen_random_uuid(), %s, %s, %s, %s, %s)
                RETURNING id
                """,
                (name, _clean(data.email), phone, _clean(data.address), store_id),
            )
            return {"id": cur.fetchone()["id"]}


@router.patch("/{customer_id}")
def update_customer(customer_id: uuid.UUID, data: CustomerUpdate, user=Depends(get_current_user)):
    patch = data.model_dump(exclude_unset=True)
    if not patch:
        return {"ok": True}
    fields = []
    params = []
    for col in ("name", "phone", "email", "address"):
        if col not in patch:
            continue
        val = _clean(patch[col])
        if col in {"name", "phone"} and not val:
            raise HTTPException(status_code=400, detail=f"{col} cannot be empty")
        fields.append(f"{col} = %s")
        params.append(val)
    store_id = require_store(user)
    params.extend([str(customer_id), store_id])
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(
                f"""
                UPDATE customers
                SET {', '.join(fields)}
                WHERE id = %s AND store_id = %s
                RETURNING id
                """,
                params,
            )
            if not cur.fetchone():
                raise HTTPException(status_code=404, detail="customer not found")
            return {"ok": True}
