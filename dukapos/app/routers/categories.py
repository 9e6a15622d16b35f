from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional
import uuid

from ..db import get_conn, set_user_context
from ..deps import get_current_user, has_any_role, require_role, require_store, store_scope
from .products import _id_filter

router = APIRouter(prefix="/categories", tags=["categories"])


class CategoryIn(BaseModel):
    name: str
    description: Optional[str] = None
    store_id: Optional[uuid.UUID] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


@router.get("")
def list_categories(user=Depends(get_current_user)):
    store_id = require_store(user)
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, name, description, store_id, created_at
                FROM categories
                WHERE store_id = %s
                ORDER BY name
                """,
                (store_id,),
            )
            return {"categories": cur.fetchall()}


@router.post("", dependencies=[Depends(require_role("admin", "manager"))])
def create_category(data: CategoryIn, user=Depends(get_current_user)):
    name = (data.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    if data.store_id and has_any_role(user, "admin"):
        store_id = str(data.store_id)
    else:
        store_id = require_store(user)
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO categories (id, name, description, store_id)
                VALUES (gen_random_uuid(), %s, %s, %s)
                RETURNING id
                """,
                (name, (data.description or "").strip() or None, store_id),
            )
            return {"id": cur.fetchone()["id"]}


@router.patch("/{category_id}", dependencies=[Depends(require_role("admin", "manager"))])
def update_category(category_id: uuid.UUID, data: CategoryUpdate, user=Depends(get_current_user)):
    patch = data.model_dump(exclude_unset=True)
    if not patch:
        return {"ok": True}
    fields = []
    params = []
    if "name" in patch:
        nm = (patch["name"] or "").strip()
        if not nm:
            raise HTTPException(status_code=400, detail="name cannot be empty")
        fields.append("name = %s")
        params.append(nm)
    if "description" in patch:
        fields.append("description = %s")
        params.append((patch["description"] or "").strip() or None)

    where, where_params = _id_filter(category_id, store_scope(user))
    params.extend(where_params)
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(
                f"""
                UPDATE categories
                SET {', '.join(fields)}
                WHERE {where}
                RETURNING id
                """,
                params,
            )
            if not cur.fetchone():
                raise HTTPException(status_code=404, detail="category not found")
            return {"ok": True}
