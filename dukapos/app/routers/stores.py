from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional
import uuid

from ..db import get_conn, set_user_context
from ..deps import get_current_user, require_role

router = APIRouter(prefix="/stores", tags=["stores"])

STORE_COLUMNS = "id, name, location, phone, email, active, created_at, updated_at"


class StoreIn(BaseModel):
    name: str
    location: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    active: bool = True


class StoreUpdate(BaseModel):
    name: Optional[str] = None
    location: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    active: Optional[bool] = None


@router.get("/mine")
def my_store(user=Depends(get_current_user)):
    if not user.get("store_id"):
        return {"store": None}
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(f"SELECT {STORE_COLUMNS} FROM stores WHERE id = %s", (str(user["store_id"]),))
            return {"store": cur.fetchone()}


@router.get("", dependencies=[Depends(require_role("admin"))])
def list_stores(user=Depends(get_current_user)):
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(f"SELECT {STORE_COLUMNS} FROM stores ORDER BY name")
            return {"stores": cur.fetchall()}


@router.post("", dependencies=[Depends(require_role("admin"))])
def create_store(data: StoreIn, user=Depends(get_current_user)):
    name = (data.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO stores (id, name, location, phone, email, active)
                VALUES (gen_random_uuid(), %s, %s, %s, %s, %s)
                RETURNING id
                """,
                (name, data.location, data.phone, data.email, bool(data.active)),
            )
            return {"id": cur.fetchone()["id"]}


@router.patch("/{store_id}", dependencies=[Depends(require_role("admin"))])
def update_store(store_id: uuid.UUID, data: StoreUpdate, user=Depends(get_current_user)):
    patch = data.model_dump(exclude_unset=True)
    if not patch:
        return {"ok": True}
    if "name" in patch and not (patch["name"] or "").strip():
        raise HTTPException(status_code=400, detail="name cannot be empty")
    cols = [c for c in ("name", "location", "phone", "email", "active") if c in patch]
    params = [patch[c].strip() if isinstance(patch[c], str) else patch[c] for c in cols]
    params.append(str(store_id))
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(
                f"""
                UPDATE stores
                SET {', '.join(f'{c} = %s' for c in cols)}
                WHERE id = %s
                RETURNING id
                """,
                params,
            )
            if not cur.fetchone():
                raise HTTPException(status_code=404, detail="store not found")
            return {"ok": True}
