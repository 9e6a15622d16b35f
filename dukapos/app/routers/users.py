from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional
import uuid

from ..db import get_conn, set_user_context
from ..deps import get_current_user, require_role
from ..jsonlog import json_log
from ..validation import AppRole

router = APIRouter(prefix="/users", tags=["users"])
ROLES = {"admin", "manager", "cashier"}


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None


class StoreAssignIn(BaseModel):
    store_id: Optional[uuid.UUID] = None


class RoleIn(BaseModel):
    role: AppRole


@router.get("")
def list_profiles(user=Depends(get_current_user)):
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT p.id, p.full_name, p.phone, p.store_id, p.active, p.updated_at
                FROM profiles p
                ORDER BY p.full_name
                """
            )
            return {"profiles": cur.fetchall()}


@router.patch("/me")
def update_my_profile(data: ProfileUpdate, user=Depends(get_current_user)):
    patch = data.model_dump(exclude_unset=True)
    if not patch:
        return {"ok": True}
    fields = []
    params = []
    if "full_name" in patch:
        nm = (patch["full_name"] or "").strip()
        if not nm:
            raise HTTPException(status_code=400, detail="full_name cannot be empty")
        fields.append("full_name = %s")
        params.append(nm)
    if "phone" in patch:
        fields.append("phone = %s")
        params.append((patch["phone"] or "").strip() or None)
    params.append(str(user["user_id"]))
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(
                f"UPDATE profiles SET {', '.join(fields)} WHERE id = %s RETURNING id",
                params,
            )
            if not cur.fetchone():
                raise HTTPException(status_code=404, detail="profile not found")
            return {"ok": True}


@router.put("/{user_id}/store", dependencies=[Depends(require_role("admin"))])
def assign_store(user_id: uuid.UUID, data: StoreAssignIn, user=Depends(get_current_user)):
    store_id = str(data.store_id) if data.store_id else None
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            if store_id:
                cur.execute("SELECT 1 FROM stores WHERE id = %s", (store_id,))
                if not cur.fetchone():
                    raise HTTPException(status_code=400, detail="invalid store_id")
            cur.execute(
                "UPDATE profiles SET store_id = %s WHERE id = %s RETURNING id",
                (store_id, str(user_id)),
            )
            if not cur.fetchone():
                raise HTTPException(status_code=404, detail="profile not found")
    json_log("info", "users.store_assigned", user_id=str(user_id), store_id=store_id, by=user["user_id"])
    return {"ok": True}


@router.post("/{user_id}/roles", dependencies=[Depends(require_role("admin"))])
def grant_role(user_id: uuid.UUID, data: RoleIn, user=Depends(get_current_user)):
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO user_roles (id, user_id, role)
                VALUES (gen_random_uuid(), %s, %s)
                ON CONFLICT (user_id, role) DO NOTHING
                """,
                (str(user_id), data.role),
            )
    json_log("info", "users.role_granted", user_id=str(user_id), role=data.role, by=user["user_id"])
    return {"ok": True}


@router.delete("/{user_id}/roles/{role}", dependencies=[Depends(require_role("admin"))])
def revoke_role(user_id: uuid.UUID, role: str, user=Depends(get_current_user)):
    role = (role or "").strip().lower()
    if role not in ROLES:
        raise HTTPException(status_code=400, detail="invalid role")
    if str(user_id) == str(user["user_id"]) and role == "admin":
        raise HTTPException(status_code=400, detail="cannot revoke your own admin role")
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(
                "DELETE FROM user_roles WHERE user_id = %s AND role = %s",
                (str(user_id), role),
            )
    json_log("info", "users.role_revoked", user_id=str(user_id), role=role, by=user["user_id"])
    return {"ok": True}
