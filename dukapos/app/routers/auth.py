from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from datetime import datetime, timedelta, timezone
from typing import Optional
import json
import secrets

from ..config import settings
from ..db import get_admin_conn
from ..deps import SESSION_COOKIE_NAME, get_current_user, get_session
from ..jsonlog import json_log
from ..security import hash_password, hash_session_token, needs_rehash, verify_password
from ..validation import Email

router = APIRouter(prefix="/auth", tags=["auth"])
MIN_PASSWORD_LENGTH = 8


class SignupIn(BaseModel):
    email: Email
    password: str
    full_name: Optional[str] = None
    phone: Optional[str] = None


class LoginIn(BaseModel):
    email: Email
    password: str


def _session_response(cur, user_id, body: dict) -> JSONResponse:
    # Only a one-way hash of the token is stored.
    token = secrets.token_urlsafe(32)
    expires = datetime.now(timezone.utc) + timedelta(days=settings.session_days)
    cur.execute(
        """
        INSERT INTO auth_sessions (id, user_id, token_hash, expires_at)
        VALUES (gen_random_uuid(), %s, %s, %s)
        """,
        (user_id, hash_session_token(token), expires),
    )
    resp = JSONResponse({**body, "token": token, "expires_at": expires.isoformat()})
    resp.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=not settings.is_dev,
        max_age=settings.session_days * 24 * 60 * 60,
        path="/",
    )
    return resp


@router.post("/signup")
def signup(data: SignupIn):
    if len(data.password or "") < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"password must be at least {MIN_PASSWORD_LENGTH} characters")
    meta = {
        "full_name": (data.full_name or "").strip() or None,
        "phone": (data.phone or "").strip() or None,
    }
    with get_admin_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1 FROM users WHERE email = %s", (data.email,))
            if cur.fetchone():
                raise HTTPException(status_code=409, detail="email already registered")
            # The on_user_created trigger creates the matching profile row.
            cur.execute(
                """
                INSERT INTO users (id, email, hashed_password, is_active, raw_user_meta_data)
                VALUES (gen_random_uuid(), %s, %s, true, %s::jsonb)
                RETURNING id
                """,
                (data.email, hash_password(data.password), json.dumps(meta)),
            )
            user_id = cur.fetchone()["id"]
            json_log("info", "auth.signup", user_id=user_id)
            return _session_response(cur, user_id, {"user_id": str(user_id)})


@router.post("/login")
def login(data: LoginIn):
    with get_admin_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, email, hashed_password, is_active
                FROM users
                WHERE email = %s
                """,
                (data.email,),
            )
            user = cur.fetchone()
            if not user or not user["is_active"]:
                raise HTTPException(status_code=401, detail="invalid credentials")
            if not verify_password(data.password, user["hashed_password"]):
                json_log("warning", "auth.login_failed", user_id=user["id"])
                raise HTTPException(status_code=401, detail="invalid credentials")

            if needs_rehash(user["hashed_password"]):
                cur.execute(
                    "UPDATE users SET hashed_password = %s WHERE id = %s",
                    (hash_password(data.password), user["id"]),
                )
            return _session_response(cur, user["id"], {"user_id": str(user["id"])})


@router.post("/logout")
def logout(session=Depends(get_session)):
    with get_admin_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "UPDATE auth_sessions SET is_active = false WHERE id = %s",
                (session["session_id"],),
            )
    resp = JSONResponse({"ok": True})
    resp.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return resp


@router.get("/me")
def me(user=Depends(get_current_user)):
    with get_admin_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, full_name, phone, store_id, active
                FROM profiles
                WHERE id = %s
                """,
                (user["user_id"],),
            )
            profile = cur.fetchone()
    return {
        "user_id": str(user["user_id"]),
        "email": user["email"],
        "roles": user["roles"],
        "store_id": str(user["store_id"]) if user.get("store_id") else None,
        "profile": profile,
    }
