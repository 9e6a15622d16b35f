from datetime import datetime, timezone
from typing import Optional

from fastapi import Cookie, Depends, Header, HTTPException

from .db import get_admin_conn
from .security import hash_session_token

SESSION_COOKIE_NAME = "dukapos_session"


def _extract_session_token(authorization: Optional[str], cookie_token: Optional[str]) -> str:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip()
    if cookie_token:
        return cookie_token
    raise HTTPException(status_code=401, detail="missing token")


def get_session(
    authorization: Optional[str] = Header(None),
    cookie_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
):
    token = _extract_session_token(authorization, cookie_token)
    # Sessions are looked up before any user context exists, so they live behind the admin pool.
    with get_admin_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT s.id AS session_id, s.user_id, u.email, u.is_active AS user_active,
                       s.expires_at, s.is_active, p.store_id,
                       COALESCE(
                         (SELECT array_agg(r.role::text ORDER BY r.role)
                          FROM user_roles r WHERE r.user_id = s.user_id),
                         ARRAY[]::text[]
                       ) AS roles
                FROM auth_sessions s
                JOIN users u ON u.id = s.user_id
                LEFT JOIN profiles p ON p.id = s.user_id
                WHERE s.token_hash = %s
                """,
                (hash_session_token(token),),
            )
            row = cur.fetchone()
            now = datetime.now(timezone.utc)
            if not row or not row["is_active"] or not row["user_active"] or row["expires_at"] < now:
                raise HTTPException(status_code=401, detail="invalid token")
            return {
                "session_id": row["session_id"],
                "user_id": row["user_id"],
                "email": row["email"],
                "store_id": row["store_id"],
                "roles": list(row["roles"] or []),
                "token": token,
            }


def get_current_user(session=Depends(get_session)):
    return {
        "user_id": session["user_id"],
        "email": session["email"],
        "store_id": session["store_id"],
        "roles": session["roles"],
    }


def has_any_role(user: dict, *roles: str) -> bool:
    held = {str(r).lower() for r in (user.get("roles") or [])}
    return any(r in held for r in roles)


def require_role(*roles: str):
    def _dep(user=Depends(get_current_user)):
        if not has_any_role(user, *roles):
            raise HTTPException(status_code=403, detail="permission denied")
        return True
    return _dep


def require_store(user: dict) -> str:
    store_id = user.get("store_id")
    if not store_id:
        raise HTTPException(status_code=400, detail="Store not configured")
    return str(store_id)


def store_scope(user: dict) -> Optional[str]:
    """Store filter for back-office writes: None for admins, else the caller's store."""
    if has_any_role(user, "admin"):
        return None
    return require_store(user)
