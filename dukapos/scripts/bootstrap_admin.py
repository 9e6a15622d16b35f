#!/usr/bin/env python3
import os
import secrets
import sys

import psycopg
from psycopg.rows import dict_row

from dukapos.app.security import hash_password


def _truthy(v: str) -> bool:
    return (v or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def _generate_password() -> str:
    # URL-safe and copy/paste friendly.
    return secrets.token_urlsafe(16)


def main() -> int:
    if not _truthy(os.getenv("BOOTSTRAP_ADMIN", "")):
        return 0

    db_url = os.getenv("DATABASE_URL_ADMIN") or os.getenv("DATABASE_URL")
    if not db_url:
        print("bootstrap_admin: missing DATABASE_URL", file=sys.stderr)
        return 2

    email = os.getenv("BOOTSTRAP_ADMIN_EMAIL", "admin@dukapos.local").strip().lower()
    if not email:
        print("bootstrap_admin: BOOTSTRAP_ADMIN_EMAIL is empty", file=sys.stderr)
        return 2

    password = os.getenv("BOOTSTRAP_ADMIN_PASSWORD")
    generated_password = False
    if not password:
        password = _generate_password()
        generated_password = True

    full_name = os.getenv("BOOTSTRAP_ADMIN_NAME", "Administrator").strip() or "Administrator"
    store_name = os.getenv("BOOTSTRAP_STORE_NAME", "Main Store").strip() or "Main Store"

    with psycopg.connect(db_url, row_factory=dict_row) as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute("SELECT id FROM users WHERE email = %s", (email,))
                if cur.fetchone():
                    # Idempotent: don't create duplicate users.
                    return 0

                cur.execute(
                    """
                    INSERT INTO users (id, email, hashed_password, is_active, raw_user_meta_data)
                    VALUES (gen_random_uuid(), %s, %s, true, jsonb_build_object('full_name', %s::text))
                    RETURNING id
                    """,
                    (email, hash_password(password), full_name),
                )
                user_id = cur.fetchone()["id"]

                cur.execute("SELECT id FROM stores ORDER BY created_at ASC LIMIT 1")
                store = cur.fetchone()
                if store:
                    store_id = store["id"]
                else:
                    cur.execute(
                        "INSERT INTO stores (id, name) VALUES (gen_random_uuid(), %s) RETURNING id",
                        (store_name,),
                    )
                    store_id = cur.fetchone()["id"]

                # The profile row comes from the on_user_created trigger.
                cur.execute("UPDATE profiles SET store_id = %s WHERE id = %s", (store_id, user_id))
                cur.execute(
                    """
                    INSERT INTO user_roles (id, user_id, role)
                    VALUES (gen_random_uuid(), %s, 'admin')
                    ON CONFLICT DO NOTHING
                    """,
                    (user_id,),
                )

    print("BOOTSTRAP_ADMIN_CREATED")
    print(f"email: {email}")
    print(f"store_id: {store_id}")
    if generated_password:
        print(f"password: {password}")
    else:
        print("password: (provided via BOOTSTRAP_ADMIN_PASSWORD)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
