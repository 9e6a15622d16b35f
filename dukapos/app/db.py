import os
from contextlib import contextmanager

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from .config import _env_int

DATABASE_URL_ADMIN = os.getenv("DATABASE_URL_ADMIN") or os.getenv("DATABASE_URL") or "postgresql://localhost/dukapos"
DATABASE_URL = os.getenv("APP_DATABASE_URL") or os.getenv("DATABASE_URL") or "postgresql://localhost/dukapos"

# Override in prod via DB_POOL_MIN_SIZE / DB_POOL_MAX_SIZE and the DB_ADMIN_POOL_* pair.
_POOL_MIN = _env_int("DB_POOL_MIN_SIZE", 1)
_POOL_MAX = _env_int("DB_POOL_MAX_SIZE", 10)
_ADMIN_POOL_MIN = _env_int("DB_ADMIN_POOL_MIN_SIZE", 1)
_ADMIN_POOL_MAX = _env_int("DB_ADMIN_POOL_MAX_SIZE", 5)

# The app pool connects as a non-owner role so RLS policies apply to every query.
# The admin pool is reserved for auth tables and bootstrap work.
_pool = ConnectionPool(
    conninfo=DATABASE_URL,
    min_size=_POOL_MIN,
    max_size=_POOL_MAX,
    kwargs={"row_factory": dict_row},
    open=False,
)

_admin_pool = ConnectionPool(
    conninfo=DATABASE_URL_ADMIN,
    min_size=_ADMIN_POOL_MIN,
    max_size=_ADMIN_POOL_MAX,
    kwargs={"row_factory": dict_row},
    open=False,
)


@contextmanager
def _pooled_conn(pool: ConnectionPool):
    # `with get_conn() as conn:` commits on success, rolls back on exception
    # and returns the connection to the pool.
    with pool.connection() as conn:
        with conn:
            yield conn


def get_conn():
    return _pooled_conn(_pool)


def get_admin_conn():
    return _pooled_conn(_admin_pool)


def open_pools() -> None:
    _pool.open()
    _admin_pool.open()


def close_pools() -> None:
    _pool.close()
    _admin_pool.close()


def set_user_context(conn, user_id: str):
    """Publish the caller to RLS policies for the current transaction."""
    with conn.cursor() as cur:
        # `SET ... = %s` is not valid with the extended query protocol; set_config() is.
        cur.execute(
            "SELECT set_config('app.current_user_id', %s::text, true)",
            (str(user_id),),
        )
