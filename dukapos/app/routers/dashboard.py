from fastapi import APIRouter, Depends
from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from ..config import settings
from ..db import get_conn, set_user_context
from ..deps import get_current_user

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def _store_tz() -> tzinfo:
    return ZoneInfo(settings.store_timezone)


def start_of_day(now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> datetime:
    """Local midnight of `now` in the store's timezone, as an aware datetime."""
    tz = tz or _store_tz()
    local = (now or datetime.now(timezone.utc)).astimezone(tz)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


def summarize_sales(rows: Iterable[dict]) -> dict:
    total = Decimal("0")
    count = 0
    for r in rows:
        total += Decimal(str(r.get("total_amount") or 0))
        count += 1
    return {"today_sales": total, "today_transactions": count}


def is_low_stock(row: dict) -> bool:
    # A product without a reorder level counts as having a level of 0.
    stock = int(row.get("stock_quantity") or 0)
    level = int(row.get("reorder_level") or 0)
    return stock <= level


def summarize_inventory(rows: Iterable[dict]) -> dict:
    rows = list(rows)
    return {
        "low_stock": sum(1 for r in rows if is_low_stock(r)),
        "total_products": len(rows),
    }


def empty_stats() -> dict:
    return {"today_sales": Decimal("0"), "today_transactions": 0, "low_stock": 0, "total_products": 0}


@router.get("/stats")
def dashboard_stats(user=Depends(get_current_user)):
    store_id = user.get("store_id")
    if not store_id:
        return {"stats": empty_stats(), "store_id": None}

    since = start_of_day()
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT total_amount
                FROM sales
                WHERE store_id = %s
                  AND status = 'completed'
                  AND created_at >= %s
                """,
                (store_id, since),
            )
            sales = summarize_sales(cur.fetchall())
            cur.execute(
                """
                SELECT stock_quantity, reorder_level
                FROM products
                WHERE store_id = %s AND active = true
                """,
                (store_id,),
            )
            inventory = summarize_inventory(cur.fetchall())

    return {"stats": {**sales, **inventory}, "store_id": store_id, "since": since.isoformat()}
