from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from typing import Optional
from datetime import date, datetime, time, timedelta
import uuid

from ..db import get_conn, set_user_context
from ..deps import get_current_user, require_role, require_store
from ..jsonlog import json_log
from .dashboard import _store_tz

router = APIRouter(prefix="/sales", tags=["sales"])
SALE_STATUSES = {"completed", "voided", "pending"}


class SaleVoidIn(BaseModel):
    reason: Optional[str] = None


def _day_bounds(start_date: Optional[date], end_date: Optional[date], tz=None) -> tuple[Optional[datetime], Optional[datetime]]:
    """Half-open [start, end) timestamps for an inclusive local date range."""
    if start_date and end_date and end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must be >= start_date")
    tz = tz or _store_tz()
    start = datetime.combine(start_date, time.min, tzinfo=tz) if start_date else None
    end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=tz) if end_date else None
    return start, end


@router.get("")
def list_sales(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    user=Depends(get_current_user),
):
    status = (status or "").strip().lower() or None
    if status and status not in SALE_STATUSES:
        raise HTTPException(status_code=400, detail="invalid status")
    store_id = require_store(user)
    start, end = _day_bounds(start_date, end_date)
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT s.id, s.receipt_number, s.customer_id, c.name AS customer_name,
                       s.cashier_id, p.full_name AS cashier_name,
                       s.subtotal, s.vat_amount, s.total_amount, s.status, s.created_at
                FROM sales s
                LEFT JOIN customers c ON c.id = s.customer_id
                LEFT JOIN profiles p ON p.id = s.cashier_id
                WHERE s.store_id = %s
                  AND (%s::timestamptz IS NULL OR s.created_at >= %s::timestamptz)
                  AND (%s::timestamptz IS NULL OR s.created_at < %s::timestamptz)
                  AND (%s::text IS NULL OR s.status::text = %s::text)
                ORDER BY s.created_at DESC
                LIMIT %s
                """,
                (store_id, start, start, end, end, status, status, limit),
            )
            return {"sales": cur.fetchall()}


@router.get("/{sale_id}")
def get_sale(sale_id: uuid.UUID, user=Depends(get_current_user)):
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, receipt_number, store_id, customer_id, cashier_id,
                       subtotal, vat_amount, total_amount, status, notes, created_at, updated_at
                FROM sales
                WHERE id = %s
                """,
                (str(sale_id),),
            )
            sale = cur.fetchone()
            if not sale:
                raise HTTPException(status_code=404, detail="sale not found")
            cur.execute(
                """
                SELECT id, product_id, product_name, quantity, unit_price, vat_rate, line_total
                FROM sale_items
                WHERE sale_id = %s
                ORDER BY created_at, id
                """,
                (str(sale_id),),
            )
            items = cur.fetchall()
            cur.execute(
                """
                SELECT id, payment_method, amount, reference_number, created_at
                FROM payments
                WHERE sale_id = %s
                ORDER BY created_at
                """,
                (str(sale_id),),
            )
            payments = cur.fetchall()
            return {"sale": sale, "items": items, "payments": payments}


@router.post("/{sale_id}/void", dependencies=[Depends(require_role("admin", "manager"))])
def void_sale(sale_id: uuid.UUID, data: SaleVoidIn, user=Depends(get_current_user)):
    """
    Mark a completed sale as voided. Stock and payments are left as recorded;
    voided sales drop out of the dashboard totals.
    """
    reason = (data.reason or "").strip() or None
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cur.execute(
                "SELECT id, status, notes FROM sales WHERE id = %s FOR UPDATE",
                (str(sale_id),),
            )
            sale = cur.fetchone()
            if not sale:
                raise HTTPException(status_code=404, detail="sale not found")
            if sale["status"] == "voided":
                return {"ok": True}
            if sale["status"] != "completed":
                raise HTTPException(status_code=400, detail="only completed sales can be voided")

            notes = sale.get("notes")
            if reason:
                notes = f"{notes}\nvoid: {reason}" if notes else f"void: {reason}"
            cur.execute(
                """
                UPDATE sales
                SET status = 'voided', notes = %s
                WHERE id = %s
                RETURNING id
                """,
                (notes, str(sale_id)),
            )
            if not cur.fetchone():
                raise HTTPException(status_code=404, detail="sale not found")
    json_log("info", "sales.voided", sale_id=str(sale_id), user_id=user["user_id"], reason=reason)
    return {"ok": True}
