from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime, timezone
import uuid

from ..cart import Cart, CartError, CartProduct, build_cart, generate_receipt_number
from ..config import settings
from ..db import get_conn, set_user_context
from ..deps import get_current_user, require_store
from ..jsonlog import json_log
from ..validation import PaymentMethod

router = APIRouter(prefix="/pos", tags=["pos"])


class CartLineIn(BaseModel):
    product_id: uuid.UUID
    quantity: int = Field(default=1, gt=0, le=100000)


class QuoteIn(BaseModel):
    lines: List[CartLineIn] = []


class CheckoutIn(BaseModel):
    payment_method: PaymentMethod
    lines: List[CartLineIn] = []
    customer_id: Optional[uuid.UUID] = None
    reference_number: Optional[str] = Field(default=None, max_length=64)
    notes: Optional[str] = None


def _like_pattern(q: Optional[str]) -> Optional[str]:
    raw = (q or "").strip()
    if not raw:
        return None
    escaped = raw.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _list_store_products(cur, store_id: str, q: Optional[str] = None) -> list[dict]:
    pattern = _like_pattern(q)
    cur.execute(
        """
        SELECT id, name, selling_price, stock_quantity, vat_rate
        FROM products
        WHERE store_id = %s
          AND active = true
          AND (%s::text IS NULL OR name ILIKE %s)
        ORDER BY name
        """,
        (store_id, pattern, pattern),
    )
    return cur.fetchall()


def _load_cart_products(cur, store_id: str, product_ids: list[str]) -> list[CartProduct]:
    cur.execute(
        """
        SELECT id, name, selling_price, stock_quantity, vat_rate
        FROM products
        WHERE store_id = %s
          AND active = true
          AND id = ANY(%s::uuid[])
        """,
        (store_id, product_ids),
    )
    return [CartProduct.from_row(r) for r in cur.fetchall()]


def _ring_up(cur, store_id: str, lines: List[CartLineIn]) -> Cart:
    product_ids = sorted({str(line.product_id) for line in lines})
    products = _load_cart_products(cur, store_id, product_ids)
    try:
        return build_cart(products, [(str(line.product_id), line.quantity) for line in lines])
    except CartError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _cart_lines_out(cart: Cart) -> list[dict]:
    return [
        {
            "product_id": item.product_id,
            "product_name": item.product.name,
            "quantity": item.quantity,
            "unit_price": item.product.selling_price,
            "vat_rate": item.product.vat_rate,
            "line_total": item.line_total,
        }
        for item in cart
    ]


@router.get("/products")
def list_pos_products(q: Optional[str] = None, user=Depends(get_current_user)):
    store_id = require_store(user)
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            return {"products": _list_store_products(cur, store_id, q)}


@router.post("/quote")
def quote(data: QuoteIn, user=Depends(get_current_user)):
    if not data.lines:
        return {"lines": [], "subtotal": 0, "vat_amount": 0, "total": 0}
    store_id = require_store(user)
    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cart = _ring_up(cur, store_id, data.lines)
    return {"lines": _cart_lines_out(cart), **cart.totals().as_dict()}


@router.post("/checkout")
def checkout(data: CheckoutIn, user=Depends(get_current_user)):
    """
    Complete a sale: one `sales` row, a `sale_items` row per cart line, a single
    payment for the full total, then a stock decrement per product.
    """
    if not data.lines:
        raise HTTPException(status_code=400, detail="Cart is empty")
    store_id = require_store(user)
    customer_id = str(data.customer_id) if data.customer_id else None
    reference = (data.reference_number or "").strip() or None
    notes = (data.notes or "").strip() or None

    with get_conn() as conn:
        set_user_context(conn, user["user_id"])
        with conn.cursor() as cur:
            cart = _ring_up(cur, store_id, data.lines)
            totals = cart.totals()

            if customer_id:
                cur.execute(
                    "SELECT id FROM customers WHERE id = %s AND store_id = %s",
                    (customer_id, store_id),
                )
                if not cur.fetchone():
                    raise HTTPException(status_code=400, detail="invalid customer_id")

            receipt_number = generate_receipt_number(datetime.now(timezone.utc), prefix=settings.receipt_prefix)
            cur.execute(
                """
                INSERT INTO sales
                  (id, receipt_number, store_id, customer_id, cashier_id,
                   subtotal, vat_amount, total_amount, status, notes)
                VALUES
                  (gen_random_uuid(), %s, %s, %s, %s, %s, %s, %s, 'completed', %s)
                RETURNING id, created_at
                """,
                (
                    receipt_number,
                    store_id,
                    customer_id,
                    user["user_id"],
                    totals.subtotal,
                    totals.vat_amount,
                    totals.total,
                    notes,
                ),
            )
            sale = cur.fetchone()
            sale_id = sale["id"]

            for item in cart:
                # Name, price and VAT rate are snapshotted so later catalog edits don't rewrite history.
                cur.execute(
                    """
                    INSERT INTO sale_items
                      (id, sale_id, product_id, product_name, quantity, unit_price, vat_rate, line_total)
                    VALUES
                      (gen_random_uuid(), %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        sale_id,
                        item.product_id,
                        item.product.name,
                        item.quantity,
                        item.product.selling_price,
                        item.product.vat_rate,
                        item.line_total,
                    ),
                )

            cur.execute(
                """
                INSERT INTO payments (id, sale_id, payment_method, amount, reference_number)
                VALUES (gen_random_uuid(), %s, %s, %s, %s)
                """,
                (sale_id, data.payment_method, totals.total, reference),
            )

            for item in cart:
                cur.execute(
                    "SELECT decrement_product_stock(%s, %s) AS remaining",
                    (item.product_id, item.quantity),
                )
                row = cur.fetchone()
                if not row or row["remaining"] is None:
                    raise HTTPException(status_code=409, detail=f"stock update failed for {item.product.name}")

            if customer_id:
                cur.execute(
                    """
                    UPDATE customers
                    SET total_purchases = COALESCE(total_purchases, 0) + %s
                    WHERE id = %s
                    """,
                    (totals.total, customer_id),
                )

            products = _list_store_products(cur, store_id)

    json_log(
        "info",
        "pos.checkout.completed",
        sale_id=sale_id,
        receipt_number=receipt_number,
        store_id=store_id,
        cashier_id=user["user_id"],
        payment_method=data.payment_method,
        total=totals.total,
        lines=len(cart),
    )
    return {
        "sale_id": sale_id,
        "receipt_number": receipt_number,
        "created_at": sale["created_at"],
        "payment_method": data.payment_method,
        "lines": _cart_lines_out(cart),
        **totals.as_dict(),
        "products": products,
    }
