from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from dukapos.app.routers import sales as sales_router
from dukapos.app.routers.sales import SaleVoidIn, _day_bounds

EAT = timezone(timedelta(hours=3))
SALE_ID = "44444444-4444-4444-4444-444444444444"
MANAGER = {"user_id": "u1", "store_id": "s1", "roles": ["manager"]}


class _FakeCursor:
    def __init__(self, sale):
        self.sale = sale
        self.executed = []
        self._row = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, sql, params=None):
        text = " ".join(str(sql or "").lower().split())
        self.executed.append((text, tuple(params or ())))
        if text.startswith("select set_config"):
            self._row = None
        elif text.startswith("select id, status, notes from sales"):
            self._row = self.sale
        elif text.startswith("update sales"):
            self._row = {"id": SALE_ID}
        else:
            raise AssertionError(f"unexpected SQL in test cursor: {text}")

    def fetchone(self):
        return self._row


class _FakeConn:
    def __init__(self, cur):
        self.cur = cur

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def cursor(self):
        return self.cur


def _patch(monkeypatch, sale):
    cur = _FakeCursor(sale)
    monkeypatch.setattr(sales_router, "get_conn", lambda: _FakeConn(cur))
    return cur


def test_day_bounds_are_half_open_in_store_time():
    start, end = _day_bounds(date(2026, 1, 1), date(2026, 1, 31), tz=EAT)
    assert start == datetime(2026, 1, 1, tzinfo=EAT)
    assert end == datetime(2026, 2, 1, tzinfo=EAT)
    assert _day_bounds(None, None, tz=EAT) == (None, None)


def test_day_bounds_rejects_inverted_range():
    with pytest.raises(HTTPException) as ex:
        _day_bounds(date(2026, 2, 1), date(2026, 1, 1), tz=EAT)
    assert ex.value.status_code == 400


def test_void_completed_sale_appends_reason(monkeypatch):
    cur = _patch(monkeypatch, {"id": SALE_ID, "status": "completed", "notes": "walk-in"})
    out = sales_router.void_sale(SALE_ID, SaleVoidIn(reason=" wrong item "), user=MANAGER)
    assert out == {"ok": True}
    sql, params = cur.executed[-1]
    assert "set status = 'voided'" in sql
    assert params == ("walk-in\nvoid: wrong item", SALE_ID)


def test_void_is_idempotent_for_voided_sales(monkeypatch):
    cur = _patch(monkeypatch, {"id": SALE_ID, "status": "voided", "notes": None})
    assert sales_router.void_sale(SALE_ID, SaleVoidIn(), user=MANAGER) == {"ok": True}
    assert not [t for t, _ in cur.executed if t.startswith("update sales")]


def test_void_rejects_pending_sales(monkeypatch):
    _patch(monkeypatch, {"id": SALE_ID, "status": "pending", "notes": None})
    with pytest.raises(HTTPException) as ex:
        sales_router.void_sale(SALE_ID, SaleVoidIn(), user=MANAGER)
    assert ex.value.status_code == 400


def test_void_missing_sale_is_404(monkeypatch):
    _patch(monkeypatch, None)
    with pytest.raises(HTTPException) as ex:
        sales_router.void_sale(SALE_ID, SaleVoidIn(), user=MANAGER)
    assert ex.value.status_code == 404
