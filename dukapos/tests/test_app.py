from fastapi.testclient import TestClient

from dukapos.app.main import app

# No `with` block: the lifespan (and its DB pools) never starts.
client = TestClient(app)


def test_health_live_echoes_request_id():
    resp = client.get("/health/live", headers={"X-Request-Id": "req-123"})
    assert resp.status_code == 200
    assert resp.json()["request_id"] == "req-123"
    assert resp.headers["X-Request-Id"] == "req-123"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


def test_meta_reports_service():
    body = client.get("/meta").json()
    assert body["service"] == "dukapos-api"
    assert body["uptime_seconds"] >= 0


def test_protected_routes_require_a_session():
    assert client.get("/pos/products").status_code == 401
    assert client.get("/dashboard/stats").status_code == 401


def test_route_table_covers_cashier_and_back_office_surfaces():
    paths = {getattr(r, "path", "") for r in app.routes}
    for p in (
        "/auth/login",
        "/auth/signup",
        "/pos/products",
        "/pos/quote",
        "/pos/checkout",
        "/dashboard/stats",
        "/products",
        "/products/low-stock",
        "/categories",
        "/customers",
        "/sales",
        "/sales/{sale_id}/void",
        "/stores/mine",
        "/users/{user_id}/roles",
    ):
        assert p in paths
