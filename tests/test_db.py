import pytest

from depot import db


def test_execute_wraps_api_errors(make_client, api_error):
    fake = make_client()
    fake.errors["products"] = api_error("permission denied", code="42501")
    with pytest.raises(db.BackendError) as exc:
        db.fetch_active_products(client=fake)
    assert exc.value.message == "permission denied"
    assert exc.value.code == "42501"


def test_fetch_active_products_filters_and_orders(make_client):
    fake = make_client(tables={"products": [{"id": 1, "name": "Primus"}]})
    assert db.fetch_active_products(client=fake) == [{"id": 1, "name": "Primus"}]
    q = fake.queries_for("products")[0]
    assert q.called("eq") == [(("is_active", True), {})]
    assert q.called("order") == [(("name",), {})]


def test_count_active_products_uses_exact_head_count(make_client):
    fake = make_client(counts={"products": 7})
    assert db.count_active_products(client=fake) == 7
    assert fake.queries_for("products")[0].called("select") == [(("*",), {"count": "exact", "head": True})]


def test_deactivate_product_is_a_soft_delete(make_client):
    fake = make_client()
    db.deactivate_product(5, client=fake)
    q = fake.queries_for("products")[0]
    assert q.called("update") == [(({"is_active": False},), {})]
    assert q.called("eq") == [(("id", 5), {})]
    assert q.called("delete") == []


def test_fetch_stocked_lockers_skips_empty_ids(make_client):
    fake = make_client()
    assert db.fetch_stocked_lockers([], client=fake) == []
    assert fake.queries == []


def test_process_sale_sends_rpc_params(make_client):
    fake = make_client(rpc_results={"process_sale": 17})
    items = [{"product_id": 1, "unit_type": "bottle", "qty": 2, "unit_price": 1500}]
    assert db.process_sale("VTE-1", "u1", 3, items, client=fake) == 17
    assert fake.rpc_calls == [("process_sale", {
        "p_reference": "VTE-1", "p_created_by": "u1", "p_locker_id": 3, "p_items": items,
    })]


def test_fetch_sale_items_between_filters_on_joined_sales(make_client):
    fake = make_client()
    db.fetch_sale_items_between("2026-01-01T00:00:00", "2026-01-31T23:59:59", site_id="s1", client=fake)
    q = fake.queries_for("sale_items")[0]
    assert q.called("gte") == [(("sales.created_at", "2026-01-01T00:00:00"), {})]
    assert q.called("lte") == [(("sales.created_at", "2026-01-31T23:59:59"), {})]
    assert q.called("eq") == [(("sales.site_id", "s1"), {})]
    assert "sales!inner" in q.called("select")[0][0][0]


def test_fetch_sale_items_between_without_site(make_client):
    fake = make_client()
    db.fetch_sale_items_between("a", "b", client=fake)
    assert fake.queries_for("sale_items")[0].called("eq") == []


def test_fetch_user_role(make_client):
    assert db.fetch_user_role("u1", client=make_client(tables={"user_roles": [{"role": "admin"}]})) == "admin"
    assert db.fetch_user_role("u1", client=make_client()) is None


def test_upserts_use_conflict_targets(make_client):
    fake = make_client()
    db.upsert_user_role("u1", "client", client=fake)
    db.upsert_profile("u1", "Jean", "jean@example.com", client=fake)
    role_q, profile_q = fake.queries_for("user_roles")[0], fake.queries_for("profiles")[0]
    assert role_q.called("upsert") == [(({"user_id": "u1", "role": "client"},), {"on_conflict": "user_id"})]
    assert profile_q.called("upsert")[0][1] == {"on_conflict": "id"}


def test_record_audit_swallows_backend_failures(make_client, api_error):
    fake = make_client()
    fake.errors["audit_logs"] = api_error("relation does not exist")
    db.record_audit("u1", "LOGIN", {"email": "a@b.c"}, client=fake)
    assert len(fake.executed) == 1


def test_fetch_audit_logs_filters(make_client):
    fake = make_client()
    db.fetch_audit_logs("SALE", "2026-01-01", "2026-01-02", limit=10, client=fake)
    q = fake.queries_for("audit_logs")[0]
    assert q.called("ilike") == [(("action", "%SALE%"), {})]
    assert q.called("gte") == [(("created_at", "2026-01-01"), {})]
    assert q.called("limit") == [((10,), {})]


def test_setting_prefers_secrets_then_env(monkeypatch):
    monkeypatch.setattr(db, "_secrets", lambda: {"currency": "USD", "supabase": {"url": "https://x.supabase.co"}})
    monkeypatch.setenv("DEPOT_LOW_STOCK", "30")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")
    assert db.setting("currency", "DEPOT_CURRENCY", "FC") == "USD"
    assert db.setting("low_stock_threshold", "DEPOT_LOW_STOCK", 50) == "30"
    assert db.setting("missing", "DEPOT_MISSING", "dflt") == "dflt"
    cfg = db.supabase_settings()
    assert cfg["url"] == "https://x.supabase.co"
    assert cfg["anon_key"] == "anon"


def test_build_client_requires_url_and_key():
    with pytest.raises(db.ConfigError):
        db._build_client(None, "key")


def test_admin_client_requires_service_key(monkeypatch):
    monkeypatch.setattr(db, "_secrets", lambda: {})
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)
    with pytest.raises(db.ConfigError):
        db.get_admin_client()
