# db.py: Supabase client bootstrap and every table/RPC call the pages make.
# Strategy:
#   - One client per browser session (the signed-in user's token lives in it)
#   - One shared service-role client for admin-only user creation
#   - Stock math, sale processing and RLS stay in the database
#
# Secrets expected:
#   app_name = "Botes Depot"
#   [supabase]
#   url = "https://<project>.supabase.co"
#   anon_key = "..."
#   service_role_key = "..."   # optional; only needed on the Users page
#
import logging
import os
from typing import Any, Dict, Iterable, List, Optional

import streamlit as st
from postgrest.exceptions import APIError
from streamlit.errors import StreamlitAPIException
from supabase import Client, create_client

logger = logging.getLogger(__name__)

CLIENT_KEY = "sb_client"


class ConfigError(RuntimeError):
    """Missing or incomplete backend configuration."""


class BackendError(RuntimeError):
    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


# ---- Config ----
def _secrets() -> Dict[str, Any]:
    try:
        return dict(st.secrets)
    except (FileNotFoundError, StreamlitAPIException):
        # No secrets.toml: environment only
        return {}


def setting(name: str, env: str, default=None, *, section: Optional[str] = None):
    src = _secrets()
    if section:
        src = dict(src.get(section) or {})
    val = src.get(name)
    if val in (None, ""):
        val = os.environ.get(env, default)
    return val


def supabase_settings() -> Dict[str, Optional[str]]:
    return {
        "url": setting("url", "SUPABASE_URL", section="supabase"),
        "anon_key": setting("anon_key", "SUPABASE_ANON_KEY", section="supabase"),
        "service_role_key": setting("service_role_key", "SUPABASE_SERVICE_ROLE_KEY", section="supabase"),
    }


def _build_client(url: Optional[str], key: Optional[str]) -> Client:
    if not url or not key:
        raise ConfigError("Missing [supabase] url/anon_key in st.secrets (or SUPABASE_URL / SUPABASE_ANON_KEY).")
    return create_client(url, key)


def get_client() -> Client:
    client = st.session_state.get(CLIENT_KEY)
    if client is None:
        cfg = supabase_settings()
        client = _build_client(cfg["url"], cfg["anon_key"])
        st.session_state[CLIENT_KEY] = client
    return client


@st.cache_resource
def _admin_client(url: str, key: str) -> Client:
    return create_client(url, key)


def get_admin_client() -> Client:
    cfg = supabase_settings()
    if not cfg["url"] or not cfg["service_role_key"]:
        raise ConfigError("Service role key missing: set [supabase] service_role_key (or SUPABASE_SERVICE_ROLE_KEY).")
    return _admin_client(cfg["url"], cfg["service_role_key"])


def reset_client():
    st.session_state.pop(CLIENT_KEY, None)


def execute(query):
    """Run a PostgREST query builder, turning backend failures into BackendError."""
    try:
        return query.execute()
    except APIError as e:
        logger.error("Backend call failed: %s (code=%s)", e.message, e.code)
        raise BackendError(e.message or str(e), code=e.code) from e


def _rows(query) -> List[Dict[str, Any]]:
    return execute(query).data or []


# ---- Products ----
def fetch_active_products(client=None) -> List[Dict[str, Any]]:
    c = client or get_client()
    return _rows(c.table("products").select("*").eq("is_active", True).order("name"))


def count_active_products(client=None) -> int:
    c = client or get_client()
    res = execute(c.table("products").select("*", count="exact", head=True).eq("is_active", True))
    return res.count or 0


def insert_product(payload: Dict[str, Any], client=None) -> Dict[str, Any]:
    c = client or get_client()
    rows = _rows(c.table("products").insert(payload))
    return rows[0] if rows else {}


def update_product(product_id: int, payload: Dict[str, Any], client=None):
    c = client or get_client()
    return _rows(c.table("products").update(payload).eq("id", product_id))


def deactivate_product(product_id: int, client=None):
    c = client or get_client()
    return _rows(c.table("products").update({"is_active": False}).eq("id", product_id))


def fetch_products_with_lockers(client=None) -> List[Dict[str, Any]]:
    c = client or get_client()
    return _rows(
        c.table("products")
        .select("id, name, bottles_per_case, locker_stock ( lockers ( id, code, name ) )")
        .eq("is_active", True)
        .order("name")
    )


# ---- Lockers / stock ----
def fetch_lockers(client=None) -> List[Dict[str, Any]]:
    c = client or get_client()
    return _rows(c.table("lockers").select("*").order("id"))


def fetch_locker_stock(client=None) -> List[Dict[str, Any]]:
    c = client or get_client()
    return _rows(c.table("locker_stock").select("product_id, locker_id, quantity_bottles"))


def fetch_stocked_lockers(product_ids: Iterable[int], client=None) -> List[Dict[str, Any]]:
    ids = list(product_ids)
    if not ids:
        return []
    c = client or get_client()
    return _rows(
        c.table("locker_stock")
        .select("locker_id, quantity_bottles, lockers!inner(code, name), products!inner(name)")
        .in_("product_id", ids)
        .gt("quantity_bottles", 0)
    )


def fetch_stock_totals(client=None) -> List[Dict[str, Any]]:
    c = client or get_client()
    return _rows(c.table("v_total_product_stock").select("product_id, total_stock_bottles"))


def insert_stock_entry(payload: Dict[str, Any], client=None):
    c = client or get_client()
    return _rows(c.table("stock_entries").insert(payload))


def fetch_recent_stock_entries(limit: int = 20, client=None) -> List[Dict[str, Any]]:
    c = client or get_client()
    return _rows(
        c.table("stock_entries")
        .select("id, qty_bottles, supplier, received_at, note, products(name), lockers(code, name)")
        .order("received_at", desc=True)
        .limit(limit)
    )


# ---- Sales ----
def process_sale(reference: str, created_by: str, locker_id: int, items: List[Dict[str, Any]], client=None):
    c = client or get_client()
    params = {
        "p_reference": reference,
        "p_created_by": created_by,
        "p_locker_id": locker_id,
        "p_items": items,
    }
    logger.debug("process_sale payload: %s", params)
    return execute(c.rpc("process_sale", params)).data


def fetch_recent_sales(limit: int = 5, client=None) -> List[Dict[str, Any]]:
    c = client or get_client()
    return _rows(c.table("sales").select("*").order("created_at", desc=True).limit(limit))


def fetch_sales_between(start: str, end: str, client=None) -> List[Dict[str, Any]]:
    c = client or get_client()
    return _rows(c.table("sales").select("id, total_amount").gte("created_at", start).lt("created_at", end))


def fetch_sale_item_costs(sale_ids: Iterable[int], client=None) -> List[Dict[str, Any]]:
    ids = list(sale_ids)
    if not ids:
        return []
    c = client or get_client()
    return _rows(c.table("sale_items").select("qty_bottles, products ( cost_per_bottle )").in_("sale_id", ids))


def fetch_sale_items_between(start: str, end: str, site_id: Optional[str] = None, client=None) -> List[Dict[str, Any]]:
    c = client or get_client()
    q = (
        c.table("sale_items")
        .select(
            "*, sales!inner(created_at, created_by, total_amount, site_id), "
            "products!inner(name, price_per_bottle, cost_per_bottle)"
        )
        .gte("sales.created_at", start)
        .lte("sales.created_at", end)
    )
    if site_id:
        q = q.eq("sales.site_id", site_id)
    return _rows(q)


# ---- Users ----
def fetch_user_roles(client=None) -> List[Dict[str, Any]]:
    c = client or get_client()
    return _rows(c.table("user_roles").select("*"))


def fetch_user_role(user_id: str, client=None) -> Optional[str]:
    c = client or get_client()
    rows = _rows(c.table("user_roles").select("role").eq("user_id", user_id))
    return rows[0]["role"] if rows else None


def fetch_profiles(client=None) -> List[Dict[str, Any]]:
    c = client or get_client()
    return _rows(c.table("profiles").select("*"))


def fetch_profile(user_id: str, client=None) -> Optional[Dict[str, Any]]:
    c = client or get_client()
    rows = _rows(c.table("profiles").select("*").eq("id", user_id))
    return rows[0] if rows else None


def profile_email_exists(email: str, client=None) -> bool:
    c = client or get_admin_client()
    return bool(_rows(c.table("profiles").select("id").eq("email", email)))


def upsert_user_role(user_id: str, role: str, client=None):
    c = client or get_admin_client()
    return _rows(c.table("user_roles").upsert({"user_id": user_id, "role": role}, on_conflict="user_id"))


def upsert_profile(user_id: str, full_name: str, email: str, client=None):
    c = client or get_admin_client()
    return _rows(
        c.table("profiles").upsert({"id": user_id, "full_name": full_name, "email": email}, on_conflict="id")
    )


def update_user_role(user_id: str, role: str, client=None):
    c = client or get_client()
    return _rows(c.table("user_roles").update({"role": role}).eq("user_id", user_id))


def delete_user_role(user_id: str, client=None):
    # Removing the role row is what revokes access; the auth user stays.
    c = client or get_client()
    return _rows(c.table("user_roles").delete().eq("user_id", user_id))


# ---- Sites ----
def fetch_sites(client=None) -> List[Dict[str, Any]]:
    c = client or get_client()
    return _rows(c.table("sites").select("id, name, code").eq("is_active", True).order("name"))


# ---- Audit ----
def record_audit(user_id: Optional[str], action: str, details: Optional[Dict[str, Any]] = None, client=None):
    """Best effort: an audit failure is logged, never raised into the page."""
    c = client or get_client()
    try:
        execute(c.table("audit_logs").insert({"user_id": user_id, "action": action, "details": details or {}}))
    except BackendError as e:
        logger.warning("Audit log '%s' not recorded: %s", action, e.message)


def fetch_audit_logs(action_contains: str = "", start: Optional[str] = None, end: Optional[str] = None,
                     limit: int = 2000, client=None) -> List[Dict[str, Any]]:
    c = client or get_client()
    q = c.table("audit_logs").select("id, created_at, user_id, action, details")
    if action_contains:
        q = q.ilike("action", f"%{action_contains}%")
    if start:
        q = q.gte("created_at", start)
    if end:
        q = q.lte("created_at", end)
    return _rows(q.order("created_at", desc=True).limit(limit))
