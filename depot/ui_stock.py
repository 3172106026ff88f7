import pandas as pd
import streamlit as st

from depot import db, ui_product_form, ui_stock_entry
from depot.stock import products_with_stock
from depot.utils import currency, flash, fmt_money, require_role, spaced_title

KEY = "stk"  # page key prefix for Streamlit widget keys


def _stock_df(rows, cur: str) -> pd.DataFrame:
    out = [{
        "Produit": p.get("name"),
        "SKU": p.get("sku") or "",
        "Prix bouteille": fmt_money(p.get("price_per_bottle"), cur),
        "Prix demi-casier": fmt_money(p.get("price_half_case"), cur),
        "Prix casier": fmt_money(p.get("price_full_case"), cur),
        "Bouteilles/casier": p.get("bottles_per_case"),
        "Stock total": p["total_stock_bottles"],
        "Équivalent casiers": f"{p['full_cases']} casiers + {p['remaining_bottles']} btl",
    } for p in rows]
    return pd.DataFrame(out)


def _delete(user, product):
    try:
        db.deactivate_product(product["id"])
    except db.BackendError as e:
        st.error(f"Erreur lors de la suppression : {e.message}")
        return
    db.record_audit(user.get("id"), "PRODUCT_DELETE", {"product_id": product["id"], "name": product.get("name")})
    flash(f"Produit « {product.get('name')} » supprimé")
    st.rerun()


def _products_tab(user, cur: str):
    try:
        rows = products_with_stock(db.fetch_active_products(), db.fetch_locker_stock())
    except db.BackendError as e:
        st.error(f"Impossible de charger le stock : {e.message}")
        return

    search = st.text_input("Rechercher un produit", key=f"{KEY}_search").strip().lower()
    if search:
        rows = [p for p in rows if search in (p.get("name") or "").lower() or search in (p.get("sku") or "").lower()]
    if not rows:
        st.info("Aucun produit disponible")
        return

    st.dataframe(_stock_df(rows, cur), width="stretch", hide_index=True, height=320)

    spaced_title("Modifier / supprimer", "Ouvrez un produit pour le modifier ou le retirer du catalogue.")
    for p in rows:
        with st.expander(f"{p['name']} · {p['total_stock_bottles']} bouteilles"):
            if ui_product_form.render_form(user, product=p):
                st.rerun()
            st.divider()
            confirm = st.checkbox("Confirmer la suppression", key=f"{KEY}_confirm_{p['id']}")
            if st.button("Supprimer", key=f"{KEY}_del_{p['id']}", disabled=not confirm):
                _delete(user, p)


def render(user=None):
    if not require_role(user, "admin"):
        return
    st.title("🍾 Stock")
    st.caption("Gérez l'état de votre stock")
    cur = currency()

    tab_list, tab_new, tab_entry = st.tabs(["Produits", "Nouveau produit", "Entrée de stock"])
    with tab_list:
        _products_tab(user, cur)
    with tab_new:
        if ui_product_form.render_form(user):
            st.rerun()
    with tab_entry:
        if ui_stock_entry.render_form(user):
            st.rerun()
        ui_stock_entry.render_recent()

app = render
main = render
