import logging

import streamlit as st

from depot import db
from depot.stock import BOTTLES_PER_CASE_CHOICES, derive_prices, product_payload
from depot.utils import currency, flash, fmt_money

logger = logging.getLogger(__name__)

KEY = "pf"  # page key prefix for Streamlit widget keys


def _initial(product):
    if not product:
        return {"name": "", "sku": "", "bpc": 24, "cost": 0.0, "price": 0.0, "active": True}
    bpc = int(product.get("bottles_per_case") or 24)
    cost_full = product.get("cost_full_case")
    if cost_full is None and product.get("cost_per_bottle") is not None:
        cost_full = float(product["cost_per_bottle"]) * bpc
    return {
        "name": product.get("name") or "",
        "sku": product.get("sku") or "",
        "bpc": bpc,
        "cost": float(cost_full or 0),
        "price": float(product.get("price_full_case") or float(product.get("price_per_bottle") or 0) * bpc),
        "active": bool(product.get("is_active", True)),
    }


def render_form(user, product=None):
    """Create or edit a product. Returns True once the product is saved."""
    editing = product is not None
    k = f"{KEY}_{product['id']}" if editing else f"{KEY}_new"
    init = _initial(product)
    cur = currency()

    c1, c2 = st.columns(2)
    with c1:
        name = st.text_input("Nom du produit *", value=init["name"], key=f"{k}_name")
        sku = st.text_input("SKU", value=init["sku"], key=f"{k}_sku")
        choices = BOTTLES_PER_CASE_CHOICES if init["bpc"] in BOTTLES_PER_CASE_CHOICES \
            else sorted(BOTTLES_PER_CASE_CHOICES + [init["bpc"]])
        bpc = st.selectbox("Bouteilles par caisse *", choices, index=choices.index(init["bpc"]), key=f"{k}_bpc")
        active = st.checkbox("Produit actif", value=init["active"], key=f"{k}_active")
    with c2:
        cost_full = st.number_input(f"Prix d'achat caisse complète ({cur})", min_value=0.0, step=100.0,
                                    value=init["cost"], key=f"{k}_cost")
        price_full = st.number_input(f"Prix de vente caisse complète * ({cur})", min_value=0.0, step=100.0,
                                     value=init["price"], key=f"{k}_price")

    prices = derive_prices(bpc, cost_full or None, price_full)
    p1, p2, p3, p4 = st.columns(4)
    p1.metric("Coût / bouteille", fmt_money(prices["cost_per_bottle"] or 0, cur, 2))
    p2.metric("Coût / demi-caisse", fmt_money(prices["cost_half_case"] or 0, cur, 2))
    p3.metric("Prix / bouteille", fmt_money(prices["price_per_bottle"], cur, 2))
    p4.metric("Prix / demi-caisse", fmt_money(prices["price_half_case"], cur, 2))

    label = "Mettre à jour" if editing else "Créer le produit"
    if not st.button(label, type="primary", key=f"{k}_save"):
        return False

    try:
        payload = product_payload(name, bpc, cost_full or None, price_full, is_active=active, sku=sku)
    except ValueError as e:
        st.error(str(e))
        return False

    uid = (user or {}).get("id")
    try:
        if editing:
            db.update_product(product["id"], payload)
            db.record_audit(uid, "PRODUCT_UPDATE", {"product_id": product["id"], **payload})
            flash("Produit mis à jour avec succès")
        else:
            row = db.insert_product(payload)
            db.record_audit(uid, "PRODUCT_CREATE", {"product_id": row.get("id"), **payload})
            flash("Produit créé avec succès")
    except db.BackendError as e:
        st.error(f"Erreur lors de l'enregistrement du produit : {e.message}")
        return False
    logger.info("Product saved: %s", payload["name"])
    return True
