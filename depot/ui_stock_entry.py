import logging
from datetime import datetime, timezone

import pandas as pd
import streamlit as st

from depot import db
from depot.reports import to_local
from depot.stock import entry_bottles, primary_locker
from depot.utils import flash

logger = logging.getLogger(__name__)

KEY = "se"  # page key prefix for Streamlit widget keys

ENTRY_UNITS = {"bottle": "Bouteilles", "case": "Casiers"}


def _recent_entries_df(rows) -> pd.DataFrame:
    out = []
    for r in rows or []:
        locker = r.get("lockers") or {}
        out.append({
            "Date": r.get("received_at"),
            "Produit": (r.get("products") or {}).get("name"),
            "Casier": locker.get("code") or locker.get("name"),
            "Bouteilles": r.get("qty_bottles"),
            "Fournisseur": r.get("supplier") or "",
            "Note": r.get("note") or "",
        })
    df = pd.DataFrame(out, columns=["Date", "Produit", "Casier", "Bouteilles", "Fournisseur", "Note"])
    if not df.empty:
        df["Date"] = to_local(df["Date"]).dt.strftime("%d/%m/%Y %H:%M")
    return df


def render_form(user):
    """Stock receipt form. Returns True once an entry is recorded."""
    try:
        products = db.fetch_products_with_lockers()
    except db.BackendError as e:
        st.error(f"Impossible de charger les produits : {e.message}")
        return False
    if not products:
        st.info("Aucun produit actif. Créez d'abord un produit.")
        return False

    by_id = {p["id"]: p for p in products}
    c1, c2 = st.columns(2)
    with c1:
        pid = st.selectbox("Produit *", list(by_id), format_func=lambda i: by_id[i]["name"], key=f"{KEY}_product")
        unit = st.radio("Unité d'entrée *", list(ENTRY_UNITS), format_func=ENTRY_UNITS.get,
                        horizontal=True, key=f"{KEY}_unit")
        qty = st.number_input(
            "Nombre de casiers" if unit == "case" else "Nombre de bouteilles",
            min_value=0, step=1, value=0, key=f"{KEY}_qty",
        )
    product = by_id[pid]
    locker = primary_locker(product)
    with c2:
        if locker:
            st.text_input("Casier/Emplacement (Automatique)", value=f"{locker.get('code')} - {locker.get('name')}",
                          disabled=True, key=f"{KEY}_locker_auto_{pid}")
            locker_id = locker["id"]
        else:
            lockers = db.fetch_lockers()
            if not lockers:
                st.error("Aucun casier configuré.")
                return False
            names = {lk["id"]: f"{lk.get('code')} - {lk.get('name')}" for lk in lockers}
            locker_id = st.selectbox("Casier/Emplacement *", list(names), format_func=names.get,
                                     key=f"{KEY}_locker_pick")
            st.caption("Ce produit n'a pas encore de casier : choisissez-en un.")
        supplier = st.text_input("Fournisseur", key=f"{KEY}_supplier")
        unit_cost = st.number_input("Coût unitaire (optionnel)", min_value=0.0, step=10.0, value=0.0,
                                    key=f"{KEY}_unit_cost")
        note = st.text_input("Note", key=f"{KEY}_note")

    bpc = int(product.get("bottles_per_case") or 0)
    if unit == "case" and qty:
        st.caption(f"{int(qty)} casiers = {int(qty) * bpc} bouteilles")

    if not st.button("Enregistrer l'entrée", type="primary", key=f"{KEY}_save"):
        return False

    uid = (user or {}).get("id")
    if not uid:
        st.error("Impossible de trouver l'utilisateur. Veuillez vous reconnecter.")
        return False
    try:
        bottles = entry_bottles(qty, unit, bpc)
    except ValueError as e:
        st.error(str(e))
        return False

    payload = {
        "product_id": pid,
        "locker_id": locker_id,
        "qty_bottles": bottles,
        "received_by": uid,
        "received_at": datetime.now(timezone.utc).isoformat(),
    }
    if supplier.strip():
        payload["supplier"] = supplier.strip()
    if unit_cost:
        payload["unit_cost"] = float(unit_cost)
    if note.strip():
        payload["note"] = note.strip()

    try:
        db.insert_stock_entry(payload)
    except db.BackendError as e:
        st.error(f"Erreur : {e.message}")
        return False
    db.record_audit(uid, "STOCK_ENTRY", payload)
    logger.info("Stock entry: product %s +%s bottles in locker %s", pid, bottles, locker_id)

    qty_text = f"{int(qty)} casiers ({bottles} bouteilles)" if unit == "case" else f"{bottles} bouteilles"
    flash(f"Entrée de stock enregistrée : {qty_text}")
    return True


def render_recent():
    st.subheader("Dernières entrées")
    try:
        rows = db.fetch_recent_stock_entries(20)
    except db.BackendError as e:
        st.caption(f"Entrées indisponibles : {e.message}")
        return
    df = _recent_entries_df(rows)
    if df.empty:
        st.info("Aucune entrée de stock.")
    else:
        st.dataframe(df, width="stretch", hide_index=True, height=300)
