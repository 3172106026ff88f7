import pandas as pd
import streamlit as st

from depot import auth, db
from depot.pdf_export import history_pdf
from depot.reports import day_bounds, history_frame, history_totals, local_today
from depot.utils import SELLER_ROLES, currency, fmt_money, unit_label

KEY = "hist"  # page key prefix for Streamlit widget keys


def _view(df: pd.DataFrame, include_costs: bool, cur: str) -> pd.DataFrame:
    v = pd.DataFrame({
        "Date": df["created_at"].dt.strftime("%d/%m/%Y %H:%M"),
        "Produit": df["product"],
        "Caissier": df["cashier"],
        "Quantité": [f"{q} {unit_label(u)}" for q, u in zip(df["qty"], df["unit_type"])],
        "Bouteilles": df["qty_bottles"],
        "Prix unitaire": df["unit_price"].map(lambda x: fmt_money(x, cur, 2)),
        "Total": df["total_price"].map(lambda x: fmt_money(x, cur, 2)),
    })
    if include_costs:
        v["Coût"] = df["cogs"].map(lambda x: fmt_money(x, cur, 2))
        v["Bénéfice"] = df["profit"].map(lambda x: fmt_money(x, cur, 2))
    return v


def render(user=None):
    st.title("🧾 Historique des ventes")
    st.caption("Consultez l'historique complet des ventes par date avec calculs détaillés")
    cur = currency()
    include_costs = auth.has_role(user, *SELLER_ROLES)

    today = local_today()
    c1, c2 = st.columns(2)
    date_from = c1.date_input("Du", value=today, key=f"{KEY}_from")
    date_to = c2.date_input("Au", value=today, key=f"{KEY}_to")
    if date_from > date_to:
        st.error("La date de début doit précéder la date de fin.")
        return

    start, end = day_bounds(date_from, date_to)
    try:
        items = db.fetch_sale_items_between(start, end)
    except db.BackendError as e:
        st.error(f"Impossible de charger l'historique : {e.message}")
        return

    df = history_frame(items)
    totals = history_totals(df, include_costs)

    cols = st.columns(4 if include_costs else 2)
    cols[0].metric("Total des ventes", fmt_money(totals["sales"], cur, 2))
    cols[-1].metric("Transactions", totals["count"])
    if include_costs:
        cols[1].metric("Bénéfice total", fmt_money(totals["profit"], cur, 2))
        cols[2].metric("Coût d'achat total", fmt_money(totals["cogs"], cur, 2))

    if df.empty:
        st.info("Aucune vente sur cette période.")
        return

    st.dataframe(_view(df, include_costs, cur), width="stretch", hide_index=True, height=420)

    pdf = history_pdf(df, totals, date_from, date_to, include_costs=include_costs, cur=cur,
                      app_name=db.setting("app_name", "DEPOT_APP_NAME", "Botes Depot"))
    st.download_button(
        "📄 Exporter en PDF",
        data=pdf,
        file_name=f"historique-ventes-{date_from:%Y-%m-%d}-{date_to:%Y-%m-%d}.pdf",
        mime="application/pdf",
        key=f"{KEY}_pdf",
    )

app = render
main = render
