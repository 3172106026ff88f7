from datetime import timedelta

import pandas as pd
import streamlit as st

from depot import db
from depot.pdf_export import report_pdf
from depot.reports import (day_bounds, daily_overview, history_frame, local_today, profit_report,
                           quick_range, stock_report, top_products)
from depot.utils import currency, fmt_money, require_role

KEY = "rep"  # page key prefix for Streamlit widget keys
ALL_SITES = "all-sites"

REPORT_TYPES = {
    "overview": "Aperçu (7 jours)",
    "detailed": "Rapport Détaillé",
    "stock": "Rapport de Stock",
    "profits": "Rapport Profits",
}
QUICK_RANGES = {"today": "Aujourd'hui", "week": "7 jours", "month": "Ce mois", "year": "Cette année"}


def _apply_range(name: str):
    start, end = quick_range(name, local_today())
    st.session_state[f"{KEY}_from"] = start
    st.session_state[f"{KEY}_to"] = end


def _site_id():
    site = st.session_state.get("selected_site_id")
    return None if site in (None, ALL_SITES) else site


def _money_cols(df: pd.DataFrame, cols, cur: str) -> pd.DataFrame:
    out = df.copy()
    for c in cols:
        out[c] = out[c].map(lambda x: fmt_money(x, cur, 2))
    return out


# ---------------- Tabs ----------------
def _overview_tab(overview: pd.DataFrame, top: pd.DataFrame, cur: str):
    st.subheader("Ventes des 7 derniers jours")
    if overview.empty:
        st.info("Aucune vente à afficher")
    else:
        st.bar_chart(overview.set_index("date")[["total", "profit"]])
        c1, c2 = st.columns(2)
        c1.metric("Total des ventes", fmt_money(overview["total"].sum(), cur, 2))
        c2.metric("Bénéfice total", fmt_money(overview["profit"].sum(), cur, 2))

    st.subheader("Top 5 produits")
    if top.empty:
        st.info("Aucune donnée")
    else:
        st.bar_chart(top.set_index("name")["value"])
        st.dataframe(top.rename(columns={"name": "Produit", "value": "Unités"}),
                     width="stretch", hide_index=True)


def _detailed_tab(df: pd.DataFrame, cur: str):
    daily = daily_overview(df)
    total = float(df["total_price"].sum()) if not df.empty else 0.0
    profit = float(df["profit"].sum()) if not df.empty else 0.0
    count = int(len(df))

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total des ventes", fmt_money(total, cur, 2))
    c2.metric("Bénéfice total", fmt_money(profit, cur, 2))
    c3.metric("Transactions", count)
    c4.metric("Panier moyen", fmt_money(total / count if count else 0, cur, 2))

    st.subheader("Détail des Ventes")
    if daily.empty:
        st.info("Aucune vente sur cette période.")
        return
    daily = daily.assign(margin=[f"{(p / t * 100) if t else 0:.1f}%" for p, t in zip(daily["profit"], daily["total"])])
    view = _money_cols(daily, ["total", "profit"], cur).rename(columns={
        "date": "Date", "total": "Ventes", "profit": "Bénéfice", "count": "Transactions", "margin": "Marge (%)",
    })
    st.dataframe(view, width="stretch", hide_index=True)


def _stock_tab(stock):
    c1, c2, c3 = st.columns(3)
    c1.metric("Total Produits", stock["products"])
    c2.metric("Stock Faible", stock["low"])
    c3.metric("Rupture Stock", stock["out"])
    st.subheader("État du Stock par Produit")
    view = stock["frame"][["name", "stock", "status"]].rename(
        columns={"name": "Produit", "stock": "Stock (bouteilles)", "status": "Statut"})
    st.dataframe(view, width="stretch", hide_index=True, height=360)


def _profits_tab(profits, cur: str):
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Chiffre d'affaires", fmt_money(profits["total_revenue"], cur, 2))
    c2.metric("Coût total", fmt_money(profits["total_cost"], cur, 2))
    c3.metric("Bénéfice net", fmt_money(profits["total_profit"], cur, 2))
    c4.metric("Transactions", profits["total_transactions"])

    st.subheader("Détail des Profits par Transaction")
    df = profits["data"]
    if df.empty:
        st.info("Aucune donnée")
        return
    view = pd.DataFrame({
        "Date": df["created_at"].dt.strftime("%d/%m/%Y %H:%M"),
        "Produit": df["product"],
        "Quantité": df["qty"],
        "Prix Vente": df["total_price"],
        "Coût Achat": df["cogs"],
        "Marge": df["profit"],
    })
    st.dataframe(_money_cols(view, ["Prix Vente", "Coût Achat", "Marge"], cur),
                 width="stretch", hide_index=True, height=360)


# ---------------- UI ----------------
def render(user=None):
    if not require_role(user, "admin"):
        return
    st.title("📈 Rapports et Analyses")
    st.caption("Consultez des rapports détaillés sur les ventes, stocks et performances")
    cur = currency()
    today = local_today()

    st.session_state.setdefault(f"{KEY}_from", today - timedelta(days=30))
    st.session_state.setdefault(f"{KEY}_to", today)

    with st.container(border=True):
        st.markdown("**Filtres et Période**")
        qcols = st.columns(len(QUICK_RANGES))
        for col, (name, label) in zip(qcols, QUICK_RANGES.items()):
            col.button(label, key=f"{KEY}_q_{name}", on_click=_apply_range, args=(name,), width="stretch")
        c1, c2, c3 = st.columns(3)
        date_from = c1.date_input("Date début", key=f"{KEY}_from")
        date_to = c2.date_input("Date fin", key=f"{KEY}_to")
        report_type = c3.selectbox("Type de rapport (PDF)", list(REPORT_TYPES), format_func=REPORT_TYPES.get,
                                   key=f"{KEY}_type")
    if date_from > date_to:
        st.error("La date de début doit précéder la date de fin.")
        return

    start, end = day_bounds(date_from, date_to)
    week_start, week_end = day_bounds(today - timedelta(days=7), today)
    try:
        week_df = history_frame(db.fetch_sale_items_between(week_start, week_end, site_id=_site_id()))
        range_df = history_frame(db.fetch_sale_items_between(start, end))
        stock = stock_report(db.fetch_active_products(), db.fetch_stock_totals())
    except db.BackendError as e:
        st.error(f"Impossible de charger les rapports : {e.message}")
        return

    overview = daily_overview(week_df)
    top = top_products(week_df, 5)
    profits = profit_report(range_df)

    t1, t2, t3, t4 = st.tabs(list(REPORT_TYPES.values()))
    with t1:
        _overview_tab(overview, top, cur)
    with t2:
        _detailed_tab(range_df, cur)
    with t3:
        _stock_tab(stock)
    with t4:
        _profits_tab(profits, cur)

    pdf = report_pdf(report_type, date_from, date_to, overview=overview, top=top, profits=profits, stock=stock,
                     cur=cur, app_name=db.setting("app_name", "DEPOT_APP_NAME", "Botes Depot"))
    st.download_button(
        "📄 Exporter en PDF",
        data=pdf,
        file_name=f"rapport_{report_type}_{today:%Y-%m-%d}.pdf",
        mime="application/pdf",
        key=f"{KEY}_pdf",
    )

app = render
main = render
