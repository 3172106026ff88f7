import pandas as pd
import streamlit as st

from depot import db
from depot.reports import load_dashboard_stats, to_local
from depot.utils import currency, fmt_money


# ---------------- Helpers ----------------
def _low_threshold() -> int:
    try:
        return int(db.setting("low_stock_threshold", "DEPOT_LOW_STOCK", 50))
    except (TypeError, ValueError):
        return 50


def _recent_df(sales, cur: str) -> pd.DataFrame:
    rows = [
        {
            "Référence": s.get("reference") or "Transaction",
            "Date": s.get("created_at"),
            "Montant": fmt_money(s.get("total_amount"), cur),
        }
        for s in sales or []
    ]
    df = pd.DataFrame(rows, columns=["Référence", "Date", "Montant"])
    if not df.empty:
        df["Date"] = to_local(df["Date"]).dt.strftime("%d/%m/%Y %H:%M")
    return df


def _alerts_df(alerts) -> pd.DataFrame:
    df = pd.DataFrame(alerts, columns=["product_name", "locker_code", "quantity_bottles"])
    return df.rename(columns={"product_name": "Produit", "locker_code": "Casier", "quantity_bottles": "Bouteilles"})


# ---------------- UI ----------------
def render(user=None):
    st.title("📊 Tableau de bord")
    role = (user or {}).get("role")
    cur = currency()

    try:
        stats = load_dashboard_stats(role, low_threshold=_low_threshold())
    except db.BackendError as e:
        st.error(f"Erreur lors du chargement des statistiques : {e.message}")
        return

    if role == "admin":
        c1, c2, c3, c4 = st.columns(4)
        c1.metric("Ventes du jour", fmt_money(stats["daily_revenue"], cur), help="chiffre d'affaires aujourd'hui")
        c2.metric("Bénéfice du jour", fmt_money(stats["daily_net_profit"], cur), help="marge bénéficiaire aujourd'hui")
        c3.metric("Coût des ventes", fmt_money(stats["daily_cost"], cur), help="coût des marchandises vendues")
        trend = stats["trend_percentage"]
        c4.metric("Tendance", f"{trend:+.1f}%", delta=f"{trend:+.1f}% vs hier")

    c1, c2, c3 = st.columns(3)
    c1.metric("Produits actifs", stats["total_products"])
    c2.metric("Ventes récentes", stats["total_sales"])
    c3.metric("Revenu total", fmt_money(stats["total_revenue"], cur), help="sur les ventes récentes")

    if role == "admin":
        low, out = stats["low_stock_alerts"], stats["out_of_stock_products"]
        if out:
            st.subheader("⛔ Ruptures de stock")
            st.dataframe(_alerts_df(out), width="stretch", hide_index=True)
        if low:
            st.subheader("⚠️ Stock faible")
            st.dataframe(_alerts_df(low), width="stretch", hide_index=True)

    st.subheader("Ventes récentes")
    if not stats["recent_sales"]:
        st.info("Aucune vente récente")
    else:
        st.dataframe(_recent_df(stats["recent_sales"], cur), width="stretch", hide_index=True, height=240)

app = render
main = render
