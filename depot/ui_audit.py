import json

import pandas as pd
import streamlit as st

from depot import db
from depot.reports import day_bounds, to_local
from depot.utils import require_role


def _frame(rows, names) -> pd.DataFrame:
    df = pd.DataFrame(rows, columns=["id", "created_at", "user_id", "action", "details"])
    if df.empty:
        return df
    df["user"] = df["user_id"].map(lambda u: names.get(u, u or ""))
    df["details"] = df["details"].map(lambda d: json.dumps(d, ensure_ascii=False, default=str) if d else "")
    df["created_at"] = to_local(df["created_at"]).dt.strftime("%Y-%m-%d %H:%M:%S")
    return df[["id", "created_at", "user", "action", "details"]]


def _period(selection):
    # range picker yields (), (start,) mid-selection, or (start, end)
    days = [d for d in (selection or ()) if d]
    if not days:
        return None, None
    return day_bounds(days[0], days[-1])


def render(user=None):
    if not require_role(user, "admin"):
        return
    st.title("Journal d'audit")

    # Filters
    st.subheader("Filtres")
    c1, c2, c3 = st.columns(3)
    with c1:
        user_f = st.text_input("Utilisateur contient", key="au_user")
    with c2:
        action_f = st.text_input("Action contient", key="au_action")
    with c3:
        date_range = st.date_input("Période (optionnelle)", value=[], key="au_range")

    start, end = _period(date_range)

    try:
        rows = db.fetch_audit_logs(action_f.strip(), start, end, limit=2000)
        names = {p["id"]: p.get("full_name") or p.get("email") for p in db.fetch_profiles()}
    except db.BackendError as e:
        st.error(f"Impossible de lire le journal : {e.message}")
        return

    df = _frame(rows, names)
    if user_f and not df.empty:
        df = df[df["user"].astype(str).str.contains(user_f, case=False, regex=False)]

    st.subheader("Activité récente")
    st.dataframe(df, width="stretch", height=420, hide_index=True)

    # Export
    if not df.empty:
        csv = df.to_csv(index=False).encode('utf-8-sig')
        st.download_button("Télécharger CSV", csv, file_name="audit.csv", mime="text/csv")

app = render
main = render
