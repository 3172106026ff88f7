# depot/utils.py
import streamlit as st

from depot import db

ROLES = ["admin", "magasinier", "client"]
ROLE_LABELS = {"admin": "Administrateur", "magasinier": "Magasinier", "client": "Client"}

# Roles: admin, magasinier (storekeeper), client
ROLE_PERMS = {
    "admin": {"Tableau de bord", "Stock", "Caisse", "Historique", "Rapports", "Utilisateurs",
              "Journal d'audit", "Mot de passe"},
    "magasinier": {"Tableau de bord", "Caisse", "Historique", "Mot de passe"},
    "client": {"Tableau de bord", "Caisse", "Historique", "Mot de passe"},
}

MENU_ORDER = ["Tableau de bord", "Stock", "Caisse", "Historique", "Rapports", "Utilisateurs",
              "Journal d'audit", "Mot de passe"]

SELLER_ROLES = ("admin", "magasinier")

UNIT_LABELS = {"bottle": "Bouteille", "half_case": "Demi-casier", "full_case": "Casier complet"}


def can_access(role: str, menu_label: str) -> bool:
    allowed = ROLE_PERMS.get(role, set())
    return menu_label in allowed


def menu_options_for(role: str):
    allowed = ROLE_PERMS.get(role, set())
    return [m for m in MENU_ORDER if m in allowed]


def currency() -> str:
    return db.setting("currency", "DEPOT_CURRENCY", "FC")


def fmt_money(v, cur: str = "FC", decimals: int = 0) -> str:
    try:
        return f"{float(v):,.{decimals}f} {cur}"
    except (TypeError, ValueError):
        return f"{0:,.{decimals}f} {cur}"


def unit_label(unit_type: str) -> str:
    return UNIT_LABELS.get(unit_type, unit_type)


def role_label(role: str) -> str:
    return ROLE_LABELS.get(role, role or "-")


def require_role(user, *roles) -> bool:
    """Render the refusal notice and return False when user lacks every role."""
    if not user or user.get("role") not in roles:
        st.error("Accès refusé : seuls les administrateurs peuvent accéder à cette page.")
        return False
    return True


def spaced_title(txt: str, caption: str = None):
    st.markdown(f"### {txt}")
    if caption:
        st.caption(caption)


# Toasts queued before st.rerun() are shown on the next run.
def flash(msg: str, icon: str = "✅"):
    st.session_state.setdefault("_flash", []).append((msg, icon))


def show_flashes():
    for msg, icon in st.session_state.pop("_flash", []):
        st.toast(msg, icon=icon)
