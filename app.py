
# app.py: sign-in panel, site selector, role menu and page router.
import importlib
import logging

import streamlit as st

from depot import auth, db
from depot.utils import can_access, flash, menu_options_for, role_label, show_flashes

st.set_page_config(page_title="Botes Depot", page_icon="🍾", layout="wide")

APP_NAME = db.setting("app_name", "DEPOT_APP_NAME", "Botes Depot")
DEBUG_UI = str(db.setting("debug", "DEPOT_DEBUG", False)).lower() in ("1", "true", "yes")

logging.basicConfig(
    level=logging.DEBUG if DEBUG_UI else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("depot.app")

ALL_SITES = "all-sites"

if "user" not in st.session_state:
    st.session_state.user = None
if "login_error" not in st.session_state:
    st.session_state.login_error = ""
if "selected_site_id" not in st.session_state:
    st.session_state.selected_site_id = ALL_SITES


def _maybe(name):
    try:
        return importlib.import_module(f"depot.{name}")
    except ImportError:
        logger.exception("Page module %s could not be imported", name)
        return None


ALL_PAGES = {
    "Tableau de bord": _maybe("ui_dashboard"),
    "Stock": _maybe("ui_stock"),
    "Caisse": _maybe("ui_cashier"),
    "Historique": _maybe("ui_history"),
    "Rapports": _maybe("ui_reports"),
    "Utilisateurs": _maybe("ui_admin_users"),
    "Journal d'audit": _maybe("ui_audit"),
    "Mot de passe": _maybe("ui_change_password"),
}


def _do_login(email, password):
    try:
        ok, msg, user = auth.sign_in(email, password)
    except (db.ConfigError, db.BackendError) as e:
        st.session_state.login_error = str(e)
        return
    if not ok:
        st.session_state.login_error = msg
        return
    st.session_state.user = user
    st.session_state.login_error = ""
    st.rerun()


def _logout():
    ok, msg = auth.sign_out()
    for k in list(st.session_state.keys()):
        del st.session_state[k]
    db.reset_client()
    flash(msg, icon="👋" if ok else "⚠️")
    st.rerun()


def _site_selector():
    try:
        sites = db.fetch_sites()
    except db.BackendError as e:
        logger.warning("Sites unavailable: %s", e.message)
        sites = []
    options = [ALL_SITES] + [s["id"] for s in sites]
    names = {ALL_SITES: "Tous les sites", **{s["id"]: f"{s['name']} ({s['code']})" for s in sites}}
    if st.session_state.selected_site_id not in options:
        st.session_state.selected_site_id = ALL_SITES
    st.sidebar.selectbox(
        "Site",
        options,
        format_func=lambda v: names.get(v, v),
        key="selected_site_id",
    )


def _render_menu():
    user = st.session_state.user
    if not user:
        return None
    st.sidebar.subheader(APP_NAME)
    st.sidebar.caption(f"{user.get('full_name') or user.get('email')} · {role_label(user.get('role'))}")
    _site_selector()
    if DEBUG_UI:
        st.sidebar.info(f"**Backend**\n\n- url: `{db.supabase_settings()['url']}`")
    choice = st.sidebar.selectbox("Aller à", menu_options_for(user.get("role")), key="nav_choice")
    st.sidebar.divider()
    if st.sidebar.button("Déconnexion", width="stretch", key="logout_btn"):
        _logout()
    return choice


def _login_panel():
    _, c, _ = st.columns([1, 2, 1])
    with c:
        st.subheader("Connexion")
        email = st.text_input("Email", key="login_email")
        pwd = st.text_input("Mot de passe", type="password", key="login_pwd")
        if st.button("Se connecter", type="primary", width="stretch"):
            _do_login(email, pwd)
        if st.session_state.login_error:
            st.error(st.session_state.login_error)

        with st.expander("Mot de passe oublié ?"):
            who = st.text_input("Email", key="fp_email")
            if st.button("Envoyer le lien", key="fp_send", width="stretch"):
                try:
                    ok, msg = auth.request_password_reset(
                        who, redirect_to=db.setting("app_base_url", "DEPOT_BASE_URL")
                    )
                except db.ConfigError as e:
                    ok, msg = False, str(e)
                if ok:
                    st.success(msg)
                else:
                    st.error(msg)


def _route(choice):
    user = st.session_state.user
    if not choice:
        return
    if not can_access((user or {}).get("role"), choice):
        st.error("Accès refusé.")
        return
    page = ALL_PAGES.get(choice)
    if page and hasattr(page, "render"):
        try:
            page.render(user=user)
        except db.BackendError as e:
            st.error(f"Erreur : {e.message}")
        except Exception as e:
            logger.exception("Page %s failed", choice)
            st.error(f"Module call failed: {e}")
    else:
        st.warning("Module not available.")


def main():
    show_flashes()
    if not st.session_state.user:
        st.title(APP_NAME)
        _login_panel()
        return
    choice = _render_menu()
    _route(choice)


if __name__ == "__main__":
    main()
