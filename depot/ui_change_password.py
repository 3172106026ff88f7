
# ui_change_password.py: change the signed-in user's password, or mail a reset link.
import streamlit as st

from depot import auth, db


def render(user=None):
    st.title("Mot de passe")

    st.subheader("Changer mon mot de passe")
    new_pw = st.text_input("Nouveau mot de passe", type="password", key="cp_new_pw")
    new_pw2 = st.text_input("Confirmer le nouveau mot de passe", type="password", key="cp_new_pw2")

    if st.button("Changer le mot de passe", key="cp_change", type="primary", width="stretch"):
        ok, msg = auth.change_password(new_pw, new_pw2)
        if ok:
            st.success(msg)
            db.record_audit((user or {}).get("id"), "PASSWORD_CHANGE", {})
        else:
            st.error(msg)

    st.subheader("Recevoir un lien de réinitialisation")
    st.caption("Un email contenant un lien de réinitialisation est envoyé à l'adresse indiquée.")
    who = st.text_input("Email", value=(user or {}).get("email") or "", key="cp_who")
    if st.button("Envoyer le lien", key="cp_send", width="stretch"):
        ok, msg = auth.request_password_reset(who, redirect_to=db.setting("app_base_url", "DEPOT_BASE_URL"))
        if ok:
            st.success(msg)
        else:
            st.error(msg)

app = render
main = render
