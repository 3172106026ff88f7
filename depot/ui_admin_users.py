import streamlit as st

from depot import auth, db
from depot.utils import ROLES, flash, require_role, role_label

KEY_PREFIX = "admin_users"


def _list_users():
    roles = db.fetch_user_roles()
    profiles = {p["id"]: p for p in db.fetch_profiles()}
    rows = []
    for r in roles:
        p = profiles.get(r["user_id"], {})
        rows.append({
            "user_id": r["user_id"],
            "role": r.get("role"),
            "full_name": p.get("full_name") or "",
            "email": p.get("email") or "",
            "created_at": r.get("created_at") or p.get("created_at") or "",
        })
    return sorted(rows, key=lambda u: (u["full_name"] or u["email"]).lower())


def _create_form(user):
    with st.expander("➕ Nouvel utilisateur", expanded=False):
        with st.form(f"{KEY_PREFIX}_create", clear_on_submit=True):
            c1, c2 = st.columns(2)
            email = c1.text_input("Email")
            username = c2.text_input("Nom d'utilisateur")
            password = c1.text_input("Mot de passe", type="password")
            role = c2.selectbox("Rôle", ROLES, format_func=role_label)
            submitted = st.form_submit_button("Créer l'utilisateur", type="primary")
        if submitted:
            ok, msg = auth.create_user(email.strip(), username.strip(), password, role, actor_id=user.get("id"))
            if ok:
                flash(msg)
                st.rerun()
            else:
                st.error(msg)


def render(user=None):
    if not require_role(user, "admin"):
        return None
    st.title("👥 Utilisateurs")
    _create_form(user)

    try:
        rows = _list_users()
    except db.BackendError as e:
        st.error(f"Impossible de charger les utilisateurs : {e.message}")
        return None
    if not rows:
        st.info("Aucun utilisateur.")
        return None

    for u in rows:
        uid = u["user_id"]
        with st.expander(f"{u['full_name'] or u['email']} • {u['email']} • {role_label(u['role'])}", expanded=False):
            col1, col2 = st.columns(2)

            with col1:
                idx = ROLES.index(u["role"]) if u["role"] in ROLES else len(ROLES) - 1
                new_role = st.selectbox("Changer le rôle", ROLES, index=idx, format_func=role_label,
                                        key=f"{KEY_PREFIX}_role_select_{uid}")
                if st.button("Mettre à jour", key=f"{KEY_PREFIX}_role_update_{uid}"):
                    try:
                        db.update_user_role(uid, new_role)
                    except db.BackendError as e:
                        st.error(e.message)
                    else:
                        db.record_audit(user.get("id"), "ROLE_UPDATE", {"user_id": uid, "role": new_role})
                        flash("Rôle mis à jour.")
                        st.rerun()

            with col2:
                own = uid == user.get("id")
                if own:
                    st.caption("Vous ne pouvez pas retirer votre propre rôle.")
                confirm = st.checkbox("Confirmer le retrait", key=f"{KEY_PREFIX}_confirm_{uid}", disabled=own)
                if st.button("Retirer l'accès", key=f"{KEY_PREFIX}_delete_{uid}", disabled=own or not confirm):
                    try:
                        db.delete_user_role(uid)
                    except db.BackendError as e:
                        st.error(e.message)
                    else:
                        db.record_audit(user.get("id"), "ROLE_DELETE", {"user_id": uid, "email": u["email"]})
                        flash("Accès retiré.", icon="🗑")
                        st.rerun()
    return None

app = render
main = render
