"""
auth.py: Sign-in, roles and user administration on top of Supabase auth.

Highlights
- Password sign-in through the session's client; the role comes from user_roles.
- Accounts without a user_roles row cannot sign in.
- Password change / reset delegate to Supabase (no local hashes or tokens).
- Admin user creation uses the service-role client and repairs half-created
  accounts (auth user present, role/profile rows missing).
"""

import logging
from typing import Any, Dict, Optional, Tuple

from supabase import AuthApiError, AuthError

from depot import db

logger = logging.getLogger(__name__)

MIN_PASSWORD_LEN = 8


def _attr(obj, name, default=None):
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


# ------------------------
# Session
# ------------------------
def sign_in(email: str, password: str, *, client=None) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
    if not email or not password:
        return False, "Saisissez votre email et votre mot de passe.", None
    c = client or db.get_client()
    try:
        res = c.auth.sign_in_with_password({"email": email.strip(), "password": password})
    except AuthError as e:
        logger.info("Sign-in refused for %s: %s", email, e)
        return False, "Identifiants invalides.", None
    auth_user = _attr(res, "user")
    if auth_user is None:
        return False, "Identifiants invalides.", None
    user_id = _attr(auth_user, "id")
    role = db.fetch_user_role(user_id, client=c)
    if role is None:
        c.auth.sign_out()
        return False, "Aucun rôle attribué à ce compte. Contactez un administrateur.", None
    meta = _attr(auth_user, "user_metadata") or {}
    user = {
        "id": user_id,
        "email": _attr(auth_user, "email"),
        "full_name": meta.get("username") or meta.get("full_name") or _attr(auth_user, "email"),
        "role": role,
    }
    db.record_audit(user_id, "LOGIN", {"email": user["email"]}, client=c)
    return True, "Connexion réussie.", user


def sign_out(*, client=None) -> Tuple[bool, str]:
    c = client or db.get_client()
    try:
        c.auth.sign_out()
    except AuthError as e:
        logger.warning("Sign-out failed: %s", e)
        return False, "Une erreur est survenue lors de la déconnexion."
    return True, "Déconnexion réussie. À bientôt!"


def current_role(user_id: str, *, client=None) -> Optional[str]:
    if not user_id:
        return None
    try:
        return db.fetch_user_role(user_id, client=client)
    except db.BackendError as e:
        logger.error("Role lookup failed for %s: %s", user_id, e.message)
        return None


def has_role(user, *roles) -> bool:
    return bool(user) and user.get("role") in roles


# ------------------------
# Passwords
# ------------------------
def _check_new_password(new_password: str, confirm: str) -> Optional[str]:
    if new_password != confirm:
        return "Les mots de passe ne correspondent pas."
    if len(new_password or "") < MIN_PASSWORD_LEN:
        return f"Le mot de passe doit contenir au moins {MIN_PASSWORD_LEN} caractères."
    return None


def change_password(new_password: str, confirm: str, *, client=None) -> Tuple[bool, str]:
    problem = _check_new_password(new_password, confirm)
    if problem:
        return False, problem
    c = client or db.get_client()
    try:
        c.auth.update_user({"password": new_password})
    except AuthError as e:
        return False, f"Échec du changement de mot de passe : {e}"
    return True, "Mot de passe modifié avec succès."


def request_password_reset(email: str, *, redirect_to: Optional[str] = None, client=None) -> Tuple[bool, str]:
    if not email:
        return False, "Saisissez votre email."
    c = client or db.get_client()
    options = {"redirect_to": redirect_to} if redirect_to else {}
    try:
        c.auth.reset_password_for_email(email.strip(), options)
    except AuthError as e:
        return False, f"Échec de l'envoi de l'email : {e}"
    return True, "Si le compte existe, un email de réinitialisation a été envoyé."


# ------------------------
# Admin: user creation
# ------------------------
def _is_email_exists(err: Exception) -> bool:
    return "email_exists" in str(err) or _attr(err, "code") == "email_exists"


def _repair_existing(admin, email: str, username: str, role: str) -> Tuple[bool, str]:
    """The auth user exists already: create whichever local rows are missing."""
    users = admin.auth.admin.list_users()
    existing = next((u for u in users or [] if _attr(u, "email") == email), None)
    if existing is None:
        return False, f"L'email {email} est déjà utilisé par un autre utilisateur."
    uid = _attr(existing, "id")
    repaired = []
    if db.fetch_user_role(uid, client=admin) is None:
        db.upsert_user_role(uid, role, client=admin)
        repaired.append("le rôle")
    if db.fetch_profile(uid, client=admin) is None:
        db.upsert_profile(uid, username, email, client=admin)
        repaired.append("le profil")
    if not repaired:
        return False, f"L'utilisateur avec l'email {email} existe déjà avec un rôle et un profil."
    return True, (f"L'utilisateur {username} existait déjà dans le système d'authentification. "
                  f"Créé : {' et '.join(repaired)}.")


def _describe_create_error(err: Exception, email: str) -> str:
    msg = str(err)
    low = msg.lower()
    if "user not allowed" in low or "unauthorized" in low:
        return "Erreur d'autorisation : la clé de service Supabase n'est pas configurée correctement."
    if "invalid api key" in low:
        return "Clé API invalide : vérifiez la clé de service."
    if "duplicate" in low or "unique constraint" in low or _attr(err, "status") == 409:
        return f"L'utilisateur avec l'email {email} existe déjà dans le système."
    return f"Erreur lors de la création : {msg}"


def create_user(email: str, username: str, password: str, role: str, *,
                admin=None, actor_id: Optional[str] = None) -> Tuple[bool, str]:
    if not email or not username or not password or not role:
        return False, "Email, nom d'utilisateur, mot de passe et rôle sont requis."
    if len(password) < MIN_PASSWORD_LEN:
        return False, f"Le mot de passe doit contenir au moins {MIN_PASSWORD_LEN} caractères."
    try:
        a = admin or db.get_admin_client()
    except db.ConfigError as e:
        return False, str(e)

    try:
        if db.profile_email_exists(email, client=a):
            return False, f"L'email {email} est déjà utilisé par un utilisateur existant."
        res = a.auth.admin.create_user({
            "email": email,
            "password": password,
            "email_confirm": True,
            "user_metadata": {"username": username, "role": role},
        })
        uid = _attr(_attr(res, "user"), "id")
        db.upsert_user_role(uid, role, client=a)
        db.upsert_profile(uid, username, email, client=a)
    except AuthApiError as e:
        if not _is_email_exists(e):
            logger.error("User creation failed for %s: %s", email, e)
            return False, _describe_create_error(e, email)
        try:
            ok, msg = _repair_existing(a, email, username, role)
        except (AuthError, db.BackendError) as inner:
            logger.error("Repair of existing account %s failed: %s", email, inner)
            return False, f"L'email {email} est déjà utilisé par un autre utilisateur."
        if ok:
            db.record_audit(actor_id, "USER_REPAIR", {"email": email, "role": role}, client=a)
        return ok, msg
    except db.BackendError as e:
        return False, _describe_create_error(e, email)

    db.record_audit(actor_id, "USER_CREATE", {"email": email, "role": role}, client=a)
    return True, f"L'utilisateur {username} a été créé avec succès."
