import streamlit as st

from depot import auth, db
from depot.cart import Cart, CheckoutError, available_units, checkout, unit_price_for
from depot.utils import SELLER_ROLES, currency, flash, fmt_money, unit_label

KEY = "cs"  # page key prefix for Streamlit widget keys
CART_KEY = "cart"


def _cart() -> Cart:
    if CART_KEY not in st.session_state:
        st.session_state[CART_KEY] = Cart()
    return st.session_state[CART_KEY]


# ---------------- Products ----------------
def _product_grid(products, cart: Cart, cur: str):
    search = st.text_input("Rechercher un produit", key=f"{KEY}_search").strip().lower()
    if search:
        products = [p for p in products if search in (p.get("name") or "").lower()]
    if not products:
        st.info("Aucun produit trouvé")
        return

    cols = st.columns(3)
    for i, p in enumerate(products):
        with cols[i % 3].container(border=True):
            st.markdown(f"**{p['name']}**")
            st.caption(f"{p.get('bottles_per_case') or '?'} bouteilles/casier")
            for unit in available_units(p):
                label = f"{unit_label(unit)} · {fmt_money(unit_price_for(p, unit), cur)}"
                if st.button(label, key=f"{KEY}_add_{p['id']}_{unit}", width="stretch"):
                    cart.add(p, unit)
                    st.rerun()


# ---------------- Cart ----------------
def _cart_panel(user, cart: Cart, cur: str):
    st.subheader("🛒 Panier")
    if cart.is_empty:
        st.info("Panier vide")
        return

    for item in list(cart.items):
        k = f"{item.product_id}_{item.unit_type}"
        c1, c2, c3, c4, c5 = st.columns([4, 1, 1, 1, 1])
        c1.markdown(f"{item.name}  \n*{unit_label(item.unit_type)}* · {fmt_money(item.unit_price, cur)}"
                    f" · **{fmt_money(item.line_total, cur)}**")
        if c2.button("−", key=f"{KEY}_dec_{k}"):
            cart.update_quantity(item.product_id, item.unit_type, -1)
            st.rerun()
        c3.markdown(f"**{item.qty}**")
        if c4.button("+", key=f"{KEY}_inc_{k}"):
            cart.update_quantity(item.product_id, item.unit_type, 1)
            st.rerun()
        if c5.button("🗑", key=f"{KEY}_rm_{k}"):
            cart.remove(item.product_id, item.unit_type)
            st.rerun()

    st.divider()
    st.metric("Total", fmt_money(cart.subtotal, cur))

    can_sell = auth.has_role(user, *SELLER_ROLES)
    if not can_sell:
        st.caption("Seuls les administrateurs et magasiniers peuvent valider une vente.")
    b1, b2 = st.columns(2)
    if b1.button("Valider la vente", type="primary", width="stretch", key=f"{KEY}_checkout"):
        try:
            reference, _ = checkout(cart, user)
        except CheckoutError as e:
            st.error(str(e))
            return
        except db.BackendError as e:
            st.error(e.message or "Impossible d'enregistrer la vente")
            return
        cart.clear()
        flash(f"Vente {reference} enregistrée avec succès")
        st.rerun()
    if b2.button("Vider le panier", width="stretch", key=f"{KEY}_clear"):
        cart.clear()
        st.rerun()


# ---------------- UI ----------------
def render(user=None):
    st.title("💰 Caisse")
    cur = currency()
    cart = _cart()

    try:
        products = db.fetch_active_products()
    except db.BackendError as e:
        st.error(f"Impossible de charger les produits : {e.message}")
        return

    left, right = st.columns([3, 2])
    with left:
        _product_grid(products, cart, cur)
    with right:
        _cart_panel(user, cart, cur)

app = render
main = render
