# cart.py: the cashier cart (plain in-memory list) and sale submission.
# Stock decrement and sale atomicity are process_sale's job on the backend.
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from depot import auth, db
from depot.utils import SELLER_ROLES

logger = logging.getLogger(__name__)

PRICE_COLUMNS = {
    "bottle": "price_per_bottle",
    "half_case": "price_half_case",
    "full_case": "price_full_case",
}


class CheckoutError(Exception):
    pass


@dataclass
class CartItem:
    product_id: int
    name: str
    unit_type: str
    unit_price: float
    qty: int
    bottles_per_case: int

    @property
    def line_total(self) -> float:
        return self.unit_price * self.qty


def unit_price_for(product: Dict[str, Any], unit_type: str) -> float:
    col = PRICE_COLUMNS.get(unit_type)
    if col is None:
        raise ValueError(f"Unknown unit type: {unit_type}")
    return float(product.get(col) or 0)


def available_units(product: Dict[str, Any]) -> List[str]:
    units = ["bottle"]
    if product.get("price_half_case"):
        units.append("half_case")
    if product.get("price_full_case"):
        units.append("full_case")
    return units


@dataclass
class Cart:
    items: List[CartItem] = field(default_factory=list)

    def _find(self, product_id: int, unit_type: str) -> Optional[CartItem]:
        return next((i for i in self.items if i.product_id == product_id and i.unit_type == unit_type), None)

    def add(self, product: Dict[str, Any], unit_type: str) -> CartItem:
        existing = self._find(product["id"], unit_type)
        if existing:
            existing.qty += 1
            return existing
        item = CartItem(
            product_id=product["id"],
            name=product.get("name", ""),
            unit_type=unit_type,
            unit_price=unit_price_for(product, unit_type),
            qty=1,
            bottles_per_case=int(product.get("bottles_per_case") or 0),
        )
        self.items.append(item)
        return item

    def update_quantity(self, product_id: int, unit_type: str, change: int):
        item = self._find(product_id, unit_type)
        if item and item.qty + change > 0:
            item.qty += change

    def remove(self, product_id: int, unit_type: str):
        self.items = [i for i in self.items if not (i.product_id == product_id and i.unit_type == unit_type)]

    def clear(self):
        self.items = []

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def subtotal(self) -> float:
        return sum(i.unit_price * i.qty for i in self.items)

    def product_ids(self) -> List[int]:
        return list(dict.fromkeys(i.product_id for i in self.items))

    def to_sale_items(self) -> List[Dict[str, Any]]:
        return [
            {"product_id": i.product_id, "unit_type": i.unit_type, "qty": i.qty, "unit_price": i.unit_price}
            for i in self.items
        ]


def pick_locker(stocked_rows: List[Dict[str, Any]], lockers: List[Dict[str, Any]]) -> int:
    """First locker holding stock for a cart product, else the first locker."""
    if stocked_rows:
        row = stocked_rows[0]
        name = (row.get("lockers") or {}).get("name")
        logger.info("Locker selected: %s (stock available)", name)
        return row["locker_id"]
    if lockers:
        logger.info("Fallback locker: %s (no stock found)", lockers[0].get("name"))
        return lockers[0]["id"]
    raise CheckoutError("Aucun casier disponible pour traiter la vente")


def make_reference(now: Optional[float] = None) -> str:
    ts = time.time() if now is None else now
    return f"VTE-{int(ts * 1000)}"


def checkout(cart: Cart, user: Optional[Dict[str, Any]], *, lockers=None, client=None) -> Tuple[str, Any]:
    if cart.is_empty:
        raise CheckoutError("Le panier est vide")
    if not user or not user.get("id"):
        raise CheckoutError("Utilisateur non authentifié")

    c = client or db.get_client()
    role = auth.current_role(user["id"], client=c)
    if role not in SELLER_ROLES:
        raise CheckoutError(
            "Permissions insuffisantes. Vous devez avoir le rôle 'admin' ou 'magasinier' pour créer des ventes."
        )

    stocked = db.fetch_stocked_lockers(cart.product_ids(), client=c)
    if lockers is None:
        lockers = db.fetch_lockers(client=c)
    locker_id = pick_locker(stocked, lockers)

    reference = make_reference()
    items = cart.to_sale_items()
    sale_id = db.process_sale(reference, user["id"], locker_id, items, client=c)
    logger.info("process_sale ok: %s -> %s", reference, sale_id)

    db.record_audit(user["id"], "SALE", {
        "reference": reference, "sale_id": sale_id, "locker_id": locker_id,
        "total": cart.subtotal, "items": items,
    }, client=c)
    return reference, sale_id
