# stock.py: stock aggregation, case equivalents and product pricing arithmetic.
# Authoritative stock lives in the database (triggers on stock_entries and
# process_sale); everything here works on rows already fetched.
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Tuple

BOTTLES_PER_CASE_CHOICES = [12, 20, 24]
DEFAULT_LOW_STOCK = 50
REPORT_LOW_STOCK = 50
REPORT_OUT_OF_STOCK = 10


def stock_by_product(rows: Iterable[Dict[str, Any]]) -> Dict[int, int]:
    totals: Dict[int, int] = defaultdict(int)
    for r in rows or []:
        pid = r.get("product_id")
        if pid is None:
            continue
        totals[pid] += int(r.get("quantity_bottles") or 0)
    return dict(totals)


def case_equivalent(total_bottles: int, bottles_per_case: int) -> Tuple[int, int]:
    if total_bottles <= 0 or not bottles_per_case:
        return 0, 0
    return total_bottles // bottles_per_case, total_bottles % bottles_per_case


def products_with_stock(products: List[Dict[str, Any]], stock_rows) -> List[Dict[str, Any]]:
    totals = stock_by_product(stock_rows)
    out = []
    for p in products or []:
        total = totals.get(p["id"], 0)
        full, rest = case_equivalent(total, int(p.get("bottles_per_case") or 0))
        out.append({**p, "total_stock_bottles": total, "full_cases": full, "remaining_bottles": rest})
    return out


def stock_alerts(products, stock_rows, low_threshold: int = DEFAULT_LOW_STOCK):
    """Split products holding locker_stock rows into (low_stock, out_of_stock)."""
    totals = stock_by_product(stock_rows)
    low, out = [], []
    for p in products or []:
        if p["id"] not in totals:
            continue
        total = totals[p["id"]]
        alert = {"product_name": p.get("name"), "locker_code": "Tous casiers", "quantity_bottles": total}
        if total == 0:
            out.append(alert)
        elif total < low_threshold:
            low.append(alert)
    return low, out


def stock_status(total_bottles: int) -> str:
    if total_bottles > REPORT_LOW_STOCK:
        return "En stock"
    if total_bottles > REPORT_OUT_OF_STOCK:
        return "Stock faible"
    return "Rupture"


# ---------------- Pricing ----------------
def derive_prices(bottles_per_case: int, cost_full_case: Optional[float], price_full_case: Optional[float]):
    if not bottles_per_case or bottles_per_case <= 0:
        raise ValueError("bottles_per_case must be positive")
    has_cost = cost_full_case not in (None, "")
    has_price = price_full_case not in (None, "")
    cost = float(cost_full_case) if has_cost else None
    price = float(price_full_case) if has_price else 0.0
    return {
        "cost_per_bottle": round(cost / bottles_per_case, 2) if has_cost else None,
        "cost_half_case": round(cost / 2, 2) if has_cost else None,
        "cost_full_case": cost,
        "price_per_bottle": round(price / bottles_per_case, 2),
        "price_half_case": round(price / 2, 2),
        "price_full_case": price,
    }


def product_payload(name: str, bottles_per_case: int, cost_full_case, price_full_case,
                    is_active: bool = True, sku: Optional[str] = None) -> Dict[str, Any]:
    if not (name or "").strip():
        raise ValueError("Le nom du produit est requis.")
    if price_full_case in (None, "") or float(price_full_case) <= 0:
        raise ValueError("Le prix de vente de la caisse complète est requis.")
    prices = derive_prices(bottles_per_case, cost_full_case, price_full_case)
    # price_half_case / price_full_case are generated columns
    payload = {
        "name": name.strip(),
        "bottles_per_case": int(bottles_per_case),
        "cost_per_bottle": prices["cost_per_bottle"],
        "cost_half_case": prices["cost_half_case"],
        "cost_full_case": prices["cost_full_case"],
        "price_per_bottle": prices["price_per_bottle"],
        "is_active": bool(is_active),
    }
    if sku:
        payload["sku"] = sku.strip()
    return payload


# ---------------- Stock entries ----------------
def entry_bottles(qty, unit_type: str, bottles_per_case: int) -> int:
    try:
        n = int(qty)
    except (TypeError, ValueError):
        raise ValueError("La quantité doit être un nombre entier.")
    if n <= 0:
        raise ValueError("La quantité doit être supérieure à 0.")
    if unit_type == "case":
        return n * int(bottles_per_case or 0)
    return n


def primary_locker(product: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    for row in (product or {}).get("locker_stock") or []:
        locker = row.get("lockers")
        if locker:
            return locker
    return None
