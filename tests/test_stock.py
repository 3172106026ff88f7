import pytest

from depot.stock import (case_equivalent, derive_prices, entry_bottles, primary_locker, product_payload,
                         products_with_stock, stock_alerts, stock_by_product, stock_status)

STOCK_ROWS = [
    {"product_id": 1, "locker_id": 1, "quantity_bottles": 30},
    {"product_id": 1, "locker_id": 2, "quantity_bottles": 15},
    {"product_id": 2, "locker_id": 1, "quantity_bottles": 0},
    {"product_id": 3, "locker_id": 1, "quantity_bottles": 120},
]
PRODUCTS = [
    {"id": 1, "name": "Primus", "bottles_per_case": 12},
    {"id": 2, "name": "Fanta", "bottles_per_case": 24},
    {"id": 3, "name": "Heineken", "bottles_per_case": 24},
    {"id": 4, "name": "Nouveau", "bottles_per_case": 20},
]


def test_stock_by_product_sums_lockers():
    assert stock_by_product(STOCK_ROWS) == {1: 45, 2: 0, 3: 120}
    assert stock_by_product(None) == {}


@pytest.mark.parametrize("total,bpc,expected", [
    (45, 12, (3, 9)),
    (24, 24, (1, 0)),
    (0, 12, (0, 0)),
    (-5, 12, (0, 0)),
])
def test_case_equivalent(total, bpc, expected):
    assert case_equivalent(total, bpc) == expected


def test_products_with_stock_adds_totals_and_cases():
    rows = {p["id"]: p for p in products_with_stock(PRODUCTS, STOCK_ROWS)}
    assert rows[1]["total_stock_bottles"] == 45
    assert (rows[1]["full_cases"], rows[1]["remaining_bottles"]) == (3, 9)
    assert rows[4]["total_stock_bottles"] == 0
    assert rows[4]["name"] == "Nouveau"


def test_stock_alerts_only_cover_products_with_locker_rows():
    low, out = stock_alerts(PRODUCTS, STOCK_ROWS, 50)
    assert [a["product_name"] for a in low] == ["Primus"]
    assert low[0]["quantity_bottles"] == 45
    assert low[0]["locker_code"] == "Tous casiers"
    assert [a["product_name"] for a in out] == ["Fanta"]


def test_stock_status_thresholds():
    assert stock_status(51) == "En stock"
    assert stock_status(50) == "Stock faible"
    assert stock_status(11) == "Stock faible"
    assert stock_status(10) == "Rupture"


def test_derive_prices_rounds_and_splits():
    p = derive_prices(24, 20000, 30000)
    assert p["cost_per_bottle"] == 833.33
    assert p["cost_half_case"] == 10000
    assert p["price_per_bottle"] == 1250
    assert p["price_half_case"] == 15000
    assert p["price_full_case"] == 30000


def test_derive_prices_without_cost():
    p = derive_prices(12, None, 18000)
    assert p["cost_per_bottle"] is None
    assert p["cost_half_case"] is None
    assert p["price_per_bottle"] == 1500


def test_product_payload_skips_generated_columns():
    payload = product_payload("  Primus ", 12, 12000, 18000, sku="PRI-12")
    assert payload["name"] == "Primus"
    assert payload["sku"] == "PRI-12"
    assert payload["price_per_bottle"] == 1500
    assert payload["cost_per_bottle"] == 1000
    assert "price_half_case" not in payload
    assert "price_full_case" not in payload


@pytest.mark.parametrize("name,price", [("", 18000), ("Primus", 0), ("Primus", None)])
def test_product_payload_requires_name_and_price(name, price):
    with pytest.raises(ValueError):
        product_payload(name, 12, None, price)


def test_entry_bottles():
    assert entry_bottles(3, "bottle", 24) == 3
    assert entry_bottles("2", "case", 24) == 48
    for bad in (0, -1, "x", None):
        with pytest.raises(ValueError):
            entry_bottles(bad, "bottle", 24)


def test_primary_locker():
    product = {"locker_stock": [{"lockers": None}, {"lockers": {"id": 3, "code": "C3", "name": "Frigo"}}]}
    assert primary_locker(product)["id"] == 3
    assert primary_locker({"locker_stock": []}) is None
    assert primary_locker(None) is None
