from datetime import date
from zoneinfo import ZoneInfo

import pytest

from depot.db import ConfigError
from depot.reports import (daily_cost, daily_overview, day_bounds, history_frame, history_totals,
                           load_dashboard_stats, local_tz, profit_report, quick_range, stock_report,
                           top_products, trend_percentage)


def _item(created_at, name, qty, qty_bottles, unit_price, total, cost, unit_type="bottle"):
    return {
        "qty": qty, "qty_bottles": qty_bottles, "unit_price": unit_price, "total_price": total,
        "unit_type": unit_type,
        "sales": {"created_at": created_at, "created_by": "u1"},
        "products": {"name": name, "cost_per_bottle": cost},
    }


ITEMS = [
    _item("2026-03-01T09:00:00+00:00", "Primus", 2, 2, 1500, 3000, 1000),
    _item("2026-03-02T10:00:00+00:00", "Fanta", 1, 24, 18000, 18000, 500, unit_type="full_case"),
    _item("2026-03-02T08:00:00+00:00", "Primus", 3, 3, 1500, 4500, 1000),
]
# embedded relation returned as a list
ITEMS[2]["products"] = [ITEMS[2]["products"]]


UTC = ZoneInfo("UTC")
KINSHASA = ZoneInfo("Africa/Kinshasa")


def test_day_bounds_cover_whole_days():
    start, end = day_bounds(date(2026, 3, 1), date(2026, 3, 2), UTC)
    assert start == "2026-03-01T00:00:00+00:00"
    assert end == "2026-03-02T23:59:59.999999+00:00"


def test_day_bounds_use_local_midnight():
    start, end = day_bounds(date(2026, 3, 1), date(2026, 3, 1))
    assert start == "2026-03-01T00:00:00+01:00"
    assert end == "2026-03-01T23:59:59.999999+01:00"


def test_local_tz_rejects_unknown_zone(monkeypatch):
    monkeypatch.setenv("DEPOT_TIMEZONE", "Mars/Olympus")
    with pytest.raises(ConfigError):
        local_tz()


def test_sale_after_local_midnight_counts_for_the_next_day():
    items = [_item("2026-03-01T23:30:00+00:00", "Primus", 1, 1, 1500, 1500, 1000)]
    df = history_frame(items, tz=KINSHASA)
    assert df.iloc[0]["created_at"].strftime("%d/%m/%Y %H:%M") == "02/03/2026 00:30"
    assert [str(d) for d in daily_overview(df)["date"]] == ["2026-03-02"]
    assert str(daily_overview(history_frame(items, tz=UTC))["date"][0]) == "2026-03-01"


@pytest.mark.parametrize("name,expected", [
    ("today", (date(2026, 2, 14), date(2026, 2, 14))),
    ("week", (date(2026, 2, 7), date(2026, 2, 14))),
    ("month", (date(2026, 2, 1), date(2026, 2, 28))),
    ("year", (date(2026, 1, 1), date(2026, 12, 31))),
])
def test_quick_range(name, expected):
    assert quick_range(name, date(2026, 2, 14)) == expected


def test_quick_range_rejects_unknown():
    with pytest.raises(ValueError):
        quick_range("decade", date(2026, 2, 14))


@pytest.mark.parametrize("today,yesterday,expected", [
    (150, 100, 50.0),
    (50, 100, -50.0),
    (80, 0, 100.0),
    (0, 0, 0.0),
])
def test_trend_percentage(today, yesterday, expected):
    assert trend_percentage(today, yesterday) == expected


def test_history_frame_costs_use_bottles_and_sort_newest_first():
    df = history_frame(ITEMS)
    assert list(df["product"]) == ["Fanta", "Primus", "Primus"]
    fanta = df.iloc[0]
    assert fanta["cogs"] == 24 * 500
    assert fanta["profit"] == 18000 - 12000
    assert df.iloc[1]["cogs"] == 3000


def test_history_frame_empty():
    df = history_frame([])
    assert df.empty
    assert "total_price" in df.columns


def test_history_totals_hides_costs_for_clients():
    df = history_frame(ITEMS)
    assert history_totals(df, include_costs=False) == {"sales": 25500.0, "count": 3}
    totals = history_totals(df, include_costs=True)
    assert totals["cogs"] == 2000 + 12000 + 3000
    assert totals["profit"] == 25500 - 17000


def test_daily_overview_groups_by_date():
    out = daily_overview(history_frame(ITEMS))
    assert [str(d) for d in out["date"]] == ["2026-03-01", "2026-03-02"]
    assert list(out["total"]) == [3000, 22500]
    assert list(out["count"]) == [1, 2]


def test_top_products_by_quantity():
    top = top_products(history_frame(ITEMS), n=1)
    assert top.to_dict("records") == [{"name": "Primus", "value": 5}]


def test_profit_report_totals():
    rep = profit_report(history_frame(ITEMS))
    assert rep["total_revenue"] == 25500
    assert rep["total_cost"] == 17000
    assert rep["total_profit"] == 8500
    assert rep["total_transactions"] == 3


def test_stock_report_counts():
    products = [{"id": 1, "name": "A", "bottles_per_case": 12}, {"id": 2, "name": "B", "bottles_per_case": 24},
                {"id": 3, "name": "C", "bottles_per_case": 24}]
    totals = [{"product_id": 1, "total_stock_bottles": 200}, {"product_id": 2, "total_stock_bottles": 30}]
    rep = stock_report(products, totals)
    assert rep["products"] == 3
    assert rep["low"] == 2
    assert rep["out"] == 1
    assert list(rep["frame"]["status"]) == ["En stock", "Stock faible", "Rupture"]


def test_daily_cost_handles_missing_costs():
    rows = [{"qty_bottles": 12, "products": {"cost_per_bottle": 100}}, {"qty_bottles": 5, "products": None}]
    assert daily_cost(rows) == 1200


def _dashboard_client(make_client):
    def sales(q):
        # recent sales have no range filter; today/yesterday use gte/lt
        if not q.called("gte"):
            return [{"id": 1, "total_amount": 1000}, {"id": 2, "total_amount": 500}]
        if q.called("gte")[0][0][1].startswith("2026-03-02"):
            return [{"id": 10, "total_amount": 3000}]
        return [{"id": 9, "total_amount": 2000}]

    return make_client(
        tables={
            "sales": sales,
            "sale_items": [{"qty_bottles": 4, "products": {"cost_per_bottle": 250}}],
            "products": [{"id": 1, "name": "Primus"}, {"id": 2, "name": "Fanta"}],
            "locker_stock": [{"product_id": 1, "quantity_bottles": 20}, {"product_id": 2, "quantity_bottles": 0}],
        },
        counts={"products": 2},
    )


def test_dashboard_stats_for_admin(make_client):
    fake = _dashboard_client(make_client)
    stats = load_dashboard_stats("admin", date(2026, 3, 2), client=fake)
    assert stats["total_products"] == 2
    assert stats["total_sales"] == 2
    assert stats["total_revenue"] == 1500
    assert stats["daily_revenue"] == 3000
    assert stats["daily_cost"] == 1000
    assert stats["daily_net_profit"] == 2000
    assert stats["trend_percentage"] == 50.0
    assert [a["product_name"] for a in stats["low_stock_alerts"]] == ["Primus"]
    assert [a["product_name"] for a in stats["out_of_stock_products"]] == ["Fanta"]
    ranged = [q for q in fake.queries_for("sales") if q.called("gte")]
    bounds = [(q.called("gte")[0][0][1], q.called("lt")[0][0][1]) for q in ranged]
    assert bounds == [
        ("2026-03-02T00:00:00+01:00", "2026-03-03T00:00:00+01:00"),
        ("2026-03-01T00:00:00+01:00", "2026-03-02T00:00:00+01:00"),
    ]


def test_dashboard_stats_skip_admin_figures_for_other_roles(make_client):
    fake = _dashboard_client(make_client)
    stats = load_dashboard_stats("magasinier", date(2026, 3, 2), client=fake)
    assert stats["total_revenue"] == 1500
    assert stats["daily_revenue"] == 0.0
    assert stats["low_stock_alerts"] == []
    assert fake.queries_for("sale_items") == []
