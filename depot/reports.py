import calendar
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pandas as pd

from depot import db
from depot.stock import REPORT_LOW_STOCK, REPORT_OUT_OF_STOCK, stock_alerts, stock_status

HISTORY_COLS = ["created_at", "product", "cashier", "unit_type", "qty", "qty_bottles",
                "unit_price", "total_price", "cost_per_bottle", "cogs", "profit"]


# ---------------- Dates ----------------
DEFAULT_TIMEZONE = "Africa/Kinshasa"


def local_tz() -> ZoneInfo:
    name = db.setting("timezone", "DEPOT_TIMEZONE", DEFAULT_TIMEZONE)
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise db.ConfigError(f"Unknown timezone: {name}") from e


def local_today(tz: Optional[ZoneInfo] = None) -> date:
    return datetime.now(tz or local_tz()).date()


def to_local(values, tz: Optional[ZoneInfo] = None) -> pd.Series:
    """Parse timestamps as UTC and convert them to the depot's timezone."""
    return pd.to_datetime(pd.Series(values), errors="coerce", utc=True).dt.tz_convert(tz or local_tz())


def day_bounds(start: date, end: date, tz: Optional[ZoneInfo] = None) -> Tuple[str, str]:
    """ISO bounds covering local start 00:00 through end 23:59:59.999999, offset included."""
    tz = tz or local_tz()
    return (datetime.combine(start, time.min, tzinfo=tz).isoformat(),
            datetime.combine(end, time.max, tzinfo=tz).isoformat())


def quick_range(name: str, today: Optional[date] = None) -> Tuple[date, date]:
    today = today or local_today()
    if name == "today":
        return today, today
    if name == "week":
        return today - timedelta(days=7), today
    if name == "month":
        last = calendar.monthrange(today.year, today.month)[1]
        return today.replace(day=1), today.replace(day=last)
    if name == "year":
        return date(today.year, 1, 1), date(today.year, 12, 31)
    raise ValueError(f"Unknown range: {name}")


def trend_percentage(today_revenue: float, yesterday_revenue: float) -> float:
    if yesterday_revenue > 0:
        return (today_revenue - yesterday_revenue) / yesterday_revenue * 100
    if today_revenue > 0:
        return 100.0
    return 0.0


# ---------------- Sale items ----------------
def _one(v):
    # embedded PostgREST relations can come back as a list
    if isinstance(v, list):
        return v[0] if v else {}
    return v or {}


def history_frame(items: List[Dict[str, Any]], tz: Optional[ZoneInfo] = None) -> pd.DataFrame:
    rows = []
    for it in items or []:
        sale = _one(it.get("sales"))
        product = _one(it.get("products"))
        qty = int(it.get("qty") or 1)
        qty_bottles = int(it.get("qty_bottles") or qty)
        unit_price = float(it.get("unit_price") or 0)
        total_price = float(it.get("total_price") or 0)
        cost = float(product.get("cost_per_bottle") or 0)
        cogs = cost * qty_bottles
        rows.append({
            "created_at": sale.get("created_at"),
            "product": product.get("name") or "N/A",
            "cashier": sale.get("created_by") or "N/A",
            "unit_type": it.get("unit_type") or "bottle",
            "qty": qty,
            "qty_bottles": qty_bottles,
            "unit_price": unit_price,
            "total_price": total_price,
            "cost_per_bottle": cost,
            "cogs": cogs,
            "profit": total_price - cogs,
        })
    df = pd.DataFrame(rows, columns=HISTORY_COLS)
    if df.empty:
        return df
    df["created_at"] = to_local(df["created_at"], tz)
    return df.sort_values("created_at", ascending=False, kind="stable").reset_index(drop=True)


def history_totals(df: pd.DataFrame, include_costs: bool) -> Dict[str, Any]:
    totals = {"sales": float(df["total_price"].sum()) if not df.empty else 0.0, "count": int(len(df))}
    if include_costs:
        totals["profit"] = float(df["profit"].sum()) if not df.empty else 0.0
        totals["cogs"] = float(df["cogs"].sum()) if not df.empty else 0.0
    return totals


def daily_overview(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty:
        return pd.DataFrame(columns=["date", "total", "profit", "count"])
    s = df.assign(date=df["created_at"].dt.date)
    out = (s.groupby("date", as_index=False)
             .agg(total=("total_price", "sum"), profit=("profit", "sum"), count=("total_price", "size")))
    return out.sort_values("date").reset_index(drop=True)


def top_products(df: pd.DataFrame, n: int = 5) -> pd.DataFrame:
    if df.empty:
        return pd.DataFrame(columns=["name", "value"])
    out = (df.groupby("product", as_index=False)["qty"].sum()
             .rename(columns={"product": "name", "qty": "value"}))
    return out.sort_values("value", ascending=False, kind="stable").head(n).reset_index(drop=True)


def profit_report(df: pd.DataFrame) -> Dict[str, Any]:
    revenue = float(df["total_price"].sum()) if not df.empty else 0.0
    cost = float(df["cogs"].sum()) if not df.empty else 0.0
    return {
        "total_revenue": revenue,
        "total_cost": cost,
        "total_profit": revenue - cost,
        "total_transactions": int(len(df)),
        "data": df,
    }


def stock_report(products: List[Dict[str, Any]], totals: List[Dict[str, Any]]) -> Dict[str, Any]:
    by_id = {t["product_id"]: int(t.get("total_stock_bottles") or 0) for t in totals or []}
    rows = []
    for p in products or []:
        stock = by_id.get(p["id"], 0)
        rows.append({
            "name": p.get("name"),
            "sku": p.get("sku") or "",
            "bottles_per_case": p.get("bottles_per_case"),
            "stock": stock,
            "status": stock_status(stock),
        })
    df = pd.DataFrame(rows, columns=["name", "sku", "bottles_per_case", "stock", "status"])
    return {
        "frame": df,
        "products": len(df),
        "low": int((df["stock"] <= REPORT_LOW_STOCK).sum()) if not df.empty else 0,
        "out": int((df["stock"] <= REPORT_OUT_OF_STOCK).sum()) if not df.empty else 0,
    }


# ---------------- Dashboard ----------------
def _sum_amount(sales) -> float:
    return float(sum(float(s.get("total_amount") or 0) for s in sales or []))


def daily_cost(cost_rows) -> float:
    total = 0.0
    for r in cost_rows or []:
        product = _one(r.get("products"))
        total += int(r.get("qty_bottles") or 0) * float(product.get("cost_per_bottle") or 0)
    return total


def load_dashboard_stats(role: Optional[str], today: Optional[date] = None, *,
                         low_threshold: int = 50, tz: Optional[ZoneInfo] = None,
                         client=None) -> Dict[str, Any]:
    c = client or db.get_client()
    tz = tz or local_tz()
    today = today or local_today(tz)
    recent = db.fetch_recent_sales(5, client=c)
    stats = {
        "total_products": db.count_active_products(client=c),
        "total_sales": len(recent),
        "total_revenue": _sum_amount(recent),
        "recent_sales": recent,
        "daily_revenue": 0.0,
        "daily_cost": 0.0,
        "daily_net_profit": 0.0,
        "trend_percentage": 0.0,
        "low_stock_alerts": [],
        "out_of_stock_products": [],
    }
    if role != "admin":
        return stats

    start_today = datetime.combine(today, time.min, tzinfo=tz).isoformat()
    start_tomorrow = datetime.combine(today + timedelta(days=1), time.min, tzinfo=tz).isoformat()
    start_yesterday = datetime.combine(today - timedelta(days=1), time.min, tzinfo=tz).isoformat()

    today_sales = db.fetch_sales_between(start_today, start_tomorrow, client=c)
    revenue = _sum_amount(today_sales)
    cost = daily_cost(db.fetch_sale_item_costs([s["id"] for s in today_sales], client=c))
    yesterday = _sum_amount(db.fetch_sales_between(start_yesterday, start_today, client=c))

    low, out = stock_alerts(db.fetch_active_products(client=c), db.fetch_locker_stock(client=c), low_threshold)
    stats.update({
        "daily_revenue": revenue,
        "daily_cost": cost,
        "daily_net_profit": revenue - cost,
        "trend_percentage": trend_percentage(revenue, yesterday),
        "low_stock_alerts": low,
        "out_of_stock_products": out,
    })
    return stats
