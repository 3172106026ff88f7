# pdf_export.py: sales history and report PDFs for st.download_button.
from datetime import date

import pandas as pd
from fpdf import FPDF
from fpdf.enums import XPos, YPos

from depot.utils import fmt_money, unit_label

GREEN = (34, 197, 94)


def _safe(text) -> str:
    # core fonts are latin-1 only
    return str(text).encode("latin-1", "replace").decode("latin-1")


def _line(pdf: FPDF, text: str, h: float = 6):
    pdf.cell(0, h, _safe(text), new_x=XPos.LMARGIN, new_y=YPos.NEXT)


def _table(pdf: FPDF, head, body, foot=None, widths=None):
    widths = widths or [(pdf.w - pdf.l_margin - pdf.r_margin) / len(head)] * len(head)
    pdf.set_font("Helvetica", "B", 8)
    pdf.set_fill_color(*GREEN)
    pdf.set_text_color(255, 255, 255)
    for w, h in zip(widths, head):
        pdf.cell(w, 7, _safe(h), border=1, fill=True)
    pdf.ln()
    pdf.set_font("Helvetica", size=8)
    pdf.set_text_color(0, 0, 0)
    for row in body:
        for w, v in zip(widths, row):
            pdf.cell(w, 6, _safe(v)[:40], border=1)
        pdf.ln()
    if foot:
        pdf.set_font("Helvetica", "B", 8)
        pdf.set_text_color(255, 255, 255)
        for w, v in zip(widths, foot):
            pdf.cell(w, 7, _safe(v), border=1, fill=True)
        pdf.ln()
        pdf.set_text_color(0, 0, 0)


def _start(title: str, date_from: date, date_to: date, app_name: str) -> FPDF:
    pdf = FPDF()
    pdf.add_page()
    pdf.set_font("Helvetica", "B", 18)
    _line(pdf, f"{title} - {app_name}", 10)
    pdf.set_font("Helvetica", size=11)
    _line(pdf, f"Période du {date_from:%d/%m/%Y} au {date_to:%d/%m/%Y}")
    pdf.ln(2)
    return pdf


def history_pdf(df: pd.DataFrame, totals: dict, date_from: date, date_to: date, *,
                include_costs: bool, cur: str = "FC", app_name: str = "Botes Depot") -> bytes:
    pdf = _start("Rapport de Ventes", date_from, date_to, app_name)
    _line(pdf, f"Total des ventes: {fmt_money(totals['sales'], cur, 2)}")
    if include_costs:
        _line(pdf, f"Bénéfice total: {fmt_money(totals.get('profit', 0), cur, 2)}")
        _line(pdf, f"Coût d'achat total: {fmt_money(totals.get('cogs', 0), cur, 2)}")
    _line(pdf, f"Nombre de transactions: {totals['count']}")
    pdf.ln(3)

    body = [
        [
            r.created_at.strftime("%d/%m/%y %H:%M") if pd.notna(r.created_at) else "",
            r.product,
            r.cashier,
            f"{r.qty} {unit_label(r.unit_type)}",
            fmt_money(r.unit_price, cur, 2),
            fmt_money(r.total_price, cur, 2),
        ]
        for r in df.itertuples(index=False)
    ]
    _table(
        pdf,
        ["Date", "Produit", "Caissier", "Qté", "Prix Unit.", "Total"],
        body,
        foot=["", "", "", "", "Total Général:", fmt_money(totals["sales"], cur, 2)],
        widths=[26, 42, 40, 26, 28, 28],
    )
    return bytes(pdf.output())


def report_pdf(report_type: str, date_from: date, date_to: date, *, overview: pd.DataFrame = None,
               top: pd.DataFrame = None, profits: dict = None, stock: dict = None,
               cur: str = "FC", app_name: str = "Botes Depot") -> bytes:
    pdf = _start("Rapport", date_from, date_to, app_name)

    if report_type == "overview":
        pdf.set_font("Helvetica", "B", 12)
        _line(pdf, "Aperçu des Ventes (7 derniers jours)", 8)
        if overview is not None and not overview.empty:
            _table(pdf, ["Date", "Ventes", "Bénéfice", "Transactions"], [
                [f"{r.date:%d/%m/%Y}", fmt_money(r.total, cur, 2), fmt_money(r.profit, cur, 2), str(r.count)]
                for r in overview.itertuples(index=False)
            ])
        if top is not None and not top.empty:
            pdf.ln(6)
            pdf.set_font("Helvetica", "B", 12)
            _line(pdf, "Top 5 Produits", 8)
            _table(pdf, ["Produit", "Quantité vendue"], [[r.name, str(r.value)] for r in top.itertuples(index=False)])

    elif report_type in ("profits", "detailed") and profits:
        pdf.set_font("Helvetica", size=11)
        _line(pdf, f"Revenus: {fmt_money(profits['total_revenue'], cur, 2)}")
        _line(pdf, f"Coûts: {fmt_money(profits['total_cost'], cur, 2)}")
        _line(pdf, f"Bénéfice: {fmt_money(profits['total_profit'], cur, 2)}")
        _line(pdf, f"Transactions: {profits['total_transactions']}")
        pdf.ln(3)
        df = profits["data"]
        if df is not None and not df.empty:
            _table(pdf, ["Produit", "Qté", "Prix Unit.", "Total", "Bénéfice"], [
                [r.product, str(r.qty), fmt_money(r.unit_price, cur, 2), fmt_money(r.total_price, cur, 2),
                 fmt_money(r.profit, cur, 2)]
                for r in df.itertuples(index=False)
            ])

    elif report_type == "stock" and stock:
        pdf.set_font("Helvetica", size=11)
        _line(pdf, f"Produits: {stock['products']}  Stock faible: {stock['low']}  Rupture: {stock['out']}")
        pdf.ln(3)
        _table(pdf, ["Produit", "SKU", "Bouteilles/casier", "Stock (bouteilles)", "Statut"], [
            [r.name, r.sku, str(r.bottles_per_case), str(r.stock), r.status]
            for r in stock["frame"].itertuples(index=False)
        ])

    return bytes(pdf.output())
