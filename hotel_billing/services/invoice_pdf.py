from __future__ import annotations

from io import BytesIO
from typing import Any, Mapping

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from hotel_billing.services.pricing import quantize_money


def _money(value: Any) -> str:
    return f"{quantize_money(value):,.2f}"


def _adjustment(invoice_data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    return invoice_data.get(key) or {}


def render_invoice_pdf(invoice_data: Mapping[str, Any]) -> bytes:
    """Renders an invoice document (as dumped by InvoiceDocument) to PDF bytes."""
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4

    y = height - 40

    def write_line(text: str = "", gap: int = 18, bold: bool = False, font_size: int = 10, x: int = 40):
        nonlocal y
        if y < 60:
            c.showPage()
            y = height - 40
        c.setFont("Helvetica-Bold" if bold else "Helvetica", font_size)
        c.drawString(x, y, text)
        y -= gap

    hotel_name = invoice_data.get("hotel_name") or ""
    write_line("========================================", gap=14)
    if hotel_name:
        write_line(hotel_name, gap=22, bold=True, font_size=14)
    write_line(f"INVOICE {invoice_data.get('invoice_number', '')}", gap=20, bold=True, font_size=12)
    write_line(f"Table: {invoice_data.get('table_number', '')}", gap=16)
    write_line(f"Date: {invoice_data.get('date', '')}", gap=16)
    write_line("========================================", gap=22)

    write_line("ITEMS", gap=18, bold=True)
    items = invoice_data.get("items") or []
    if not items:
        write_line("(no items)", gap=18)
    for item in items:
        name = str(item.get("dish_name", "") or "")
        write_line(
            f"{item.get('quantity', 0)} x {name} @ {_money(item.get('price'))} = {_money(item.get('total'))}",
            gap=16,
        )

    write_line("----------------------------------------", gap=18)
    adjustment_a = _adjustment(invoice_data, "adjustment_a")
    adjustment_b = _adjustment(invoice_data, "adjustment_b")
    write_line(f"Subtotal: {_money(invoice_data.get('subtotal'))}", gap=16)
    write_line(f"Discount: -{_money(invoice_data.get('discount'))}", gap=16)
    write_line(f"Tax ({adjustment_a.get('percentage', 0)}%): {_money(adjustment_a.get('amount'))}", gap=16)
    write_line(
        f"Service charge ({adjustment_b.get('percentage', 0)}%): {_money(adjustment_b.get('amount'))}",
        gap=16,
    )
    write_line("----------------------------------------", gap=18)
    write_line(f"TOTAL: {_money(invoice_data.get('grand_total'))}", gap=22, bold=True, font_size=12)
    write_line("========================================", gap=14)

    c.showPage()
    c.save()
    return buffer.getvalue()
