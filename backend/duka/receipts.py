# Overview: Plain-text receipt formatting for committed sales, plus output adapters.

from __future__ import annotations

from flask import current_app

from .money import quantize
from .models.sales import PAYMENT_CASH


def _money(amount) -> str:
    return f"{quantize(amount):,.2f}"


def _row(left: str, right: str, width: int) -> str:
    space = width - len(right) - 1
    if len(left) > space:
        left = left[: max(space - 1, 0)] + "~"
    return f"{left:<{space}} {right}"


def format_receipt(sale, *, shop_name: str, width: int = 32) -> str:
    """
    Render a committed sale as a fixed-width text receipt.

    Reads only the sale's own columns and items, so the same sale always
    produces the same text.
    """
    rule = "-" * width
    lines = [
        shop_name.center(width).rstrip(),
        rule,
        _row("Sale", sale.sale_number, width),
        _row("Date", sale.created_at.strftime("%Y-%m-%d %H:%M"), width),
        _row("Customer", sale.customer_name, width),
        rule,
    ]

    for item in sale.items:
        lines.append(_row(f"{item.quantity}x {item.product_name}", _money(item.subtotal), width))
        if item.quantity > 1:
            lines.append(f"   @ {_money(item.unit_price)}")

    lines.append(rule)
    lines.append(_row("TOTAL", _money(sale.total_amount), width))
    lines.append(_row("Paid by", sale.payment_method, width))
    if sale.payment_method == PAYMENT_CASH and sale.amount_tendered is not None:
        lines.append(_row("Cash", _money(sale.amount_tendered), width))
        lines.append(_row("Change", _money(sale.change_due or 0), width))
    lines.append(rule)
    lines.append("Thank you for shopping with us".center(width).rstrip())

    return "\n".join(lines) + "\n"


class ReceiptPrinter:
    """Output collaborator. Fire-and-forget; return values are ignored."""

    def emit(self, sale, text: str) -> None:
        raise NotImplementedError


class LogReceiptPrinter(ReceiptPrinter):
    """Default printer: writes the receipt to the application log."""

    def emit(self, sale, text: str) -> None:
        current_app.logger.info("Receipt for sale %s\n%s", sale.sale_number, text)


class NullReceiptPrinter(ReceiptPrinter):
    def emit(self, sale, text: str) -> None:
        return None


def render_for_app(sale) -> str:
    """format_receipt with the shop name and width from app config."""
    return format_receipt(
        sale,
        shop_name=current_app.config["SHOP_NAME"],
        width=current_app.config["RECEIPT_WIDTH"],
    )
