from __future__ import annotations

from html import escape
from urllib.parse import quote

from conecta_loja.cart.store import CartState
from conecta_loja.config import settings


def money(v: float) -> str:
    return f"{v:.{settings.decimals}f} {settings.currency}"


def cart_text(state: CartState) -> str:
    if not state.items:
        return "🛒 Cart is empty"

    lines = ["<b>🛒 Cart</b>"]
    for it in state.items:
        unit = it.product.effective_price()
        lines.append(f"• #{it.product.id} {escape(it.product.name)} × {it.quantity} = {money(unit * it.quantity)}")
    lines.append("")
    lines.append(f"Items: {state.total_items}")
    lines.append(f"<b>Total: {money(state.total_price)}</b>")
    if state.is_syncing:
        lines.append("⏳ syncing with your account…")
    elif state.is_logged_in and not state.is_server_cart_loaded:
        lines.append("⚠️ saved on this device only")
    return "\n".join(lines)


def checkout_message(state: CartState) -> str:
    """Order text the shopper sends to the store over WhatsApp."""
    if not state.items:
        return ""

    lines = [f"*🛒 Order - {settings.store_name}*", ""]
    for n, it in enumerate(state.items, start=1):
        unit = it.product.effective_price()
        lines.append(f"*{n}.* {it.product.name}")
        lines.append(f"   Qty: {it.quantity}x")
        lines.append(f"   Price: {money(unit)}")
        lines.append(f"   Subtotal: {money(unit * it.quantity)}")
        lines.append("")
    lines.append(f"*💰 Total: {money(state.total_price)}*")
    lines.append("")
    lines.append("I would like to place this order! 😊")
    return "\n".join(lines)


def whatsapp_url(message: str) -> str:
    return f"https://wa.me/{settings.store_whatsapp}?text={quote(message)}"
