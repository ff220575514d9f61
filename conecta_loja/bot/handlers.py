from __future__ import annotations

from html import escape
from typing import Optional

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from conecta_loja.bot.keyboards import main_kb
from conecta_loja.bot.sessions import get_session
from conecta_loja.cart.store import Product
from conecta_loja.cart.sync import CartSyncError
from conecta_loja.config import settings
from conecta_loja.db.sqlite import create_session, create_user, find_product, init_db, list_products
from conecta_loja.utils.formatters import cart_text, checkout_message, money, whatsapp_url
from conecta_loja.utils.validators import parse_positive_int

router = Router()


def _is_admin(message: Message) -> bool:
    try:
        return int(message.from_user.id) == int(settings.admin_id)
    except Exception:
        return False


def _args(message: Message) -> list[str]:
    return (message.text or "").split()[1:]


def _parse_product_id(text: str) -> Optional[int]:
    try:
        return parse_positive_int(text.lstrip("#"), "product_id")
    except ValueError:
        return None


def _catalog_product(product_id: int) -> Optional[Product]:
    row = find_product(product_id)
    if not row or not row["available"]:
        return None
    return Product.from_dict(row)


@router.message(Command("start"))
async def cmd_start(message: Message):
    await get_session(message.chat.id)
    await message.answer(
        f"👋 Welcome to <b>{escape(settings.store_name)}</b>!\n/catalog to browse, /help for commands",
        reply_markup=main_kb(),
    )


@router.message(Command("help"))
async def cmd_help(message: Message):
    text = (
        f"<b>{escape(settings.store_name)} — commands</b>\n\n"
        "<b>Shopping</b>\n"
        "/catalog — products\n"
        "/add ID [QTY] — add to cart\n"
        "/qty ID QTY — set quantity (0 removes)\n"
        "/remove ID — remove from cart\n"
        "/clear — empty the cart\n"
        "/cart — show the cart\n"
        "/checkout — send the order over WhatsApp\n\n"
        "<b>Account</b>\n"
        "/login TOKEN — keep your cart on your account\n"
        "/logout — sign out\n"
    )
    if _is_admin(message):
        text += "\n<b>Admin</b>\n/token NAME — issue a login token\n"
    await message.answer(text)


@router.message(Command("catalog"))
async def cmd_catalog(message: Message):
    rows = list_products(only_available=True)
    if not rows:
        await message.answer("The catalog is empty for now.")
        return
    lines = ["<b>Catalog:</b>"]
    for r in rows:
        price = Product.from_dict(r).effective_price()
        old = f" <s>{money(r['price'])}</s>" if r["discount"] else ""
        lines.append(f"• #{r['id']} {escape(r['name'])} — {money(price)}{old}")
    lines.append("\nAdd with /add ID [QTY]")
    await message.answer("\n".join(lines))


@router.message(Command("add"))
async def cmd_add(message: Message):
    args = _args(message)
    if not args or len(args) > 2:
        await message.answer("Format: /add ID [QTY]")
        return

    product_id = _parse_product_id(args[0])
    if product_id is None:
        await message.answer("ID must be a positive number, e.g. /add 3")
        return
    try:
        qty = parse_positive_int(args[1], "QTY") if len(args) == 2 else 1
    except ValueError:
        await message.answer("QTY must be a whole number ≥ 1, e.g. /add 3 2")
        return

    product = _catalog_product(product_id)
    if product is None:
        await message.answer(f"❌ Product #{product_id} not found")
        return

    session = await get_session(message.chat.id)
    await session.engine.add_item(product, qty)
    await message.answer(f"✅ Added: {escape(product.name)} × {qty}\n\n{cart_text(session.store.state)}")


@router.message(Command("qty"))
async def cmd_qty(message: Message):
    args = _args(message)
    if len(args) != 2:
        await message.answer("Format: /qty ID QTY")
        return

    product_id = _parse_product_id(args[0])
    try:
        qty = int(args[1])
    except ValueError:
        qty = None
    if product_id is None or qty is None:
        await message.answer("ID and QTY must be numbers, e.g. /qty 3 5")
        return

    session = await get_session(message.chat.id)
    if session.store.state.find(product_id) is None:
        await message.answer(f"❌ Product #{product_id} is not in the cart")
        return
    try:
        await session.engine.update_quantity(product_id, qty)
    except CartSyncError as e:
        await message.answer(f"⚠️ Updated here, but not on your account: {escape(str(e))}")
    await message.answer(cart_text(session.store.state))


@router.message(Command("remove"))
async def cmd_remove(message: Message):
    args = _args(message)
    product_id = _parse_product_id(args[0]) if len(args) == 1 else None
    if product_id is None:
        await message.answer("Format: /remove ID")
        return

    session = await get_session(message.chat.id)
    await session.engine.remove_item(product_id)
    await message.answer(cart_text(session.store.state))


@router.message(Command("clear"))
async def cmd_clear(message: Message):
    session = await get_session(message.chat.id)
    try:
        await session.engine.clear_cart()
    except CartSyncError as e:
        await message.answer(f"⚠️ Cart cleared here, but not on your account: {escape(str(e))}")
        return
    await message.answer("🧹 Cart cleared")


@router.message(Command("cart"))
async def cmd_cart(message: Message):
    session = await get_session(message.chat.id)
    await message.answer(cart_text(session.store.state))


@router.message(Command("checkout"))
async def cmd_checkout(message: Message):
    session = await get_session(message.chat.id)
    text = checkout_message(session.store.state)
    if not text:
        await message.answer("🛒 Cart is empty, nothing to order")
        return
    await message.answer(
        f"{cart_text(session.store.state)}\n\n"
        f"<a href=\"{escape(whatsapp_url(text))}\">📲 Send the order on WhatsApp</a>"
    )


@router.message(Command("login"))
async def cmd_login(message: Message):
    args = _args(message)
    if len(args) != 1:
        await message.answer("Format: /login TOKEN")
        return

    session = await get_session(message.chat.id)
    if session.store.state.is_logged_in:
        await message.answer("You are already logged in. /logout first.")
        return

    await session.login(args[0])
    state = session.store.state
    if state.is_server_cart_loaded:
        await message.answer(f"✅ Logged in, cart synced with your account\n\n{cart_text(state)}")
    elif state.is_logged_in:
        await message.answer("⚠️ Logged in, but the cart could not be synced yet. It is kept on this device.")
    else:
        await message.answer("❌ Login failed: token rejected")


@router.message(Command("logout"))
async def cmd_logout(message: Message):
    session = await get_session(message.chat.id)
    if not session.store.state.is_logged_in:
        await message.answer("You are not logged in.")
        return
    await session.logout()
    await message.answer("👋 Logged out, cart cleared on this device")


@router.message(Command("token"))
async def cmd_token(message: Message):
    if not _is_admin(message):
        return

    args = _args(message)
    if len(args) != 1:
        await message.answer("Format: /token NAME")
        return

    init_db()
    user_id = create_user(args[0])
    token = create_session(user_id)
    await message.answer(f"🔑 Token for <b>{escape(args[0])}</b> (user #{user_id}):\n<code>{token}</code>")
