from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from conecta_loja.constants import ERR_CART_NOT_FOUND, ERR_VALIDATION
from conecta_loja.db import sqlite as db
from conecta_loja.services.pricing import calc_effective_price, calc_total
from conecta_loja.utils.validators import require_positive_number

logger = logging.getLogger(__name__)


class CartError(Exception):
    def __init__(self, message: str, code: str = ERR_VALIDATION, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


def _require_id(value: int, name: str) -> None:
    try:
        require_positive_number(value, name)
    except ValueError as e:
        raise CartError(str(e)) from e


def _cart_payload(cart: Dict[str, Any]) -> Dict[str, Any]:
    items = db.list_cart_items(cart["id"])
    total = calc_total(
        (calc_effective_price(it["product"]["price"], it["product"]["discount"], it["product"]["discount_type"]), it["quantity"])
        for it in items
    )
    return {"id": cart["id"], "user_id": cart["user_id"], "items": items, "total": total}


def _existing_cart(user_id: int) -> Dict[str, Any]:
    cart = db.find_cart(user_id)
    if not cart:
        raise CartError("Cart not found", code=ERR_CART_NOT_FOUND, status_code=404)
    return cart


def _check_product(product_id: int, qty: int) -> Dict[str, Any]:
    product = db.find_product(product_id)
    if not product:
        raise CartError("Product not found")
    if not product["available"]:
        raise CartError("Product is not available for purchase")
    stock: Optional[int] = product["stock"]
    if stock is not None and stock < qty:
        raise CartError(f"Insufficient stock. Available: {stock}")
    return product


def get_cart(user_id: int) -> Dict[str, Any]:
    _require_id(user_id, "user_id")
    return _cart_payload(db.get_or_create_cart(user_id))


def add_to_cart(user_id: int, product_id: int, qty: int = 1) -> Dict[str, Any]:
    _require_id(user_id, "user_id")
    _require_id(product_id, "product_id")
    if qty <= 0:
        raise CartError("Quantity must be a positive number")

    _check_product(product_id, qty)
    cart = db.get_or_create_cart(user_id)
    db.add_or_increment_cart_item(cart["id"], product_id, qty)
    return _cart_payload(cart)


def update_cart_item(user_id: int, product_id: int, qty: int) -> Dict[str, Any]:
    _require_id(user_id, "user_id")
    _require_id(product_id, "product_id")
    if qty < 0:
        raise CartError("Quantity cannot be negative")

    cart = _existing_cart(user_id)
    if qty == 0:
        db.remove_cart_item(cart["id"], product_id)
    else:
        _check_product(product_id, qty)
        db.set_cart_item_quantity(cart["id"], product_id, qty)
    return _cart_payload(cart)


def remove_from_cart(user_id: int, product_id: int) -> Dict[str, Any]:
    _require_id(user_id, "user_id")
    _require_id(product_id, "product_id")

    cart = _existing_cart(user_id)
    if not db.remove_cart_item(cart["id"], product_id):
        logger.debug("Product %s was not in cart %s", product_id, cart["id"])
    return _cart_payload(cart)


def clear_cart(user_id: int) -> Dict[str, Any]:
    _require_id(user_id, "user_id")

    cart = _existing_cart(user_id)
    removed = db.clear_cart(cart["id"])
    logger.info("Cleared cart %s (%d lines)", cart["id"], removed)
    return {"success": True, "message": "Cart cleared"}


def sync_cart(user_id: int, items: Iterable[Dict[str, int]]) -> Dict[str, Any]:
    """
    Merge a pre-login local cart into the user's server cart.

    Quantities add up with what the server cart already holds. Lines that
    fail validation are skipped so one bad product does not block the rest.
    """
    _require_id(user_id, "user_id")
    skipped: List[int] = []
    for it in items:
        try:
            add_to_cart(user_id, it["product_id"], it["quantity"])
        except CartError as e:
            logger.warning("Skipping product %s during cart sync: %s", it["product_id"], e.message)
            skipped.append(it["product_id"])

    payload = get_cart(user_id)
    payload["skipped"] = skipped
    return payload
