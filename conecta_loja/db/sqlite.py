from __future__ import annotations

import os
import secrets
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional

from conecta_loja.config import settings

PRODUCT_COLUMNS = "id, name, price, discount, discount_type, image, available, stock"


def _connect() -> sqlite3.Connection:
    parent = os.path.dirname(settings.db_path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    conn = sqlite3.connect(settings.db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db() -> None:
    conn = _connect()
    try:
        with open(os.path.join(os.path.dirname(__file__), "schema.sql"), "r", encoding="utf-8") as f:
            conn.executescript(f.read())
        conn.commit()
    finally:
        conn.close()


def _product(row: sqlite3.Row) -> Dict[str, Any]:
    d = dict(row)
    d["available"] = bool(d["available"])
    return d


# ---------------- products ----------------

def add_product(
    name: str,
    price: float,
    discount: Optional[float] = None,
    discount_type: Optional[str] = None,
    image: Optional[str] = None,
    available: bool = True,
    stock: Optional[int] = None,
) -> int:
    conn = _connect()
    try:
        cur = conn.execute(
            "INSERT INTO products(name, price, discount, discount_type, image, available, stock) VALUES(?,?,?,?,?,?,?)",
            (name, float(price), discount, discount_type, image, int(available), stock),
        )
        conn.commit()
        return int(cur.lastrowid)
    finally:
        conn.close()


def list_products(only_available: bool = False) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        sql = f"SELECT {PRODUCT_COLUMNS} FROM products"
        if only_available:
            sql += " WHERE available = 1"
        rows = conn.execute(sql + " ORDER BY name").fetchall()
        return [_product(r) for r in rows]
    finally:
        conn.close()


def find_product(product_id: int) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE id = ?", (product_id,)).fetchone()
        return _product(row) if row else None
    finally:
        conn.close()


# ---------------- users / sessions ----------------

def create_user(name: str) -> int:
    conn = _connect()
    try:
        conn.execute("INSERT OR IGNORE INTO users(name) VALUES(?)", (name,))
        conn.commit()
        row = conn.execute("SELECT id FROM users WHERE name = ?", (name,)).fetchone()
        return int(row["id"])
    finally:
        conn.close()


def create_session(user_id: int) -> str:
    token = secrets.token_urlsafe(24)
    conn = _connect()
    try:
        conn.execute(
            "INSERT INTO sessions(token, user_id, created_at) VALUES(?,?,?)",
            (token, user_id, datetime.now().strftime("%Y-%m-%d %H:%M:%S")),
        )
        conn.commit()
        return token
    finally:
        conn.close()


def revoke_session(token: str) -> None:
    conn = _connect()
    try:
        conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
        conn.commit()
    finally:
        conn.close()


def get_user_id_by_token(token: str) -> Optional[int]:
    conn = _connect()
    try:
        row = conn.execute("SELECT user_id FROM sessions WHERE token = ?", (token,)).fetchone()
        return int(row["user_id"]) if row else None
    finally:
        conn.close()


# ---------------- carts ----------------

def find_cart(user_id: int) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute("SELECT id, user_id FROM carts WHERE user_id = ?", (user_id,)).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def get_or_create_cart(user_id: int) -> Dict[str, Any]:
    conn = _connect()
    try:
        conn.execute("INSERT OR IGNORE INTO carts(user_id) VALUES(?)", (user_id,))
        conn.commit()
        row = conn.execute("SELECT id, user_id FROM carts WHERE user_id = ?", (user_id,)).fetchone()
        return dict(row)
    finally:
        conn.close()


def list_cart_items(cart_id: int) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(
            """
            SELECT ci.quantity, p.id, p.name, p.price, p.discount, p.discount_type,
                   p.image, p.available, p.stock
            FROM cart_items ci
            JOIN products p ON p.id = ci.product_id
            WHERE ci.cart_id = ?
            ORDER BY ci.rowid
            """,
            (cart_id,),
        ).fetchall()
        out = []
        for r in rows:
            d = _product(r)
            qty = int(d.pop("quantity"))
            out.append({"product": d, "quantity": qty})
        return out
    finally:
        conn.close()


def add_or_increment_cart_item(cart_id: int, product_id: int, qty: int) -> None:
    conn = _connect()
    try:
        conn.execute(
            "INSERT INTO cart_items(cart_id, product_id, quantity) VALUES(?,?,?) "
            "ON CONFLICT(cart_id, product_id) DO UPDATE SET quantity = quantity + excluded.quantity",
            (cart_id, product_id, qty),
        )
        conn.commit()
    finally:
        conn.close()


def set_cart_item_quantity(cart_id: int, product_id: int, qty: int) -> None:
    if qty <= 0:
        remove_cart_item(cart_id, product_id)
        return
    conn = _connect()
    try:
        conn.execute(
            "INSERT INTO cart_items(cart_id, product_id, quantity) VALUES(?,?,?) "
            "ON CONFLICT(cart_id, product_id) DO UPDATE SET quantity = excluded.quantity",
            (cart_id, product_id, qty),
        )
        conn.commit()
    finally:
        conn.close()


def remove_cart_item(cart_id: int, product_id: int) -> bool:
    conn = _connect()
    try:
        cur = conn.execute(
            "DELETE FROM cart_items WHERE cart_id = ? AND product_id = ?",
            (cart_id, product_id),
        )
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def clear_cart(cart_id: int) -> int:
    conn = _connect()
    try:
        cur = conn.execute("DELETE FROM cart_items WHERE cart_id = ?", (cart_id,))
        conn.commit()
        return cur.rowcount
    finally:
        conn.close()
