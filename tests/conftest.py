"""
Shared fixtures.

The database fixtures point ``conecta_loja.db.sqlite`` at a throwaway
sqlite file, so the API, the service layer and the repository are all
real; only the location of the data changes.
"""
import asyncio
import dataclasses

import pytest
from fastapi.testclient import TestClient

from conecta_loja.cart.client import CartServiceError
from conecta_loja.cart.storage import CartPersistence, LocalStore
from conecta_loja.cart.store import CartItem, Product
from conecta_loja.config import settings
from conecta_loja.constants import DISCOUNT_FIXED_VALUE, DISCOUNT_PERCENTAGE
from conecta_loja.db import sqlite as db
from conecta_loja.web.main import app


WIDGET = Product(id=1, name="Widget", price=10.0)
GADGET = Product(id=2, name="Gadget", price=25.0)
PROMO = Product(id=3, name="Promo", price=100.0, discount=20.0, discount_type=DISCOUNT_PERCENTAGE)


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    test_settings = dataclasses.replace(settings, db_path=str(tmp_path / "test.db"))
    monkeypatch.setattr(db, "settings", test_settings)
    db.init_db()
    return test_settings.db_path


@pytest.fixture
def catalog(db_path):
    """Product ids by short name."""
    return {
        "widget": db.add_product("Widget", 10.0),
        "gadget": db.add_product("Gadget", 25.0),
        "percent": db.add_product("Percent", 100.0, discount=20.0, discount_type=DISCOUNT_PERCENTAGE),
        "fixed": db.add_product("Fixed", 100.0, discount=20.0, discount_type=DISCOUNT_FIXED_VALUE),
        "hidden": db.add_product("Hidden", 5.0, available=False),
        "scarce": db.add_product("Scarce", 7.0, stock=2),
    }


@pytest.fixture
def user_token(db_path):
    user_id = db.create_user("ana")
    return db.create_session(user_id)


@pytest.fixture
def test_client(db_path):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_headers(user_token):
    return {"Authorization": f"Bearer {user_token}"}


@pytest.fixture
def local_store(tmp_path):
    return LocalStore(tmp_path / "client.json")


@pytest.fixture
def persistence(local_store):
    return CartPersistence(local_store)


class FakeCartClient:
    """
    In-memory stand-in for the cart API.

    Keeps its own server-side cart, records every call and can be told to
    fail specific operations.
    """

    def __init__(self, products=(), server_items=(), fail=()):
        self.catalog = {p.id: p for p in products}
        self.server = {it.product.id: it for it in server_items}
        self.fail = set(fail)
        self.calls = []

    async def _call(self, name, *args):
        self.calls.append((name,) + args)
        await asyncio.sleep(0)
        if name in self.fail:
            raise CartServiceError(f"{name} failed")

    def _items(self):
        return list(self.server.values())

    def calls_named(self, name):
        return [c for c in self.calls if c[0] == name]

    async def get_cart(self):
        await self._call("get_cart")
        return self._items()

    async def add_to_cart(self, product_id, quantity=1):
        await self._call("add_to_cart", product_id, quantity)
        current = self.server.get(product_id)
        qty = quantity + (current.quantity if current else 0)
        self.server[product_id] = CartItem(self.catalog[product_id], qty)
        return self._items()

    async def update_cart_item(self, product_id, quantity):
        await self._call("update_cart_item", product_id, quantity)
        if quantity <= 0:
            self.server.pop(product_id, None)
        else:
            self.server[product_id] = CartItem(self.catalog[product_id], quantity)
        return self._items()

    async def remove_from_cart(self, product_id):
        await self._call("remove_from_cart", product_id)
        self.server.pop(product_id, None)
        return self._items()

    async def clear_cart(self):
        await self._call("clear_cart")
        self.server.clear()
        return {"success": True}

    async def sync_local_cart(self, local_items):
        local_items = list(local_items)
        await self._call("sync_local_cart", local_items)
        for it in local_items:
            current = self.server.get(it.product.id)
            qty = it.quantity + (current.quantity if current else 0)
            self.server[it.product.id] = CartItem(it.product, qty)
        return self._items()


@pytest.fixture
def fake_client():
    return FakeCartClient(products=(WIDGET, GADGET, PROMO))
