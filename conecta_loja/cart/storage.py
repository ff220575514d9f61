from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from conecta_loja.cart.store import CartItem, CartState, CartStore, LoadCart
from conecta_loja.constants import AUTH_TOKEN_KEY, CART_STORAGE_KEY

logger = logging.getLogger(__name__)


class LocalStore:
    """
    Durable key-value store of string values, one JSON file per shopper.
    Survives restarts the way browser localStorage survives page reloads.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Local store %s is unreadable, starting empty: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Local store %s has unexpected format, starting empty", self.path)
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


class CartPersistence:
    """Mirrors cart items into the local slot while the server is not authoritative."""

    def __init__(self, store: LocalStore, key: str = CART_STORAGE_KEY) -> None:
        self.store = store
        self.key = key

    def save(self, items: Iterable[CartItem]) -> None:
        payload = {
            "items": [it.to_dict() for it in items],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.store.set(self.key, json.dumps(payload, ensure_ascii=False))
        except OSError as e:
            logger.error("Failed to save cart to local store: %s", e)

    def load(self) -> Optional[List[CartItem]]:
        raw = self.store.get(self.key)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            return [CartItem.from_dict(it) for it in data.get("items") or []]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Malformed cart in local store, treating as empty: %s", e)
            return None

    def clear(self) -> None:
        self.store.remove(self.key)

    def hydrate(self, cart: CartStore) -> None:
        items = self.load()
        if items is not None:
            cart.dispatch(LoadCart(tuple(items)))

    def attach(self, cart: CartStore) -> Callable[[], None]:
        def _on_change(previous: CartState, current: CartState) -> None:
            if previous.items == current.items:
                return
            if current.is_logged_in and current.is_server_cart_loaded:
                return
            self.save(current.items)

        return cart.subscribe(_on_change)


class CredentialStore:
    """The authentication credential slot. Only presence matters to the cart."""

    def __init__(self, store: LocalStore, key: str = AUTH_TOKEN_KEY) -> None:
        self.store = store
        self.key = key

    def get_token(self) -> Optional[str]:
        token = self.store.get(self.key)
        return token or None

    def set_token(self, token: str) -> None:
        self.store.set(self.key, token)

    def clear(self) -> None:
        self.store.remove(self.key)
