from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

import httpx

from conecta_loja.cart.auth import CredentialWatcher
from conecta_loja.cart.client import CartServiceClient
from conecta_loja.cart.storage import CartPersistence, CredentialStore, LocalStore
from conecta_loja.cart.store import CartStore
from conecta_loja.cart.sync import CartSyncEngine

logger = logging.getLogger(__name__)


@dataclass
class CartSession:
    """Everything one shopper's cart needs, wired together."""

    local: LocalStore
    credentials: CredentialStore
    store: CartStore
    persistence: CartPersistence
    client: CartServiceClient
    engine: CartSyncEngine
    watcher: CredentialWatcher
    _detach: List[Callable[[], None]] = field(default_factory=list, repr=False)

    async def start(self, poll: bool = True) -> None:
        self.persistence.hydrate(self.store)
        self._detach.append(self.persistence.attach(self.store))
        self.engine.attach(self.watcher)
        if poll:
            self.watcher.start()
        else:
            await self.watcher.check()

    async def login(self, token: str) -> None:
        self.credentials.set_token(token)
        await self.watcher.check()
        # a rejected token is dropped by the client during the merge
        await self.watcher.check()

    async def logout(self) -> None:
        self.credentials.clear()
        await self.watcher.check()

    async def close(self) -> None:
        await self.watcher.stop()
        await self.engine.close()
        for detach in self._detach:
            detach()
        self._detach.clear()
        await self.client.aclose()


def open_cart_session(
    path: str | Path,
    base_url: Optional[str] = None,
    http: Optional[httpx.AsyncClient] = None,
    debounce: Optional[float] = None,
    poll_interval: Optional[float] = None,
) -> CartSession:
    local = LocalStore(path)
    credentials = CredentialStore(local)
    store = CartStore()
    persistence = CartPersistence(local)
    client = CartServiceClient(
        token_provider=credentials.get_token,
        on_unauthorized=credentials.clear,
        base_url=base_url,
        http=http,
    )
    engine = CartSyncEngine(store, persistence, client, debounce=debounce)
    watcher = CredentialWatcher(credentials, interval=poll_interval)
    logger.debug("Cart session opened for %s", path)
    return CartSession(
        local=local,
        credentials=credentials,
        store=store,
        persistence=persistence,
        client=client,
        engine=engine,
        watcher=watcher,
    )
