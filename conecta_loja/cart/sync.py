"""
Keeps the client cart and the server cart in step.

Anonymous shoppers only touch the local store. Once a credential shows up
the local cart is merged into the server cart, and from then on every
mutation is applied locally first and then sent to the server, whose
answer replaces the local items. Quantity changes are debounced per
product so a burst of +/- clicks ends up as one request.

If the merge on login fails the cart stays local (``LOCAL_FALLBACK``) and
the next mutation retries the whole merge instead of sending one line, so
items the server has never seen are not dropped by its answer.

Server answers keep the local line of any product whose quantity change is
still waiting for its timer; that change has not been sent yet.

Known gap: server snapshots for different products are not sequenced, so
a slow answer can briefly overwrite a newer one (last response wins).
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from conecta_loja.cart.auth import CredentialWatcher
from conecta_loja.cart.client import CartServiceClient, CartServiceError
from conecta_loja.cart.storage import CartPersistence
from conecta_loja.cart.store import (
    AddItem,
    CartItem,
    CartMode,
    CartStore,
    ClearCart,
    Product,
    RemoveItem,
    SetUserLoggedIn,
    SetUserLoggedOut,
    SyncWithServer,
    UpdateQuantity,
)
from conecta_loja.config import settings

logger = logging.getLogger(__name__)


class CartSyncError(Exception):
    pass


class CartSyncEngine:
    def __init__(
        self,
        store: CartStore,
        persistence: CartPersistence,
        client: CartServiceClient,
        debounce: Optional[float] = None,
    ) -> None:
        self.store = store
        self.persistence = persistence
        self.client = client
        self.debounce = settings.debounce_ms / 1000 if debounce is None else debounce
        self._pending: Dict[int, asyncio.Task] = {}
        self._detach: Optional[Callable[[], None]] = None

    # ---------------- session transitions ----------------

    def attach(self, watcher: CredentialWatcher) -> None:
        self._detach = watcher.subscribe(self.handle_user_login, self.handle_user_logout)

    async def handle_user_login(self) -> bool:
        return await self._merge_local()

    async def handle_user_logout(self) -> None:
        self.cancel_pending()
        self.store.dispatch(SetUserLoggedOut())
        self.persistence.clear()

    async def _merge_local(self) -> bool:
        """
        Send the whole local cart to the server and adopt its answer.

        Used on login and, after a failed login merge, before the next
        mutation. On failure the local cart is kept and the mode settles on
        ``LOCAL_FALLBACK``.
        """
        self.store.dispatch(SetUserLoggedIn(is_syncing=True))
        local_items = self.store.state.items
        try:
            if local_items:
                items = await self.client.sync_local_cart(local_items)
            else:
                items = await self.client.get_cart()
        except CartServiceError as e:
            logger.warning("Cart merge failed, keeping local cart: %s", e.message)
            if self.store.state.is_logged_in:
                self.store.dispatch(SetUserLoggedIn(is_syncing=False))
            return False

        if not self._apply_server_items(items):
            return False
        logger.info("Cart merged with server: %d items", len(self.store.state.items))
        return True

    @property
    def _unmerged(self) -> bool:
        return self.store.state.mode is CartMode.LOCAL_FALLBACK

    # ---------------- mutations ----------------

    async def add_item(self, product: Product, quantity: int = 1) -> None:
        self.store.dispatch(AddItem(product, quantity))
        if not self.store.state.is_logged_in:
            return
        if self._unmerged:
            # the merge carries the new line too
            await self._merge_local()
            return
        try:
            items = await self.client.add_to_cart(product.id, quantity)
        except CartServiceError as e:
            # local add already applied, that is the fallback
            logger.warning("add_to_cart(%s) failed, cart kept locally: %s", product.id, e.message)
            return
        self._apply_server_items(items)

    async def remove_item(self, product_id: int) -> None:
        self._cancel(product_id)
        self.store.dispatch(RemoveItem(product_id))
        if not self.store.state.is_logged_in:
            return
        # the server may hold the line from before login, so it is removed there after the merge
        if self._unmerged and not await self._merge_local():
            return
        try:
            items = await self.client.remove_from_cart(product_id)
        except CartServiceError as e:
            logger.warning("remove_from_cart(%s) failed, cart kept locally: %s", product_id, e.message)
            return
        self._apply_server_items(items)

    async def update_quantity(self, product_id: int, quantity: int) -> None:
        self.store.dispatch(UpdateQuantity(product_id, quantity))
        if not self.store.state.is_logged_in:
            return

        self._cancel(product_id)
        if quantity > 0 and self.store.state.find(product_id) is None:
            logger.debug("Quantity change for %s ignored, not in cart", product_id)
            return

        if self._unmerged:
            merged = await self._merge_local()
            if quantity > 0:
                return
            if not merged:
                raise CartSyncError("Cart could not be synced with the server")

        if quantity <= 0:
            # the item is gone locally, nothing left to debounce against
            await self._push_quantity(product_id, 0)
            return
        self._pending[product_id] = asyncio.create_task(self._debounced_update(product_id, quantity))

    async def clear_cart(self) -> None:
        self.cancel_pending()
        self.store.dispatch(ClearCart())
        if not self.store.state.is_logged_in:
            return
        # an empty merge makes sure the server cart exists before it is cleared
        if self._unmerged and not await self._merge_local():
            raise CartSyncError("Cart could not be synced with the server")
        try:
            await self.client.clear_cart()
        except CartServiceError as e:
            logger.error("clear_cart failed on server: %s", e.message)
            raise CartSyncError(e.message) from e
        self._apply_server_items([])

    # ---------------- debounce ----------------

    @property
    def pending_updates(self) -> List[int]:
        return [pid for pid, task in self._pending.items() if not task.done()]

    async def _debounced_update(self, product_id: int, quantity: int) -> None:
        await asyncio.sleep(self.debounce)
        if self._pending.get(product_id) is asyncio.current_task():
            del self._pending[product_id]

        current = self.store.state.quantity_of(product_id)
        if current is None:
            return
        try:
            await self._push_quantity(product_id, current)
        except CartSyncError:
            # already logged; nobody is awaiting a timer
            pass

    async def _push_quantity(self, product_id: int, quantity: int) -> None:
        try:
            items = await self.client.update_cart_item(product_id, quantity)
        except CartServiceError as e:
            logger.error("update_cart_item(%s, %s) failed: %s", product_id, quantity, e.message)
            raise CartSyncError(e.message) from e
        self._apply_server_items(items)

    def _cancel(self, product_id: int) -> None:
        task = self._pending.pop(product_id, None)
        if task is not None and not task.done():
            task.cancel()

    def cancel_pending(self) -> None:
        for pid in list(self._pending):
            self._cancel(pid)

    # ---------------- helpers ----------------

    def _keep_pending_lines(self, items: Iterable[CartItem]) -> Tuple[CartItem, ...]:
        local = self.store.state
        waiting = {pid: local.find(pid) for pid in self.pending_updates}
        waiting = {pid: it for pid, it in waiting.items() if it is not None}

        out = [CartItem(it.product, waiting[it.product.id].quantity) if it.product.id in waiting else it for it in items]
        seen = {it.product.id for it in out}
        out.extend(it for pid, it in waiting.items() if pid not in seen)
        return tuple(out)

    def _apply_server_items(self, items: Iterable[CartItem]) -> bool:
        if not self.store.state.is_logged_in:
            logger.debug("Dropping server cart received after logout")
            return False
        was_loaded = self.store.state.is_server_cart_loaded
        self.store.dispatch(SyncWithServer(self._keep_pending_lines(items)))
        if not was_loaded:
            # the server owns the cart from now on
            self.persistence.clear()
        return True

    async def close(self) -> None:
        tasks = [t for t in self._pending.values() if not t.done()]
        self.cancel_pending()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._detach is not None:
            self._detach()
            self._detach = None
