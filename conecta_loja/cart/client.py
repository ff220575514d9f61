from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx

from conecta_loja.cart.store import CartItem
from conecta_loja.config import settings

logger = logging.getLogger(__name__)


class CartServiceError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class CartServiceClient:
    """
    Async adapter over the cart API.

    Every call returns the server's authoritative item list (``clear_cart``
    returns the raw payload) or raises ``CartServiceError``.
    """

    def __init__(
        self,
        token_provider: Callable[[], Optional[str]],
        on_unauthorized: Optional[Callable[[], None]] = None,
        base_url: Optional[str] = None,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._token_provider = token_provider
        self._on_unauthorized = on_unauthorized
        self._http = http or httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            timeout=settings.http_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self) -> Dict[str, str]:
        token = self._token_provider()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(self, method: str, url: str, json: Any = None) -> Dict[str, Any]:
        try:
            response = await self._http.request(method, url, json=json, headers=self._headers())
        except httpx.HTTPError as e:
            raise CartServiceError(f"Cart service unreachable: {e}") from e

        if response.status_code == 401:
            # expired or revoked session: drop the credential so the watcher sees a logout
            if self._on_unauthorized is not None:
                self._on_unauthorized()
            raise CartServiceError("Session expired. Please log in again.", status_code=401, code="UNAUTHORIZED")

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.is_error or not data.get("success"):
            message = data.get("error") or f"Cart service error ({response.status_code})"
            raise CartServiceError(message, status_code=response.status_code, code=data.get("code"))
        return data

    @staticmethod
    def _items(data: Dict[str, Any]) -> List[CartItem]:
        cart = data.get("cart")
        if not isinstance(cart, dict):
            raise CartServiceError("Malformed cart payload: no cart object")
        try:
            return [CartItem.from_dict(it) for it in cart.get("items") or []]
        except (KeyError, TypeError, ValueError) as e:
            raise CartServiceError(f"Malformed cart payload: {e}") from e

    async def get_cart(self) -> List[CartItem]:
        data = await self._request("GET", "/cart")
        return self._items(data)

    async def add_to_cart(self, product_id: int, quantity: int = 1) -> List[CartItem]:
        data = await self._request("POST", "/cart/items", json={"product_id": product_id, "quantity": quantity})
        return self._items(data)

    async def update_cart_item(self, product_id: int, quantity: int) -> List[CartItem]:
        data = await self._request("PUT", "/cart/items", json={"product_id": product_id, "quantity": quantity})
        return self._items(data)

    async def remove_from_cart(self, product_id: int) -> List[CartItem]:
        data = await self._request("DELETE", f"/cart/items/{product_id}")
        return self._items(data)

    async def clear_cart(self) -> Dict[str, Any]:
        return await self._request("DELETE", "/cart")

    async def sync_local_cart(self, local_items: Iterable[CartItem]) -> List[CartItem]:
        body = {"items": [{"product_id": it.product.id, "quantity": it.quantity} for it in local_items]}
        data = await self._request("POST", "/cart/sync", json=body)
        return self._items(data)
