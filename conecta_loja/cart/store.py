"""
Client-side cart state.

``reduce`` is a pure function over ``CartState``; ``CartStore`` owns the
current state, applies actions and tells subscribers what changed.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from conecta_loja.services.pricing import calc_effective_price, calc_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    price: float
    discount: Optional[float] = None
    discount_type: Optional[str] = None  # PERCENTAGE / FIXED_VALUE
    image: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Product":
        # accepts both the local snapshot and the API payload
        return cls(
            id=int(data["id"]),
            name=str(data.get("name", "")),
            price=float(data["price"]),
            discount=float(data["discount"]) if data.get("discount") is not None else None,
            discount_type=data.get("discount_type", data.get("discountType")),
            image=data.get("image"),
        )

    def effective_price(self) -> float:
        return calc_effective_price(self.price, self.discount, self.discount_type)


@dataclass(frozen=True)
class CartItem:
    product: Product
    quantity: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartItem":
        return cls(product=Product.from_dict(data["product"]), quantity=int(data["quantity"]))

    def to_dict(self) -> Dict[str, Any]:
        return {"product": asdict(self.product), "quantity": self.quantity}


class CartMode(str, Enum):
    ANONYMOUS = "anonymous"
    SYNCING = "syncing"  # login merge in flight
    LOCAL_FALLBACK = "local_fallback"  # logged in, server cart not loaded
    SERVER_BACKED = "server_backed"


@dataclass(frozen=True)
class CartState:
    items: Tuple[CartItem, ...] = ()
    mode: CartMode = CartMode.ANONYMOUS

    @property
    def is_logged_in(self) -> bool:
        return self.mode is not CartMode.ANONYMOUS

    @property
    def is_syncing(self) -> bool:
        return self.mode is CartMode.SYNCING

    @property
    def is_server_cart_loaded(self) -> bool:
        return self.mode is CartMode.SERVER_BACKED

    @property
    def total_items(self) -> int:
        return sum(it.quantity for it in self.items)

    @property
    def total_price(self) -> float:
        return calc_total((it.product.effective_price(), it.quantity) for it in self.items)

    def find(self, product_id: int) -> Optional[CartItem]:
        for it in self.items:
            if it.product.id == product_id:
                return it
        return None

    def quantity_of(self, product_id: int) -> Optional[int]:
        it = self.find(product_id)
        return it.quantity if it else None


# ---------------- actions ----------------

@dataclass(frozen=True)
class AddItem:
    product: Product
    quantity: int = 1


@dataclass(frozen=True)
class RemoveItem:
    product_id: int


@dataclass(frozen=True)
class UpdateQuantity:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class ClearCart:
    pass


@dataclass(frozen=True)
class LoadCart:
    items: Tuple[CartItem, ...] = ()


@dataclass(frozen=True)
class SyncWithServer:
    items: Tuple[CartItem, ...] = ()


@dataclass(frozen=True)
class SetUserLoggedIn:
    is_syncing: bool = False


@dataclass(frozen=True)
class SetUserLoggedOut:
    pass


CartAction = Union[
    AddItem,
    RemoveItem,
    UpdateQuantity,
    ClearCart,
    LoadCart,
    SyncWithServer,
    SetUserLoggedIn,
    SetUserLoggedOut,
]


def _without(items: Tuple[CartItem, ...], product_id: int) -> Tuple[CartItem, ...]:
    return tuple(it for it in items if it.product.id != product_id)


def reduce(state: CartState, action: CartAction) -> CartState:
    if isinstance(action, AddItem):
        pid = action.product.id
        if state.find(pid) is None:
            return replace(state, items=state.items + (CartItem(action.product, action.quantity),))
        return replace(
            state,
            items=tuple(
                replace(it, quantity=it.quantity + action.quantity) if it.product.id == pid else it
                for it in state.items
            ),
        )

    if isinstance(action, RemoveItem):
        return replace(state, items=_without(state.items, action.product_id))

    if isinstance(action, UpdateQuantity):
        if action.quantity <= 0:
            return replace(state, items=_without(state.items, action.product_id))
        return replace(
            state,
            items=tuple(
                replace(it, quantity=action.quantity) if it.product.id == action.product_id else it
                for it in state.items
            ),
        )

    if isinstance(action, ClearCart):
        return replace(state, items=())

    if isinstance(action, LoadCart):
        return replace(state, items=tuple(action.items))

    if isinstance(action, SyncWithServer):
        if state.mode is CartMode.ANONYMOUS:
            # late response for a session that already ended
            return state
        return CartState(items=tuple(action.items), mode=CartMode.SERVER_BACKED)

    if isinstance(action, SetUserLoggedIn):
        if action.is_syncing:
            mode = CartMode.SYNCING
        elif state.mode is CartMode.SERVER_BACKED:
            mode = CartMode.SERVER_BACKED
        else:
            mode = CartMode.LOCAL_FALLBACK
        return replace(state, mode=mode)

    if isinstance(action, SetUserLoggedOut):
        return CartState()

    raise TypeError(f"unknown cart action: {action!r}")


Listener = Callable[[CartState, CartState], None]


@dataclass
class CartStore:
    state: CartState = field(default_factory=CartState)
    _listeners: List[Listener] = field(default_factory=list, repr=False)

    def dispatch(self, action: CartAction) -> CartState:
        previous = self.state
        self.state = reduce(previous, action)
        logger.debug("cart %s -> %s (%d items)", type(action).__name__, self.state.mode.value, len(self.state.items))
        for listener in list(self._listeners):
            listener(previous, self.state)
        return self.state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe
