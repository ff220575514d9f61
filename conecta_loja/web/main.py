from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from conecta_loja.constants import ERR_UNAUTHORIZED, ERR_VALIDATION
from conecta_loja.db.sqlite import get_user_id_by_token, init_db, list_products
from conecta_loja.services import cart as cart_service
from conecta_loja.services.cart import CartError

logger = logging.getLogger(__name__)

app = FastAPI(title="Conecta Loja Cart API")


class CartItemIn(BaseModel):
    product_id: int = Field(gt=0)
    quantity: int = 1


class CartItemUpdate(BaseModel):
    product_id: int = Field(gt=0)
    quantity: int = Field(ge=0)


class CartSyncIn(BaseModel):
    items: List[CartItemIn] = Field(default_factory=list)


@app.on_event("startup")
def _startup() -> None:
    init_db()


@app.exception_handler(CartError)
async def _cart_error(request: Request, exc: CartError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, "code": exc.code},
    )


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg', 'invalid value')}" if field else "Invalid request"
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": message, "code": ERR_VALIDATION},
    )


def current_user_id(authorization: Optional[str] = Header(None)) -> int:
    token = ""
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    user_id = get_user_id_by_token(token) if token else None
    if user_id is None:
        raise CartError("User not authenticated", code=ERR_UNAUTHORIZED, status_code=401)
    return user_id


def _ok(cart: Dict[str, Any], message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True, "cart": cart}
    if message:
        body["message"] = message
    return body


# ---------------- products ----------------

@app.get("/api/products")
def products(available: bool = True):
    return {"success": True, "products": list_products(only_available=available)}


# ---------------- cart ----------------

@app.get("/api/cart")
def get_cart(user_id: int = Depends(current_user_id)):
    return _ok(cart_service.get_cart(user_id))


@app.post("/api/cart/items")
def add_to_cart(body: CartItemIn, user_id: int = Depends(current_user_id)):
    cart = cart_service.add_to_cart(user_id, body.product_id, body.quantity)
    return _ok(cart, "Product added to cart")


@app.put("/api/cart/items")
def update_cart_item(body: CartItemUpdate, user_id: int = Depends(current_user_id)):
    cart = cart_service.update_cart_item(user_id, body.product_id, body.quantity)
    return _ok(cart, "Cart item updated")


@app.delete("/api/cart/items/{product_id}")
def remove_from_cart(product_id: int, user_id: int = Depends(current_user_id)):
    cart = cart_service.remove_from_cart(user_id, product_id)
    return _ok(cart, "Item removed from cart")


@app.delete("/api/cart")
def clear_cart(user_id: int = Depends(current_user_id)):
    return cart_service.clear_cart(user_id)


@app.post("/api/cart/sync")
def sync_cart(body: CartSyncIn, user_id: int = Depends(current_user_id)):
    cart = cart_service.sync_cart(user_id, [it.model_dump() for it in body.items])
    logger.info("Synced %d local lines for user %s", len(body.items), user_id)
    return _ok(cart, "Cart synchronized")
