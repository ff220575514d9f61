from urllib.parse import parse_qs, urlparse

import pytest

from conecta_loja.cart.store import CartItem, CartMode, CartState, Product
from conecta_loja.config import settings
from conecta_loja.utils.formatters import cart_text, checkout_message, money, whatsapp_url
from conecta_loja.utils.validators import parse_positive_int, require_positive_number

from conftest import PROMO, WIDGET


def _state(*items, mode=CartMode.ANONYMOUS):
    return CartState(items=tuple(items), mode=mode)


def test_money_uses_configured_currency():
    assert money(12.5) == f"12.50 {settings.currency}"


class TestCartText:
    def test_empty(self):
        assert cart_text(CartState()) == "🛒 Cart is empty"

    def test_lines_and_totals(self):
        text = cart_text(_state(CartItem(WIDGET, 2), CartItem(PROMO, 1)))

        assert f"#1 Widget × 2 = {money(20.0)}" in text
        assert f"#3 Promo × 1 = {money(80.0)}" in text
        assert "Items: 3" in text
        assert f"Total: {money(100.0)}" in text

    def test_product_names_are_escaped(self):
        odd = Product(id=9, name="<Tom & Jerry>", price=1.0)
        text = cart_text(_state(CartItem(odd, 1)))

        assert "&lt;Tom &amp; Jerry&gt;" in text

    def test_mode_notes(self):
        item = CartItem(WIDGET, 1)

        assert "syncing" in cart_text(_state(item, mode=CartMode.SYNCING))
        assert "this device only" in cart_text(_state(item, mode=CartMode.LOCAL_FALLBACK))
        server = cart_text(_state(item, mode=CartMode.SERVER_BACKED))
        assert "syncing" not in server and "this device only" not in server


class TestCheckout:
    def test_empty_cart_has_no_message(self):
        assert checkout_message(CartState()) == ""

    def test_message_uses_discounted_prices(self):
        message = checkout_message(_state(CartItem(WIDGET, 2), CartItem(PROMO, 1)))

        assert settings.store_name in message
        assert "*1.* Widget" in message
        assert "*2.* Promo" in message
        assert f"Price: {money(80.0)}" in message
        assert f"Subtotal: {money(20.0)}" in message
        assert f"Total: {money(100.0)}" in message

    def test_whatsapp_url_round_trips_text(self):
        message = "Order:\n2x Widget & more"
        url = urlparse(whatsapp_url(message))

        assert url.netloc == "wa.me"
        assert url.path == f"/{settings.store_whatsapp}"
        assert parse_qs(url.query)["text"] == [message]


class TestValidators:
    def test_parse_positive_int(self):
        assert parse_positive_int(" 12 ") == 12

    @pytest.mark.parametrize("text", ["0", "-3", "abc", ""])
    def test_parse_rejects_bad_input(self, text):
        with pytest.raises(ValueError):
            parse_positive_int(text)

    def test_require_positive_number_names_the_field(self):
        with pytest.raises(ValueError, match="product_id must be > 0"):
            require_positive_number(0, "product_id")
        with pytest.raises(ValueError):
            require_positive_number(None, "product_id")
