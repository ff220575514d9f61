import pytest

from conecta_loja.cart.store import (
    AddItem,
    CartItem,
    CartMode,
    CartState,
    CartStore,
    ClearCart,
    LoadCart,
    Product,
    RemoveItem,
    SetUserLoggedIn,
    SetUserLoggedOut,
    SyncWithServer,
    UpdateQuantity,
    reduce,
)
from conecta_loja.constants import DISCOUNT_FIXED_VALUE, DISCOUNT_PERCENTAGE

from conftest import GADGET, WIDGET


def _apply(*actions, state=None):
    state = state or CartState()
    for action in actions:
        state = reduce(state, action)
    return state


class TestItems:
    def test_add_new_item(self):
        state = _apply(AddItem(WIDGET, 2))

        assert state.items == (CartItem(WIDGET, 2),)
        assert state.total_items == 2
        assert state.total_price == 20.0

    def test_add_same_product_accumulates(self):
        state = _apply(AddItem(WIDGET, 2), AddItem(WIDGET, 3))

        assert len(state.items) == 1
        assert state.items[0].quantity == 5
        assert state.total_price == 50.0

    def test_add_defaults_to_one(self):
        assert _apply(AddItem(WIDGET)).items[0].quantity == 1

    def test_add_keeps_first_add_order(self):
        state = _apply(AddItem(WIDGET), AddItem(GADGET), AddItem(WIDGET, 4))

        assert [it.product.id for it in state.items] == [WIDGET.id, GADGET.id]

    def test_add_does_not_validate_quantity(self):
        # callers validate before dispatching
        state = _apply(AddItem(WIDGET, 0))
        assert state.items[0].quantity == 0

    def test_remove_is_idempotent(self):
        base = _apply(AddItem(WIDGET), AddItem(GADGET))

        once = reduce(base, RemoveItem(WIDGET.id))
        twice = reduce(once, RemoveItem(WIDGET.id))

        assert once == twice
        assert [it.product.id for it in once.items] == [GADGET.id]

    def test_remove_absent_is_noop(self):
        base = _apply(AddItem(WIDGET))
        assert reduce(base, RemoveItem(999)) == base

    def test_update_replaces_quantity(self):
        state = _apply(AddItem(WIDGET, 2), UpdateQuantity(WIDGET.id, 7))
        assert state.items[0].quantity == 7

    @pytest.mark.parametrize("qty", [0, -1, -10])
    def test_update_to_non_positive_removes(self, qty):
        state = _apply(AddItem(WIDGET, 2), AddItem(GADGET), UpdateQuantity(WIDGET.id, qty))

        assert state.find(WIDGET.id) is None
        assert state.find(GADGET.id) is not None

    def test_update_absent_is_noop(self):
        base = _apply(AddItem(WIDGET))
        assert reduce(base, UpdateQuantity(999, 5)) == base

    def test_clear(self):
        assert _apply(AddItem(WIDGET), AddItem(GADGET), ClearCart()).items == ()

    def test_load_replaces_items(self):
        items = (CartItem(GADGET, 4),)
        state = _apply(AddItem(WIDGET), LoadCart(items))
        assert state.items == items


class TestTotals:
    def test_percentage_discount_total(self):
        p = Product(id=10, name="P", price=100.0, discount=20.0, discount_type=DISCOUNT_PERCENTAGE)
        assert _apply(AddItem(p, 1)).total_price == 80.0

    def test_fixed_discount_total(self):
        p = Product(id=11, name="F", price=100.0, discount=20.0, discount_type=DISCOUNT_FIXED_VALUE)
        assert _apply(AddItem(p, 2)).total_price == 160.0

    def test_totals_match_item_sums(self):
        state = _apply(AddItem(WIDGET, 3), AddItem(GADGET, 2), UpdateQuantity(WIDGET.id, 1))

        assert state.total_items == sum(it.quantity for it in state.items) == 3
        assert state.total_price == 10.0 + 2 * 25.0

    def test_empty_cart_totals(self):
        assert CartState().total_items == 0
        assert CartState().total_price == 0.0


class TestModes:
    def test_initial_state_is_anonymous(self):
        state = CartState()
        assert state.mode is CartMode.ANONYMOUS
        assert not state.is_logged_in
        assert not state.is_server_cart_loaded
        assert not state.is_syncing

    def test_login_while_syncing(self):
        state = _apply(SetUserLoggedIn(is_syncing=True))
        assert state.mode is CartMode.SYNCING
        assert state.is_logged_in and state.is_syncing

    def test_failed_sync_leaves_local_fallback(self):
        state = _apply(AddItem(WIDGET), SetUserLoggedIn(is_syncing=True), SetUserLoggedIn(is_syncing=False))

        assert state.mode is CartMode.LOCAL_FALLBACK
        assert state.is_logged_in
        assert not state.is_server_cart_loaded
        assert state.items == (CartItem(WIDGET, 1),)

    def test_sync_with_server_marks_loaded(self):
        server_items = (CartItem(GADGET, 2),)
        state = _apply(AddItem(WIDGET), SetUserLoggedIn(is_syncing=True), SyncWithServer(server_items))

        assert state.items == server_items
        assert state.is_server_cart_loaded
        assert not state.is_syncing

    def test_login_without_sync_keeps_loaded_cart(self):
        state = _apply(SetUserLoggedIn(True), SyncWithServer(()), SetUserLoggedIn(False))
        assert state.mode is CartMode.SERVER_BACKED

    def test_server_snapshot_after_logout_is_ignored(self):
        state = _apply(AddItem(WIDGET), SyncWithServer((CartItem(GADGET, 1),)))

        assert state.mode is CartMode.ANONYMOUS
        assert state.items == (CartItem(WIDGET, 1),)

    def test_logout_resets_everything(self):
        state = _apply(SetUserLoggedIn(True), SyncWithServer((CartItem(WIDGET, 3),)), SetUserLoggedOut())

        assert state == CartState()
        assert state.items == ()
        assert not state.is_logged_in
        assert not state.is_server_cart_loaded
        assert not state.is_syncing

    def test_unknown_action_is_rejected(self):
        with pytest.raises(TypeError):
            reduce(CartState(), object())


class TestCartStore:
    def test_dispatch_notifies_with_previous_and_current(self):
        store = CartStore()
        seen = []
        store.subscribe(lambda prev, cur: seen.append((prev.total_items, cur.total_items)))

        store.dispatch(AddItem(WIDGET, 2))
        store.dispatch(AddItem(WIDGET, 1))

        assert seen == [(0, 2), (2, 3)]
        assert store.state.total_items == 3

    def test_unsubscribe(self):
        store = CartStore()
        seen = []
        unsubscribe = store.subscribe(lambda prev, cur: seen.append(cur))

        unsubscribe()
        unsubscribe()
        store.dispatch(ClearCart())

        assert seen == []
