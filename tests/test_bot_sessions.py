import asyncio
import dataclasses

import pytest

from conecta_loja.bot import sessions
from conecta_loja.cart.store import AddItem, CartItem, SetUserLoggedIn, SyncWithServer
from conecta_loja.config import settings

from conftest import WIDGET


@pytest.fixture
def clock(tmp_path, monkeypatch):
    now = [0.0]
    test_settings = dataclasses.replace(settings, client_data_dir=str(tmp_path), session_idle_seconds=60.0)
    monkeypatch.setattr(sessions, "settings", test_settings)
    monkeypatch.setattr(sessions, "SESSIONS", {})
    monkeypatch.setattr(sessions, "LAST_SEEN", {})
    monkeypatch.setattr(sessions, "_clock", lambda: now[0])
    return now


def test_same_chat_gets_same_session(clock):
    async def scenario():
        try:
            first = await sessions.get_session(1)
            clock[0] = 500
            return first, await sessions.get_session(1)
        finally:
            await sessions.close_all()

    first, again = asyncio.run(scenario())

    assert first is again


def test_idle_sessions_are_closed(clock):
    async def scenario():
        try:
            await sessions.get_session(1)
            clock[0] = 30
            await sessions.get_session(2)
            clock[0] = 100
            await sessions.get_session(2)
            return sorted(sessions.SESSIONS), sorted(sessions.LAST_SEEN)
        finally:
            await sessions.close_all()

    open_chats, seen_chats = asyncio.run(scenario())

    assert open_chats == [2]
    assert seen_chats == [2]
    assert sessions.SESSIONS == {}


def test_evicted_cart_is_reloaded_from_its_file(clock):
    async def scenario():
        try:
            first = await sessions.get_session(1)
            await first.engine.add_item(WIDGET, 2)
            clock[0] = 100
            await sessions.get_session(2)
            assert 1 not in sessions.SESSIONS
            reopened = await sessions.get_session(1)
            return first, reopened
        finally:
            await sessions.close_all()

    first, reopened = asyncio.run(scenario())

    assert reopened is not first
    assert reopened.store.state.items == (CartItem(WIDGET, 2),)


def test_session_with_waiting_quantity_change_is_kept(clock):
    async def scenario():
        try:
            first = await sessions.get_session(1)
            first.store.dispatch(SetUserLoggedIn(is_syncing=True))
            first.store.dispatch(SyncWithServer(()))
            first.store.dispatch(AddItem(WIDGET, 1))
            await first.engine.update_quantity(WIDGET.id, 3)
            clock[0] = 100
            await sessions.get_session(2)
            return sorted(sessions.SESSIONS)
        finally:
            await sessions.close_all()

    assert asyncio.run(scenario()) == [1, 2]
