from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Union

from conecta_loja.cart.storage import CredentialStore
from conecta_loja.config import settings

logger = logging.getLogger(__name__)

Callback = Callable[[], Union[None, Awaitable[Any]]]


class CredentialWatcher:
    """
    Turns the credential slot into login/logout events.

    Polls the slot; a credential appearing where none was seen fires the
    login callbacks, one disappearing fires the logout callbacks.
    """

    def __init__(self, credentials: CredentialStore, interval: Optional[float] = None) -> None:
        self.credentials = credentials
        self.interval = settings.auth_poll_seconds if interval is None else interval
        self._logged_in = False
        self._subscribers: List[Tuple[Callback, Callback]] = []
        self._task: Optional[asyncio.Task] = None

    @property
    def logged_in(self) -> bool:
        return self._logged_in

    def subscribe(self, on_login: Callback, on_logout: Callback) -> Callable[[], None]:
        entry = (on_login, on_logout)
        self._subscribers.append(entry)

        def _unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return _unsubscribe

    async def _fire(self, index: int) -> None:
        for entry in list(self._subscribers):
            result = entry[index]()
            if inspect.isawaitable(result):
                await result

    async def check(self) -> None:
        has_token = self.credentials.get_token() is not None
        if has_token == self._logged_in:
            return
        self._logged_in = has_token
        logger.info("Credential %s", "detected, logging in" if has_token else "gone, logging out")
        await self._fire(0 if has_token else 1)

    async def _poll(self) -> None:
        while True:
            try:
                await self.check()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Credential poll failed")
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._poll())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
