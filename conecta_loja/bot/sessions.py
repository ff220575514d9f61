from __future__ import annotations

import logging
import os
import time
from typing import Dict, Optional

from conecta_loja.cart.session import CartSession, open_cart_session
from conecta_loja.config import settings

logger = logging.getLogger(__name__)

SESSIONS: Dict[int, CartSession] = {}  # chat_id -> cart session
LAST_SEEN: Dict[int, float] = {}  # chat_id -> clock value of the last use

_clock = time.monotonic


def session_path(chat_id: int) -> str:
    return os.path.join(settings.client_data_dir, f"{chat_id}.json")


async def get_session(chat_id: int) -> CartSession:
    now = _clock()
    await evict_idle(now, keep=chat_id)

    session = SESSIONS.get(chat_id)
    if session is None:
        session = open_cart_session(session_path(chat_id))
        await session.start()
        SESSIONS[chat_id] = session
        logger.info("Cart session started for chat %s", chat_id)
    LAST_SEEN[chat_id] = now
    return session


async def evict_idle(now: Optional[float] = None, keep: Optional[int] = None) -> int:
    """
    Close sessions nobody used for ``settings.session_idle_seconds``.

    Everything a session holds is in its chat file, so a closed one is
    rebuilt on the next message. Sessions with a quantity change still
    waiting to be sent are left alone.
    """
    now = _clock() if now is None else now
    idle = [
        chat_id
        for chat_id, seen in LAST_SEEN.items()
        if chat_id != keep
        and now - seen > settings.session_idle_seconds
        and chat_id in SESSIONS
        and not SESSIONS[chat_id].engine.pending_updates
    ]
    for chat_id in idle:
        await _close(chat_id)
    if idle:
        logger.info("Closed %d idle cart sessions", len(idle))
    return len(idle)


async def _close(chat_id: int) -> None:
    session = SESSIONS.pop(chat_id, None)
    LAST_SEEN.pop(chat_id, None)
    if session is None:
        return
    try:
        await session.close()
    except Exception:
        logger.exception("Failed to close cart session for chat %s", chat_id)


async def close_all() -> None:
    for chat_id in list(SESSIONS):
        await _close(chat_id)
