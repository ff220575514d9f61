from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]  # .../conecta-loja
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_int(*keys: str, default: int | None = None) -> int | None:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return int(v)


def _get_float(*keys: str, default: float) -> float:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return float(v)


def _get_path(*keys: str, default: str) -> str:
    v = _get_env(*keys, default=default)
    return str(v)


@dataclass(frozen=True)
class Settings:
    bot_token: str
    admin_id: int
    db_path: str
    api_base_url: str
    client_data_dir: str
    debounce_ms: int
    auth_poll_seconds: float
    http_timeout_seconds: float
    session_idle_seconds: float
    currency: str
    decimals: int
    store_name: str
    store_whatsapp: str


settings = Settings(
    bot_token=_get_env("BOT_TOKEN", "TELEGRAM_BOT_TOKEN", default="") or "",
    admin_id=_get_int("ADMIN_ID", "ADMIN_TG_ID", default=0) or 0,
    db_path=_get_path("DB_PATH", "DATABASE_PATH", default=str(ROOT_DIR / "data" / "conecta_loja.db")),
    api_base_url=_get_env("CART_API_URL", "API_BASE_URL", default="http://127.0.0.1:8000/api") or "",
    client_data_dir=_get_path("CLIENT_DATA_DIR", default=str(ROOT_DIR / "data" / "clients")),
    debounce_ms=_get_int("CART_DEBOUNCE_MS", default=300),
    auth_poll_seconds=_get_float("AUTH_POLL_SECONDS", default=1.0),
    http_timeout_seconds=_get_float("HTTP_TIMEOUT_SECONDS", default=10.0),
    session_idle_seconds=_get_float("SESSION_IDLE_SECONDS", default=900.0),
    currency=_get_env("CURRENCY", default="BRL") or "BRL",
    decimals=_get_int("DECIMALS", default=2),
    store_name=_get_env("STORE_NAME", default="Conecta Loja") or "Conecta Loja",
    store_whatsapp=_get_env("STORE_WHATSAPP", default="5589999999999") or "",
)


def require_bot_settings() -> None:
    """Fail fast when the storefront bot is started without credentials."""
    if not settings.bot_token:
        raise RuntimeError("BOT_TOKEN is empty. Set BOT_TOKEN in .env")
    if not settings.admin_id:
        raise RuntimeError("ADMIN_ID is empty. Set ADMIN_ID (or ADMIN_TG_ID) in .env")
