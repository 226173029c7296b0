# service/notifier.py
from __future__ import annotations

import logging
import os
from typing import Any

import requests

LOG = logging.getLogger(__name__)

TELEGRAM_MAX_CHARS = 4096
_BLOCK_SEPARATOR = "\n\n"

# ---- Errors -----------------------------------------------------------------


class DeliveryFailure(RuntimeError):
    """Raised when the chat API rejects or cannot receive a message. Never retried here."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        description: str | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.description = description
        self.retry_after = retry_after


# ---- Env / Settings ----------------------------------------------------------


def _getenv_any(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v != "":
            return v
    return default


def _resolve_telegram_settings() -> dict[str, Any]:
    """
    Resolve Bot API settings from env:
      - TELEGRAM_BOT_TOKEN (required)
      - TELEGRAM_CHAT_ID (required unless passed to send_text)
      - TELEGRAM_API_BASE (default https://api.telegram.org)
      - TELEGRAM_TIMEOUT seconds (default 15)
    """
    return {
        "token": _getenv_any("TELEGRAM_BOT_TOKEN"),
        "chat_id": _getenv_any("TELEGRAM_CHAT_ID"),
        "api_base": (_getenv_any("TELEGRAM_API_BASE", default="https://api.telegram.org") or "").rstrip("/"),
        "timeout": float(_getenv_any("TELEGRAM_TIMEOUT", default="15") or 15),
    }


def _dry_run() -> bool:
    return str(os.getenv("JOB_DIGEST_DRY_RUN", "")).strip().lower() in {"1", "true", "yes", "on"}


# ---- Helpers ----------------------------------------------------------------


def split_message(text: str, limit: int = TELEGRAM_MAX_CHARS) -> list[str]:
    """
    Split `text` into chunks of at most `limit` characters, breaking between
    blank-line separated blocks where possible and hard-splitting oversize blocks.
    """
    if len(text) <= limit:
        return [text]

    chunks: list[str] = []
    current = ""
    for block in text.split(_BLOCK_SEPARATOR):
        while len(block) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(block[:limit])
            block = block[limit:]
        candidate = f"{current}{_BLOCK_SEPARATOR}{block}" if current else block
        if len(candidate) <= limit:
            current = candidate
        else:
            chunks.append(current)
            current = block
    if current:
        chunks.append(current)
    return chunks


def _post_chunk(session: requests.Session, url: str, chat_id: str, text: str, timeout: float) -> int | None:
    try:
        resp = session.post(
            url,
            json={"chat_id": chat_id, "text": text, "disable_web_page_preview": True},
            timeout=timeout,
        )
    except requests.RequestException as e:
        raise DeliveryFailure(f"Telegram request failed: {e!r}") from e

    try:
        body = resp.json()
    except ValueError:
        body = {}

    if resp.status_code >= 400 or not body.get("ok", False):
        description = str(body.get("description") or resp.text[:200] or resp.reason)
        retry_after = (body.get("parameters") or {}).get("retry_after")
        raise DeliveryFailure(
            f"Telegram rejected message ({resp.status_code}): {description}",
            status=resp.status_code,
            description=description,
            retry_after=int(retry_after) if retry_after is not None else None,
        )
    return (body.get("result") or {}).get("message_id")


# ---- Public API -------------------------------------------------------------


def send_text(text: str, *, chat_id: str | None = None, session: requests.Session | None = None) -> list[int]:
    """
    Deliver `text` to a Telegram chat via the Bot API `sendMessage` method.

    Long messages are sent as several consecutive messages. Returns the
    message ids. Raises DeliveryFailure on missing credentials, transport
    errors, rate limits (429) or API rejection (e.g. unknown chat).
    """
    if not text or not text.strip():
        raise DeliveryFailure("Missing message text.")

    if _dry_run():
        LOG.info("JOB_DIGEST_DRY_RUN set; not sending %d chars to Telegram.", len(text))
        return []

    settings = _resolve_telegram_settings()
    token = settings["token"]
    target = chat_id or settings["chat_id"]
    if not token:
        raise DeliveryFailure("TELEGRAM_BOT_TOKEN is not set.")
    if not target:
        raise DeliveryFailure("No chat id (set TELEGRAM_CHAT_ID).")

    url = f"{settings['api_base']}/bot{token}/sendMessage"
    own_session = session is None
    sess = session or requests.Session()
    try:
        ids: list[int] = []
        for chunk in split_message(text):
            message_id = _post_chunk(sess, url, str(target), chunk, settings["timeout"])
            if message_id is not None:
                ids.append(message_id)
        return ids
    finally:
        if own_session:
            sess.close()
