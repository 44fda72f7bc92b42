"""Telegram Bot API notification adapter.

Uses the Bot API for delivery so notifications can be routed to any chat the
bot is a member of. Each destination is a bot chat id.
"""

from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.request

from castwatch.adapters.notification_formatting import format_notification
from castwatch.core.errors import DeliveryError
from castwatch.core.models import Item, NotificationKind
from castwatch.core.ports import SourceConfig


class TelegramBotNotifier:
    """Notifier adapter that sends messages via the Telegram Bot API."""

    supports_fallback = True

    def __init__(self, bot_token: str, snippet_chars: int, timeout: float = 10) -> None:
        self._bot_token = bot_token
        self._snippet_chars = snippet_chars
        self._timeout = timeout

    def _endpoint(self) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._bot_token}/sendMessage"

    def _build_payload(
        self,
        destination: str,
        item: Item,
        kind: NotificationKind,
        source: SourceConfig,
        fallback: bool,
    ) -> dict:
        if fallback:
            return {
                "chat_id": destination,
                "text": format_notification(item, kind, source, self._snippet_chars, mode="plain"),
            }
        return {
            "chat_id": destination,
            "text": format_notification(item, kind, source, self._snippet_chars, mode="html"),
            "parse_mode": "HTML",
            "disable_web_page_preview": False,
        }

    def _post(self, payload: dict) -> None:
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(self._endpoint(), data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(request, timeout=self._timeout):
                pass
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise DeliveryError(f"Bot API error {e.code}: {body}") from e
        except (urllib.error.URLError, TimeoutError) as e:
            raise DeliveryError(f"Bot API unreachable: {e}") from e

    async def send(
        self,
        destination: str,
        item: Item,
        kind: NotificationKind,
        source: SourceConfig,
        fallback: bool = False,
    ) -> None:
        """Send the formatted notification via the Bot API."""

        payload = self._build_payload(destination, item, kind, source, fallback)
        await asyncio.to_thread(self._post, payload)
