"""Telegram user-client notification adapter.

Formats a Markdown message and sends it through a Telethon session, either to
Saved Messages ("me") or to any chat the account can post in.
"""

from __future__ import annotations

from telethon import errors

from castwatch.adapters.notification_formatting import format_notification
from castwatch.core.errors import DeliveryError
from castwatch.core.models import Item, NotificationKind
from castwatch.core.ports import SourceConfig


class TelegramSavedMessagesNotifier:
    """Notifier adapter that sends messages with the user's Telethon client."""

    supports_fallback = True

    def __init__(self, client, snippet_chars: int) -> None:
        self._client = client
        self._snippet_chars = snippet_chars

    async def send(
        self,
        destination: str,
        item: Item,
        kind: NotificationKind,
        source: SourceConfig,
        fallback: bool = False,
    ) -> None:
        """Send the formatted notification to the destination entity."""

        mode = "plain" if fallback else "markdown"
        message = format_notification(item, kind, source, self._snippet_chars, mode=mode)
        try:
            await self._client.send_message(
                destination or "me",
                message,
                parse_mode=None if fallback else "Markdown",
            )
        except (errors.RPCError, ValueError, ConnectionError) as e:
            raise DeliveryError(f"Telegram send to {destination or 'me'} failed: {e}") from e
