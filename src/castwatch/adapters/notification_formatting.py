"""Shared notification formatting helpers.

Keeping formatting here prevents drift between adapters and keeps messages
consistent regardless of delivery channel.
"""

from __future__ import annotations

import html
from typing import Optional

from castwatch.core.models import Item, LifecycleState, NotificationKind, SourceKind
from castwatch.core.ports import SourceConfig

DIVIDER = "──────────────"


def format_count(value: int) -> str:
    """Return a compact count (1234 -> 1.2K)."""

    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{value / 1_000:.1f}K"
    return str(value)


def clip(text: Optional[str], limit: int) -> str:
    if not text:
        return ""
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


def render_template(template: str, item: Item, source: SourceConfig) -> str:
    """Fill a user template. Unknown braces are left untouched."""

    return (
        template.replace("{source_name}", source.name)
        .replace("{title}", item.title)
        .replace("{url}", item.url or "")
    )


def headline(item: Item, kind: NotificationKind, source: SourceConfig) -> str:
    """Return the plain-text first line of a notification."""

    if source.custom_message:
        return render_template(source.custom_message, item, source)
    if item.source_kind is SourceKind.FEED:
        return f"📰 New post from {source.name}"
    if item.lifecycle_state is LifecycleState.LIVE:
        if kind is NotificationKind.STATUS_CHANGE:
            return f"🔴 {source.name} is now live!"
        return f"🔴 {source.name} started a live stream!"
    if item.lifecycle_state is LifecycleState.UPCOMING:
        return f"⏰ {source.name} will go live soon!"
    return f"🎬 {source.name} uploaded a new video!"


def _details(item: Item) -> list[str]:
    details = []
    if item.lifecycle_state is LifecycleState.FINAL and item.source_kind is SourceKind.VIDEO:
        if item.duration:
            details.append(f"⏱️ {item.duration}")
        if item.view_count:
            details.append(f"👀 {format_count(item.view_count)} views")
    return details


def _timestamp(item: Item) -> Optional[str]:
    if item.published_at is None:
        return None
    return item.published_at.astimezone().strftime("%H:%M:%S %d-%m-%Y").strip()


def _format_markdown(item: Item, kind: NotificationKind, source: SourceConfig, snippet_chars: int) -> str:
    """Create the Markdown notification body used by Saved Messages."""

    def escape_md(value: str) -> str:
        for ch in r"*[`_":
            value = value.replace(ch, f"\\{ch}")
        return value

    lines = []
    first = escape_md(headline(item, kind, source))
    if source.mention:
        first = f"{source.mention} {first}"
    lines.append(first)
    lines.extend([DIVIDER, f"**{escape_md(item.title)}**"])

    description = clip(item.description, snippet_chars)
    if description:
        lines.extend(["", escape_md(description)])

    details = _details(item)
    if details:
        lines.extend(["", "  ".join(details)])

    timestamp = _timestamp(item)
    if timestamp:
        lines.extend(["", f"📅 {timestamp}"])
    if item.url:
        lines.extend(["", "**Link:**", item.url])
    lines.append(DIVIDER)
    return "\n".join(lines)


def _format_html(item: Item, kind: NotificationKind, source: SourceConfig, snippet_chars: int) -> str:
    """Create the HTML notification body used by the Bot API adapter."""

    first = html.escape(headline(item, kind, source))
    if source.mention:
        first = f"{html.escape(source.mention)} {first}"
    parts = [first, DIVIDER, f"<b>{html.escape(item.title)}</b>"]

    description = clip(item.description, snippet_chars)
    if description:
        parts.extend(["", html.escape(description)])

    details = _details(item)
    if details:
        parts.extend(["", html.escape("  ".join(details))])

    timestamp = _timestamp(item)
    if timestamp:
        parts.extend(["", f"📅 {html.escape(timestamp)}"])
    if item.url:
        safe_link = html.escape(item.url)
        parts.extend(["", "<b>Link:</b>", f"<a href=\"{safe_link}\">{safe_link}</a>"])
    parts.append(DIVIDER)
    return "\n".join(parts)


def _format_plain(item: Item, kind: NotificationKind, source: SourceConfig) -> str:
    """Minimal body used when the rich rendering was rejected."""

    lines = [headline(item, kind, source), item.title]
    if item.url:
        lines.append(item.url)
    return "\n".join(lines)


def format_notification(
    item: Item,
    kind: NotificationKind,
    source: SourceConfig,
    snippet_chars: int,
    mode: str,
) -> str:
    """Return the notification formatted for the requested mode."""

    if mode == "markdown":
        return _format_markdown(item, kind, source, snippet_chars)
    if mode == "html":
        return _format_html(item, kind, source, snippet_chars)
    if mode == "plain":
        return _format_plain(item, kind, source)
    raise ValueError(f"Unsupported notification format: {mode}")
