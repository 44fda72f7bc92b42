"""Telethon session handling for the user-account notifier.

The client is built from API_ID/API_HASH in the environment and logged in
with a QR code or a phone code. LOGIN_METHOD, PHONE and 2FA can be
set in the environment to skip the prompts.
"""

import logging
import os
from getpass import getpass

import qrcode
from telethon import TelegramClient, errors

from castwatch.core.errors import ConfigError

LOGGER = logging.getLogger(__name__)

QR_TIMEOUT_SECONDS = 120

_MENU = {"1": "qr", "2": "phone"}


def build_client() -> TelegramClient:
    """Return an unconnected client for the session named by SESSION_NAME."""

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    if not api_id or not api_hash:
        raise ConfigError("API_ID and API_HASH must be set to use a Telegram user session")
    if not api_id.strip().isdigit():
        raise ConfigError(f"API_ID must be numeric, got {api_id!r}")
    return TelegramClient(os.getenv("SESSION_NAME", "castwatch"), int(api_id), api_hash)


def _show_qr(url: str) -> None:
    code = qrcode.QRCode(border=1)
    code.add_data(url)
    code.make(fit=True)
    code.print_ascii(invert=True)


def _two_factor_password() -> str:
    return os.getenv("2FA") or getpass("2FA password: ")


async def _login_qr(client: TelegramClient) -> None:
    login = await client.qr_login()
    _show_qr(login.url)
    await login.wait(timeout=QR_TIMEOUT_SECONDS)


async def _login_phone(client: TelegramClient) -> None:
    phone = os.getenv("PHONE") or input("Phone number (international format): ").strip()
    await client.send_code_request(phone)
    await client.sign_in(phone=phone, code=input("Login code: ").strip())


def _choose_method() -> str:
    method = (os.getenv("LOGIN_METHOD") or "").strip().lower()
    if method in _MENU.values():
        return method
    while True:
        print("\nLogin methods:\n[1] QR code\n[2] Phone code\n[3] Exit\n")
        choice = input("castwatch > ").strip()
        if choice == "3":
            raise SystemExit(0)
        if choice in _MENU:
            return _MENU[choice]
        print("Invalid option. Please choose 1, 2, or 3.")


async def authorize(client: TelegramClient) -> None:
    """Log the session in unless it is already authorized."""

    if await client.is_user_authorized():
        return

    login = _login_phone if _choose_method() == "phone" else _login_qr
    try:
        await login(client)
    except errors.SessionPasswordNeededError:
        await client.sign_in(password=_two_factor_password())

    me = await client.get_me()
    LOGGER.info("Telegram session authorized for %s", getattr(me, "username", None) or getattr(me, "id", "?"))
