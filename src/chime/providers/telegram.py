"""Telegram delivery adapter using aiogram 3.x."""

import logging

from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest

logger = logging.getLogger(__name__)

MAX_SEND_LENGTH = 4000  # Below Telegram's 4096 limit to leave room for formatting


def get_parse_mode(mode: str | None) -> ParseMode | None:
    """Convert a parse mode string to ParseMode; ``"none"`` disables formatting."""
    if not mode:
        return ParseMode.MARKDOWN
    normalized = mode.upper().replace("-", "_")
    if normalized in ("NONE", "PLAIN"):
        return None
    try:
        return ParseMode[normalized]
    except KeyError:
        logger.warning("unknown_parse_mode", extra={"telegram.parse_mode": mode})
        return ParseMode.MARKDOWN


def _find_split_point(text: str, max_length: int) -> int:
    """Last blank line, else last newline, outside code blocks; else a hard cut."""
    in_code_block = False
    last_blank = -1
    last_newline = -1

    i = 0
    while i < max_length:
        if text.startswith("```", i):
            in_code_block = not in_code_block
            i += 3
            continue
        if not in_code_block and text[i] == "\n":
            if i + 1 < max_length and text[i + 1] == "\n":
                last_blank = i + 1
            else:
                last_newline = i + 1
        i += 1

    for point in (last_blank, last_newline):
        if point > 0:
            return point
    return max_length


def split_message(text: str, max_length: int = MAX_SEND_LENGTH) -> list[str]:
    """Split text into chunks Telegram accepts, preferring paragraph boundaries."""
    chunks: list[str] = []
    remaining = text
    while len(remaining) > max_length:
        split_at = _find_split_point(remaining, max_length)
        chunks.append(remaining[:split_at].rstrip())
        remaining = remaining[split_at:].lstrip()
    if remaining:
        chunks.append(remaining)
    return chunks


class TelegramDelivery:
    """Sends reminder messages to Telegram chats.

    Destination ids are Telegram chat ids. Markdown that Telegram refuses to
    parse is resent once as plain text; any other API error reports failure.
    """

    def __init__(
        self,
        bot_token: str,
        *,
        parse_mode: str | None = "markdown",
        bot: Bot | None = None,
    ):
        self._parse_mode = get_parse_mode(parse_mode)
        self._bot = bot or Bot(
            token=bot_token,
            default=DefaultBotProperties(parse_mode=self._parse_mode),
        )

    @property
    def bot(self) -> Bot:
        return self._bot

    async def deliver(self, destination_id: str, text: str) -> bool:
        """Send ``text`` to a chat. Returns True once every chunk is accepted."""
        try:
            chat_id = int(destination_id)
        except ValueError:
            logger.error(
                "telegram_invalid_chat_id", extra={"messaging.chat_id": destination_id}
            )
            return False

        for chunk in split_message(text):
            try:
                await self._send_with_fallback(chat_id, chunk)
            except TelegramAPIError as e:
                logger.error(
                    "telegram_send_failed",
                    extra={
                        "messaging.chat_id": destination_id,
                        "error.message": str(e),
                    },
                )
                return False
        return True

    async def _send_with_fallback(self, chat_id: int, text: str) -> None:
        try:
            await self._bot.send_message(
                chat_id=chat_id, text=text, parse_mode=self._parse_mode
            )
        except TelegramBadRequest as e:
            if "can't parse" in str(e).lower() and self._parse_mode is not None:
                logger.debug(f"Markdown parsing failed, sending as plain text: {e}")
                await self._bot.send_message(
                    chat_id=chat_id, text=text, parse_mode=None
                )
                return
            raise

    async def close(self) -> None:
        await self._bot.session.close()
