"""Telegram transport — sends and receives messages via Telegram Bot API.

This is the default transport. Requires TELEGRAM_BOT_TOKEN in .env.
Every text message (commands included) goes to the registered message
handler; its reply is sent back to the same chat.
"""

import logging
from telegram import ReplyKeyboardMarkup, Update
from telegram.ext import Application, MessageHandler, ContextTypes, filters

from prodmax.config import TELEGRAM_BOT_TOKEN, TELEGRAM_DROP_PENDING
from prodmax.transport import Transport, IncomingMessage

log = logging.getLogger(__name__)

MAX_MESSAGE_LEN = 4096

# Message handler callback, set by main.py during initialization
_on_message_callback = None


def set_message_handler(callback) -> None:
    """Register the function to handle incoming messages.

    Signature: async def callback(msg: IncomingMessage) -> str
    Returns the bot's response text.
    """
    global _on_message_callback
    _on_message_callback = callback


class TelegramTransport(Transport):
    """Telegram Bot API transport."""

    def __init__(self, token: str = TELEGRAM_BOT_TOKEN, keyboard: list[list[str]] | None = None):
        self._token = token
        self._keyboard = keyboard
        self._app: Application | None = None

    @property
    def name(self) -> str:
        return "telegram"

    async def start(self) -> None:
        if not self._token:
            log.warning("TELEGRAM_BOT_TOKEN not set, Telegram transport disabled")
            return

        self._app = Application.builder().token(self._token).build()
        self._app.add_handler(MessageHandler(filters.TEXT, self._handle_message))

        await self._app.initialize()
        await self._app.start()
        await self._app.updater.start_polling(drop_pending_updates=TELEGRAM_DROP_PENDING)
        log.info("Telegram transport started")

    async def stop(self) -> None:
        if self._app:
            await self._app.updater.stop()
            await self._app.stop()
            await self._app.shutdown()
            log.info("Telegram transport stopped")

    async def send_message(self, user_id: int, text: str, reply_markup=None) -> None:
        if not self._app:
            log.warning("Telegram not started, cannot send message")
            return
        try:
            # Split long messages (Telegram limit: 4096 chars)
            for i in range(0, len(text), MAX_MESSAGE_LEN):
                await self._app.bot.send_message(
                    chat_id=user_id,
                    text=text[i:i + MAX_MESSAGE_LEN],
                    reply_markup=reply_markup if i == 0 else None,
                )
        except Exception as e:
            log.error("Failed to send Telegram message: %s", e)

    # ── Handlers ──────────────────────────────────────────────

    async def _handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message or not update.message.text:
            return

        user = update.effective_user
        msg = IncomingMessage(
            user_id=user.id,
            channel_id=update.effective_chat.id,
            text=update.message.text,
            transport="telegram",
            username=user.username or user.first_name,
        )

        if not _on_message_callback:
            await update.message.reply_text("I'm still waking up... try again in a moment.")
            return

        response = await _on_message_callback(msg)
        if not response:
            return

        markup = None
        if self._keyboard and msg.text.strip().lower().startswith("/start"):
            markup = ReplyKeyboardMarkup(self._keyboard, resize_keyboard=True)
        await self.send_message(update.effective_chat.id, response, reply_markup=markup)
