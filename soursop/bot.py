import asyncio
import html
import logging
from typing import Optional

from telegram import Message, Update
from telegram.error import TelegramError
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

from .exceptions import (
    BalanceError,
    BalanceErrorKind,
    DecryptionError,
    DuplicateFieldError,
    GenerationError,
    KeyTooShortError,
    SoursopError,
    WalletImportError,
)
from .keys import WalletInfo
from .validators import format_sol
from .wallet import WalletManager

logger = logging.getLogger(__name__)

AWAITING_IMPORT = "awaiting_import"
SECRET_MESSAGE_TTL = 60

WELCOME_TEXT = (
    "<b>Welcome to SourSop</b>\n\n"
    "Trade Solana seamlessly and fee-free.\n\n"
    "Type /help to see what I can do."
)

HELP_TEXT = (
    "<b>Commands</b>\n\n"
    "/generate - Generate a new Solana wallet\n"
    "/import &lt;secret&gt; - Import a wallet from a mnemonic or private key\n"
    "/wallet - Show your wallet\n"
    "/balance - SOL balance\n"
    "/help - Show this message"
)

NO_WALLET_TEXT = "No wallet found. Use /generate or /import first."


def describe_error(error: Exception) -> str:
    """User-facing text for an error raised by the wallet core."""
    if isinstance(error, KeyTooShortError):
        return "That private key is too short."
    if isinstance(error, WalletImportError):
        return "Could not import that wallet. Check the mnemonic or private key and try again."
    if isinstance(error, GenerationError):
        return "Wallet generation failed. Please try again."
    if isinstance(error, DuplicateFieldError):
        if error.field_name == "user_id":
            return "You already have a wallet. Use /wallet to see it."
        return "That wallet is already registered."
    if isinstance(error, DecryptionError):
        return "Your stored wallet could not be unlocked."
    if isinstance(error, BalanceError):
        if error.kind is BalanceErrorKind.INVALID_ADDRESS:
            return "That is not a valid Solana address."
        return "Could not reach the Solana network. Try again shortly."
    if isinstance(error, SoursopError):
        return "Something went wrong. Please try again."
    return "An unexpected error occurred."


def format_wallet(wallet: WalletInfo, lamports: Optional[int] = None) -> str:
    text = f"<b>Wallet</b>\n\n<code>{wallet.address}</code>"
    if lamports is not None:
        text += f"\n\nBalance: {format_sol(lamports)}"
    return text


class SoursopBot:
    """Telegram command handlers over a WalletManager."""

    def __init__(self, manager: WalletManager):
        self.manager = manager

    def build_application(self, token: str) -> Application:
        app = Application.builder().token(token).build()
        self.register_handlers(app)
        return app

    def register_handlers(self, app: Application) -> None:
        cmds = [
            ("start", self.cmd_start), ("help", self.cmd_help),
            ("generate", self.cmd_generate), ("import", self.cmd_import),
            ("wallet", self.cmd_wallet), ("balance", self.cmd_balance),
        ]
        for cmd, handler in cmds:
            app.add_handler(CommandHandler(cmd, handler))
        app.add_handler(MessageHandler(
            filters.TEXT & ~filters.COMMAND & ~filters.UpdateType.EDITED_MESSAGE, self.handle_text
        ))
        app.add_error_handler(self.error_handler)

    async def error_handler(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        logger.error(f"Unhandled error: {context.error}", exc_info=context.error)
        if isinstance(update, Update) and update.effective_message:
            await update.effective_message.reply_text(describe_error(context.error))

    async def cmd_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.message.reply_text(WELCOME_TEXT, parse_mode="HTML")

    async def cmd_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.message.reply_text(HELP_TEXT, parse_mode="HTML")

    async def cmd_generate(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user_id = update.effective_user.id
        try:
            wallet = await self.manager.generate_wallet()
            await self.manager.store(wallet, user_id)
        except SoursopError as e:
            logger.warning(f"Generate failed for user {user_id}: {e}")
            await update.message.reply_text(describe_error(e))
            return

        await update.message.reply_text(
            "<b>New wallet generated</b>\n\n"
            f"Address: <code>{wallet.address}</code>\n\n"
            "Save your recovery phrase somewhere safe.",
            parse_mode="HTML",
        )
        phrase_msg = await update.message.reply_text(
            f"Recovery phrase:\n<code>{html.escape(wallet.mnemonic)}</code>\n\n"
            f"This message will be deleted in {SECRET_MESSAGE_TTL} seconds.",
            parse_mode="HTML",
        )
        context.application.create_task(self._delete_later(phrase_msg, SECRET_MESSAGE_TTL))

    async def cmd_import(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not context.args:
            context.user_data[AWAITING_IMPORT] = True
            await update.message.reply_text(
                "Send your wallet secret (mnemonic or private key).\n\n"
                "Accepted private key formats: base58, hex, or a [1,2,3,...] byte array.\n"
                "Make sure you are in a private chat."
            )
            return

        await self._import_secret(update, " ".join(context.args))

    async def handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not context.user_data.pop(AWAITING_IMPORT, False):
            return
        await self._import_secret(update, update.effective_message.text)

    async def _import_secret(self, update: Update, secret: str):
        user_id = update.effective_user.id
        await self._delete_now(update.effective_message)

        try:
            wallet = await self.manager.import_wallet(secret)
            await self.manager.store(wallet, user_id)
        except SoursopError as e:
            logger.warning(f"Import failed for user {user_id}: {e}")
            await update.effective_chat.send_message(describe_error(e))
            return

        try:
            lamports = await self.manager.get_balance(wallet.address)
        except BalanceError as e:
            logger.warning(f"Balance after import failed: {e}")
            lamports = None

        await update.effective_chat.send_message(
            "Wallet imported.\n\n" + format_wallet(wallet, lamports), parse_mode="HTML"
        )

    async def cmd_wallet(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user_id = update.effective_user.id
        try:
            wallet = await self.manager.get_user_wallet(user_id)
            if wallet is None:
                await update.message.reply_text(NO_WALLET_TEXT)
                return
            lamports = await self.manager.get_balance(wallet.address)
        except SoursopError as e:
            await update.message.reply_text(describe_error(e))
            return

        await update.message.reply_text(format_wallet(wallet, lamports), parse_mode="HTML")

    async def cmd_balance(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user_id = update.effective_user.id
        try:
            wallet = await self.manager.get_user_wallet(user_id)
            if wallet is None:
                await update.message.reply_text(NO_WALLET_TEXT)
                return
            lamports = await self.manager.get_balance(wallet.address)
        except SoursopError as e:
            await update.message.reply_text(describe_error(e))
            return

        await update.message.reply_text(f"<b>Balance:</b> {format_sol(lamports)}", parse_mode="HTML")

    @staticmethod
    async def _delete_now(message: Message) -> None:
        try:
            await message.delete()
        except TelegramError as e:
            logger.warning(f"Could not delete secret message: {e}")

    async def _delete_later(self, message: Message, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._delete_now(message)
