import asyncio
import logging
import signal
import sys
import traceback
from logging.handlers import RotatingFileHandler
from typing import Callable, Optional

from . import __version__
from .bot import SoursopBot
from .config import LoggingSettings, Settings, get_settings
from .exceptions import ConfigurationError
from .wallet import WalletManager


class GracefulShutdown:
    def __init__(self):
        self.shutdown_event = asyncio.Event()
        self.shutdown_callbacks: list[Callable] = []
        self._shutting_down = False
        self._pending: set[asyncio.Task] = set()

    def register_callback(self, callback: Callable) -> None:
        self.shutdown_callbacks.append(callback)

    async def trigger_shutdown(self) -> None:
        if self._shutting_down:
            return
        self._shutting_down = True
        self.shutdown_event.set()

        for callback in reversed(self.shutdown_callbacks):
            try:
                if asyncio.iscoroutinefunction(callback):
                    await callback()
                else:
                    callback()
            except Exception as e:
                logging.error(f"Shutdown callback error: {e}")

    def request_shutdown(self) -> asyncio.Task:
        """Schedule trigger_shutdown from a signal handler, keeping the task referenced."""
        task = asyncio.get_running_loop().create_task(self.trigger_shutdown())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task


class ApplicationLogger:
    def __init__(self, settings: LoggingSettings):
        self.settings = settings

    def setup(self) -> logging.Logger:
        root_logger = logging.getLogger()
        root_logger.setLevel(self.settings.level.value)
        root_logger.handlers.clear()

        formatter = logging.Formatter(self.settings.format, datefmt=self.settings.date_format)

        if self.settings.file_enabled:
            self.settings.file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                self.settings.file_path,
                maxBytes=self.settings.file_max_bytes,
                backupCount=self.settings.file_backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            file_handler.setLevel(logging.DEBUG)
            root_logger.addHandler(file_handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        console_handler.setLevel(logging.INFO)
        root_logger.addHandler(console_handler)

        for noisy in ("httpx", "httpcore", "telegram", "aiosqlite", "asyncio"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

        return logging.getLogger("soursop")


def load_settings() -> Optional[Settings]:
    try:
        return get_settings()
    except ConfigurationError as e:
        # Logging is not configured yet.
        print(f"Configuration error: {e.message}", file=sys.stderr)
        for key in e.missing_keys:
            print(f"  missing or invalid: {key}", file=sys.stderr)
        return None


async def main() -> int:
    settings = load_settings()
    if settings is None:
        return 1

    logger = ApplicationLogger(settings.logging).setup()
    shutdown = GracefulShutdown()
    exit_code = 0

    try:
        token = settings.telegram.bot_token
        if token is None or not token.get_secret_value():
            raise ConfigurationError("TELEGRAM_BOT_TOKEN required", missing_keys=["TELEGRAM_BOT_TOKEN"])

        logger.info("=" * 60)
        logger.info(f"{settings.app_name.upper()} STARTING")
        logger.info("=" * 60)
        logger.info(f"Version: {__version__}")
        logger.info(f"Environment: {settings.environment.value}")
        logger.info(f"RPC URL: {settings.rpc_url[:50]}")
        logger.info(f"Database: {settings.database.path}")
        logger.info("=" * 60)
        logger.debug(f"Settings: {settings.to_safe_dict()}")

        manager = WalletManager.from_settings(settings)
        await manager.initialize()
        shutdown.register_callback(manager.close)

        app = SoursopBot(manager).build_application(token.get_secret_value())

        loop = asyncio.get_running_loop()

        def signal_handler(sig):
            logger.info(f"Received signal {sig.name}")
            shutdown.request_shutdown()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
            except NotImplementedError:
                signal.signal(sig, lambda s, f, sig=sig: signal_handler(sig))

        async with app:
            await app.start()
            await app.updater.start_polling(drop_pending_updates=True)
            logger.info("Bot started, waiting for shutdown signal...")

            await shutdown.shutdown_event.wait()

            logger.info("Shutdown initiated...")
            await app.updater.stop()
            await app.stop()

    except ConfigurationError as e:
        logger.critical(f"Configuration error: {e.message}")
        exit_code = 1
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        logger.error(traceback.format_exc())
        exit_code = 1
    finally:
        await shutdown.trigger_shutdown()
        logging.info("Shutdown complete")

    return exit_code


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nShutdown requested...")
        sys.exit(0)


if __name__ == "__main__":
    run()
