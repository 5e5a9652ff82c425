import asyncio
import logging

import pytest

from soursop.config import LoggingSettings
from soursop.main import ApplicationLogger, GracefulShutdown


class TestGracefulShutdown:

    @pytest.mark.asyncio
    async def test_request_keeps_task_until_done(self):
        shutdown = GracefulShutdown()
        closed = []

        async def close():
            closed.append("async")

        shutdown.register_callback(close)
        shutdown.register_callback(lambda: closed.append("sync"))

        task = shutdown.request_shutdown()
        assert task in shutdown._pending

        await task
        await asyncio.sleep(0)

        assert shutdown.shutdown_event.is_set()
        assert closed == ["sync", "async"]
        assert not shutdown._pending

    @pytest.mark.asyncio
    async def test_second_trigger_is_ignored(self):
        shutdown = GracefulShutdown()
        calls = []
        shutdown.register_callback(lambda: calls.append(1))

        await shutdown.trigger_shutdown()
        await shutdown.trigger_shutdown()

        assert calls == [1]

    @pytest.mark.asyncio
    async def test_callback_error_does_not_stop_others(self):
        shutdown = GracefulShutdown()
        calls = []

        def broken():
            raise RuntimeError("boom")

        shutdown.register_callback(lambda: calls.append("first"))
        shutdown.register_callback(broken)

        await shutdown.trigger_shutdown()

        assert calls == ["first"]


class TestApplicationLogger:

    def test_file_handler_rotates_under_log_dir(self, tmp_path):
        settings = LoggingSettings(file_path=tmp_path / "logs" / "bot.log", level="DEBUG")
        root = logging.getLogger()
        saved = root.handlers[:], root.level
        try:
            ApplicationLogger(settings).setup()
            assert (tmp_path / "logs").is_dir()
            assert any(type(h).__name__ == "RotatingFileHandler" for h in root.handlers)
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers[:] = saved[0]
            root.setLevel(saved[1])
