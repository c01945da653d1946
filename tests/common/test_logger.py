# tests/common/test_logger.py
"""
Unit тесты для модуля логирования (src/common/logger.py).
"""

import logging
import sys
from unittest.mock import Mock, patch, MagicMock

import pytest

import src.common.logger as logger_module
from src.common.logger import (
    DEFAULT_LOGGER_NAME,
    JsonFormatter,
    ColoredFormatter,
    get_logger,
    setup_logging,
    log_info,
    log_debug,
    log_warning,
    log_error,
    _get_caller_info,
    _loggers,
)
from src.common.constants import TypeMsg


def _record(level: int = logging.INFO, msg: str = "Test message", exc_info=None) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test_logger",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    record.module = "test_module"
    record.funcName = "test_function"
    return record


class TestJsonFormatter:
    """Тесты для JsonFormatter."""

    def test_format_basic_record(self) -> None:
        """Тест форматирования базовой записи."""
        result = JsonFormatter().format(_record())

        assert '"level": "INFO"' in result
        assert '"message": "Test message"' in result
        assert '"module": "test_module"' in result
        assert '"function": "test_function"' in result
        assert '"line": 10' in result

    def test_format_with_extra_data(self) -> None:
        """Тест форматирования записи с дополнительными данными."""
        record = _record(logging.WARNING, "Сэмпл другой поездки в канале")
        record.extra_data = {"trip_id": "trip-2", "channel": "location:trip:trip-1"}

        result = JsonFormatter().format(record)

        assert '"extra"' in result
        assert '"trip_id": "trip-2"' in result
        assert "Сэмпл другой поездки" in result

    def test_format_with_exception(self) -> None:
        """Тест форматирования записи с исключением."""
        try:
            raise ValueError("Test exception")
        except ValueError:
            exc_info = sys.exc_info()

        result = JsonFormatter().format(_record(logging.ERROR, "Error occurred", exc_info))

        assert '"exception"' in result
        assert "ValueError" in result
        assert "Test exception" in result


class TestColoredFormatter:
    """Тесты для ColoredFormatter."""

    def test_format_basic_record(self) -> None:
        """Тест цветного форматирования базовой записи."""
        result = ColoredFormatter().format(_record())

        assert "INFO" in result
        assert "Test message" in result
        assert "\033[" in result  # ANSI код присутствует

    def test_format_with_caller_info(self) -> None:
        """Тест форматирования с информацией о вызывающей функции."""
        record = _record(logging.DEBUG, "Debug message")
        record.extra_data = {
            "caller_function": "handle_location",
            "caller_module": "src.core.tracking.controller",
            "caller_file": "controller.py",
            "caller_line": 42,
        }

        result = ColoredFormatter().format(record)

        assert "src.core.tracking.controller.handle_location()" in result
        assert "controller.py:42" in result


class TestGetLogger:
    """Тесты для get_logger."""

    def setup_method(self) -> None:
        """Очистка кэша логгеров перед каждым тестом."""
        _loggers.clear()
        for logger in logging.Logger.manager.loggerDict.values():
            if isinstance(logger, logging.Logger):
                logger.handlers.clear()

    def test_get_logger_creates_new_logger(self) -> None:
        """Тест создания нового логгера."""
        logger = get_logger("test_logger")

        assert logger.name == "test_logger"
        assert len(logger.handlers) >= 1
        assert logger.propagate is False

    def test_get_logger_returns_cached_logger(self) -> None:
        """Тест возврата кэшированного логгера."""
        assert get_logger("test_logger") is get_logger("test_logger")

    @patch("src.config.settings")
    def test_get_logger_uses_settings(self, mock_settings: Mock) -> None:
        """Тест использования настроек из конфига."""
        mock_settings.logging.LOG_LEVEL = "WARNING"
        mock_settings.logging.LOG_FORMAT = "json"
        mock_settings.logging.LOG_TO_FILE = False
        mock_settings.logging.LOG_FILE_PATH = "logs/test.log"
        mock_settings.logging.LOG_MAX_BYTES = 10485760
        mock_settings.logging.LOG_BACKUP_COUNT = 5

        logger = get_logger("test_with_settings")

        assert logger.level == logging.WARNING
        assert isinstance(logger.handlers[0].formatter, JsonFormatter)

    @patch("src.config.settings")
    def test_get_logger_ignores_non_string_settings(self, mock_settings: Mock) -> None:
        """Тест замены нестроковых значений настроек дефолтами."""
        mock_settings.logging.LOG_LEVEL = 30
        mock_settings.logging.LOG_FORMAT = None
        mock_settings.logging.LOG_TO_FILE = False
        mock_settings.logging.LOG_FILE_PATH = None
        mock_settings.logging.LOG_MAX_BYTES = 10485760
        mock_settings.logging.LOG_BACKUP_COUNT = 5

        logger = get_logger("test_non_string_settings")

        assert logger.level == logging.DEBUG
        assert isinstance(logger.handlers[0].formatter, ColoredFormatter)

    def test_get_logger_handles_missing_settings(self) -> None:
        """Тест работы при отсутствии настроек."""
        # settings импортируется внутри функции, поэтому патчим модуль src.config
        with patch.dict("sys.modules", {"src.config": None}):
            logger = get_logger("test_no_settings")

            assert logger.level == logging.DEBUG


class TestSetupLogging:
    """Тесты для setup_logging."""

    def setup_method(self) -> None:
        """Очистка перед тестом."""
        _loggers.clear()

    def test_setup_logging_initializes_system(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Тест инициализации системы логирования."""
        monkeypatch.setattr(logger_module, "_LOGGING_INITIALIZED", False)

        setup_logging()

        assert DEFAULT_LOGGER_NAME in _loggers

    def test_setup_logging_sets_third_party_levels(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Тест установки уровней для сторонних библиотек."""
        monkeypatch.setattr(logger_module, "_LOGGING_INITIALIZED", False)

        setup_logging()

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("redis").level == logging.WARNING

    def test_setup_logging_is_idempotent(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Тест повторного вызова."""
        monkeypatch.setattr(logger_module, "_LOGGING_INITIALIZED", True)

        setup_logging()

        assert DEFAULT_LOGGER_NAME not in _loggers


class TestGetCallerInfo:
    """Тесты для _get_caller_info."""

    def test_get_caller_info_returns_dict(self) -> None:
        """Тест возврата словаря с информацией о вызывающей функции."""
        assert isinstance(_get_caller_info(), dict)

    @pytest.mark.asyncio
    async def test_caller_recorded_in_extra(self) -> None:
        """Тест передачи вызывающей функции в запись лога."""
        with patch.object(logging.Logger, "log") as mock_log:
            await log_info("Test message")

        extra_data = mock_log.call_args.kwargs["extra"]["extra_data"]
        assert extra_data["caller_function"] == "test_caller_recorded_in_extra"
        assert extra_data["caller_file"] == "test_logger.py"


class TestLogFunctions:
    """Тесты для асинхронных функций логирования."""

    def setup_method(self) -> None:
        """Очистка перед тестом."""
        _loggers.clear()

    @pytest.mark.asyncio
    async def test_log_info_basic(self) -> None:
        """Тест базового логирования INFO."""
        with patch.object(logging.Logger, "log") as mock_log:
            await log_info("Test message")

        mock_log.assert_called_once()
        assert mock_log.call_args.args == (logging.INFO, "Test message")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "type_msg, level",
        [
            (TypeMsg.DEBUG, logging.DEBUG),
            (TypeMsg.WARNING, logging.WARNING),
            (TypeMsg.ERROR, logging.ERROR),
            (TypeMsg.CRITICAL, logging.CRITICAL),
        ],
    )
    async def test_log_info_with_type_msg(self, type_msg: TypeMsg, level: int) -> None:
        """Тест логирования с разными типами сообщений."""
        with patch.object(logging.Logger, "log") as mock_log:
            await log_info("Message", type_msg=type_msg)

        assert mock_log.call_args.args[0] == level

    @pytest.mark.asyncio
    async def test_log_info_with_extra(self) -> None:
        """Тест логирования с дополнительными данными."""
        with patch.object(logging.Logger, "log") as mock_log:
            await log_info("Test message", extra={"trip_id": "trip-1"})

        extra_data = mock_log.call_args.kwargs["extra"]["extra_data"]
        assert extra_data["trip_id"] == "trip-1"

    @pytest.mark.asyncio
    async def test_log_debug(self) -> None:
        """Тест функции log_debug."""
        with patch.object(logging.Logger, "log") as mock_log:
            await log_debug("Debug message")

        assert mock_log.call_args.args[0] == logging.DEBUG

    @pytest.mark.asyncio
    async def test_log_warning(self) -> None:
        """Тест функции log_warning."""
        with patch.object(logging.Logger, "log") as mock_log:
            await log_warning("Warning message")

        assert mock_log.call_args.args[0] == logging.WARNING

    @pytest.mark.asyncio
    async def test_log_error_with_exc_info(self) -> None:
        """Тест логирования ошибки с трейсбеком."""
        with patch.object(logging.Logger, "log") as mock_log:
            await log_error("Error message", exc_info=True)

        assert mock_log.call_args.args[0] == logging.ERROR
        assert mock_log.call_args.kwargs.get("exc_info") is True

    @pytest.mark.asyncio
    async def test_log_info_with_custom_logger_name(self) -> None:
        """Тест логирования с пользовательским именем логгера."""
        with patch("src.common.logger.get_logger") as mock_get_logger:
            mock_logger = MagicMock()
            mock_get_logger.return_value = mock_logger

            await log_info("Test message", logger_name="custom_logger")

            mock_get_logger.assert_called_once_with("custom_logger")
            mock_logger.log.assert_called_once()
