"""
optinfer.logging.logger_manager: ログ管理マネージャー.

colorlogを使用した推論エンジン向けのログ管理
"""

import logging
from enum import Enum
from typing import Dict, Optional

try:
    import colorlog

    COLORLOG_AVAILABLE = True
except ImportError:
    COLORLOG_AVAILABLE = False

ROOT_LOGGER_NAME = "optinfer"

_INFO_FORMAT = "%(asctime)s|%(log_color)s%(levelname)-5.5s%(reset)s| %(message)s"
_DEBUG_FORMAT = (
    "%(asctime)s|%(log_color)s%(levelname)-5.5s%(reset)s|"
    "%(name)-24s|%(lineno)03d| %(message)s"
)
_PLAIN_INFO_FORMAT = "%(asctime)s|%(levelname)-5.5s| %(message)s"
_PLAIN_DEBUG_FORMAT = "%(asctime)s|%(levelname)-5.5s|%(name)-24s|%(lineno)03d| %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARN": "yellow",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


class LogLevel(Enum):
    """ログレベル列挙型."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def to_logging_level(self) -> int:
        """標準loggingの数値レベルへ変換する."""
        return int(getattr(logging, self.value))


class SwitchableFormatter(logging.Formatter):
    """通常形式とデバッグ形式を切り替えられるフォーマッター."""

    def __init__(self, use_color: bool, debug: bool = False) -> None:
        """フォーマッターを初期化.

        Args:
            use_color: colorlogで色付けするかどうか.
            debug: デバッグ形式(ロガー名と行番号付き)で出力するかどうか.
        """
        super().__init__(datefmt=_DATE_FORMAT)
        self.debug = debug
        if use_color:
            self._formatters = {
                False: colorlog.ColoredFormatter(
                    _INFO_FORMAT, datefmt=_DATE_FORMAT, log_colors=_LOG_COLORS
                ),
                True: colorlog.ColoredFormatter(
                    _DEBUG_FORMAT, datefmt=_DATE_FORMAT, log_colors=_LOG_COLORS
                ),
            }
        else:
            self._formatters = {
                False: logging.Formatter(_PLAIN_INFO_FORMAT, datefmt=_DATE_FORMAT),
                True: logging.Formatter(_PLAIN_DEBUG_FORMAT, datefmt=_DATE_FORMAT),
            }

    def format(self, record: logging.LogRecord) -> str:
        """ログレコードを整形."""
        record.levelname = {"WARNING": "WARN"}.get(record.levelname, record.levelname)
        return str(self._formatters[self.debug].format(record))


class LoggerManager:
    """
    ログ管理マネージャークラス.

    optinfer配下の全ロガーに一貫したハンドラーとフォーマットを提供する.

    Attributes:
        _loggers (Dict[str, logging.Logger]): 管理されているロガーの辞書
        _default_level (LogLevel): デフォルトのログレベル
    """

    _instance: Optional["LoggerManager"] = None
    _loggers: Dict[str, logging.Logger] = {}

    def __new__(cls) -> "LoggerManager":
        """シングルトンパターンの実装."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """LoggerManagerを初期化."""
        if hasattr(self, "_initialized"):
            return

        self._default_level = LogLevel.INFO
        self._initialized = True

    @property
    def debug_format_enabled(self) -> bool:
        """デバッグ形式で出力中かどうか."""
        return self._default_level == LogLevel.DEBUG

    def get_logger(self, name: str, level: Optional[LogLevel] = None) -> logging.Logger:
        """
        指定された名前のロガーを取得または作成.

        Args:
            name (str): ロガー名 (例: "optinfer.engine")
            level (LogLevel, optional): ログレベル

        Returns:
            logging.Logger: 設定されたロガー

        Examples:
            >>> logger = LoggerManager().get_logger("optinfer.engine")
            >>> logger.info("推論エンジンを初期化しました")
        """
        if name in self._loggers:
            return self._loggers[name]

        logger = logging.getLogger(name)
        if not logger.handlers:
            logger.setLevel((level or self._default_level).to_logging_level())
            logger.addHandler(self._create_handler())
            logger.propagate = False

        self._loggers[name] = logger
        return logger

    def _create_handler(self) -> logging.Handler:
        """ログハンドラーを作成."""
        handler: logging.Handler
        if COLORLOG_AVAILABLE:
            handler = colorlog.StreamHandler()
        else:
            handler = logging.StreamHandler()
        handler.setFormatter(
            SwitchableFormatter(
                use_color=COLORLOG_AVAILABLE, debug=self.debug_format_enabled
            )
        )
        return handler

    def set_default_level(self, level: LogLevel) -> None:
        """
        デフォルトのログレベルを設定.

        DEBUGにすると既存ハンドラーもデバッグ形式へ切り替わる.

        Args:
            level (LogLevel): 新しいデフォルトレベル
        """
        self._default_level = level
        for logger in self._loggers.values():
            for handler in logger.handlers:
                if isinstance(handler.formatter, SwitchableFormatter):
                    handler.formatter.debug = self.debug_format_enabled

    def set_logger_level(self, name: str, level: LogLevel) -> None:
        """
        特定のロガーのレベルを設定.

        Args:
            name (str): ロガー名
            level (LogLevel): 新しいログレベル
        """
        if name in self._loggers:
            self._loggers[name].setLevel(level.to_logging_level())

    def get_available_loggers(self) -> list[str]:
        """管理されているロガーの名前一覧を取得."""
        return list(self._loggers.keys())

    def is_colorlog_available(self) -> bool:
        """colorlogが利用可能かチェック."""
        return COLORLOG_AVAILABLE

    @classmethod
    def reset(cls) -> None:
        """シングルトンインスタンスをリセット（主にテスト用）."""
        for logger in cls._loggers.values():
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
            logger.setLevel(logging.NOTSET)
            logger.propagate = True
        cls._instance = None
        cls._loggers.clear()


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """LoggerManager経由でロガーを取得するショートカット."""
    return LoggerManager().get_logger(name)
