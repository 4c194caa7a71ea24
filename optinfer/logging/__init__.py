"""
optinfer.logging: ログ管理モジュール.

colorlogを使用したオブジェクト指向のログ管理システム
"""

from .logger_manager import LoggerManager, LogLevel, get_logger

__all__ = ["LoggerManager", "LogLevel", "get_logger"]
