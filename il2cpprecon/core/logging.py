# -*- coding: utf-8 -*-
"""
il2cpprecon/core/logging.py - 日志管理

提供统一的日志配置和管理功能
"""

import logging
import sys
from pathlib import Path
from typing import Optional


# 日志格式
DEFAULT_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
DETAILED_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s (%(filename)s:%(lineno)d): %(message)s"
SIMPLE_FORMAT = "%(levelname)s: %(message)s"

ROOT_LOGGER_NAME = "il2cpprecon"


class ColoredFormatter(logging.Formatter):
    """
    带颜色的日志格式化器 (仅终端)
    """

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def __init__(self, fmt=None, datefmt=None, use_colors=True) -> None:
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record) -> str:
        if self.use_colors:
            # 复制记录，其他处理器保留原始级别名
            record = logging.makeLogRecord(record.__dict__)
            color = self.COLORS.get(record.levelname, '')
            record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


class Il2CppReconLogger:
    """
    il2cpprecon 日志管理器

    提供统一的日志配置接口
    """

    _configured = False
    _root_logger = None

    @classmethod
    def setup(
        cls,
        level: str = "INFO",
        log_file: Optional[Path] = None,
        detailed: bool = False,
        use_colors: bool = True
    ):
        """
        配置日志系统

        Args:
            level: 日志级别 (DEBUG/INFO/WARNING/ERROR/CRITICAL)
            log_file: 日志文件路径 (可选)
            detailed: 是否使用详细格式
            use_colors: 是否使用彩色输出
        """
        if cls._configured:
            # 控制台处理器已由之前的 get_logger() 添加
            cls.set_level(level)
            if log_file:
                cls._add_file_handler(Path(log_file))
            return

        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(getattr(logging, level.upper(), logging.INFO))

        fmt = DETAILED_FORMAT if detailed else DEFAULT_FORMAT

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(ColoredFormatter(fmt, use_colors=use_colors))
        root.addHandler(console_handler)

        cls._root_logger = root
        cls._configured = True

        if log_file:
            cls._add_file_handler(Path(log_file))

    @classmethod
    def _add_file_handler(cls, log_file: Path) -> None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(DETAILED_FORMAT))
        cls._root_logger.addHandler(file_handler)

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        获取命名 logger

        Args:
            name: logger 名称 (会自动添加 il2cpprecon. 前缀)

        Returns:
            Logger 实例
        """
        if not cls._configured:
            cls.setup()

        if not name.startswith(f"{ROOT_LOGGER_NAME}."):
            name = f"{ROOT_LOGGER_NAME}.{name}"

        return logging.getLogger(name)

    @classmethod
    def set_level(cls, level: str) -> None:
        """动态调整日志级别"""
        if cls._root_logger:
            cls._root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(name: str) -> logging.Logger:
    """获取 logger 的便捷函数"""
    return Il2CppReconLogger.get_logger(name)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    detailed: bool = False
):
    """设置日志的便捷函数"""
    Il2CppReconLogger.setup(
        level=level,
        log_file=Path(log_file) if log_file else None,
        detailed=detailed
    )


def setup_logging_from_config(config=None):
    """
    从 Il2CppReconConfig 配置对象设置日志

    Args:
        config: Il2CppReconConfig 实例 (None 时使用 default_config)
    """
    # 延迟导入避免循环引用
    if config is None:
        from .config import default_config
        config = default_config

    setup_logging(
        level=config.log_level,
        log_file=str(config.log_file) if config.log_file else None,
        detailed=(config.log_level.upper() == "DEBUG")
    )


# 模块级别的 logger
logger = get_logger("core")
