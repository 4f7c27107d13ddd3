"""
日志管理模块

功能概述:
1. 多级别日志记录（DEBUG, INFO, WARNING, ERROR, CRITICAL）
2. 控制台输出（终端下彩色显示）
3. 可选的文件输出及按大小/日期轮转
4. 上下文信息（目标主机、代理）附加到每条日志
5. 支持 YAML 配置文件的 logging 段和 LOG_* 环境变量
"""

import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(context)s] - %(message)s"


@dataclass
class LogConfig:
    """
    日志配置数据类

    Attributes:
        level: 日志级别
        log_dir: 日志存储目录
        log_file: 日志文件名
        max_bytes: 单个日志文件最大大小（字节）
        backup_count: 保留的备份文件数量
        rotation_type: 轮转类型（size, date, none）
        format_string: 日志格式字符串
        enable_console: 是否输出到控制台
        enable_file: 是否输出到文件
        context_fields: 上下文字段列表
    """
    level: str = "INFO"
    log_dir: str = "logs"
    log_file: str = "socket-async.log"
    max_bytes: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5
    rotation_type: str = "size"
    format_string: str = DEFAULT_FORMAT
    enable_console: bool = True
    enable_file: bool = False
    context_fields: List[str] = field(default_factory=lambda: ["target", "proxy"])

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LogConfig':
        """
        从配置字典创建，LOG_* 环境变量优先

        Args:
            data: 配置文件中的 logging 段
        """
        def flag(env: str, key: str, default: bool) -> bool:
            return os.getenv(env, str(data.get(key, default))).lower() == 'true'

        return cls(
            level=os.getenv('LOG_LEVEL', data.get('level', 'INFO')),
            log_dir=os.getenv('LOG_DIR', data.get('log_dir', 'logs')),
            log_file=os.getenv('LOG_FILE', data.get('log_file', 'socket-async.log')),
            max_bytes=int(os.getenv('LOG_MAX_BYTES', data.get('max_bytes', 10 * 1024 * 1024))),
            backup_count=int(os.getenv('LOG_BACKUP_COUNT', data.get('backup_count', 5))),
            rotation_type=os.getenv('LOG_ROTATION_TYPE', data.get('rotation_type', 'size')),
            format_string=os.getenv('LOG_FORMAT', data.get('format_string', DEFAULT_FORMAT)),
            enable_console=flag('LOG_ENABLE_CONSOLE', 'enable_console', True),
            enable_file=flag('LOG_ENABLE_FILE', 'enable_file', False),
            context_fields=data.get('context_fields', ["target", "proxy"]),
        )


class ContextFilter(logging.Filter):
    """
    上下文过滤器

    为日志记录添加 record.context
    """

    def __init__(self, context_fields: Optional[List[str]] = None):
        super().__init__()
        self.context_fields = context_fields or []
        self.context_data: Dict[str, Any] = {}

    def add_context(self, **kwargs):
        self.context_data.update(kwargs)

    def clear_context(self):
        self.context_data.clear()

    def filter(self, record):
        context_parts = []
        for name in self.context_fields:
            value = self.context_data.get(name, "-")
            context_parts.append(f"{name}={value}")

        record.context = " | ".join(context_parts)
        return True


class LogFormatter(logging.Formatter):
    """
    自定义日志格式化器

    支持彩色输出
    """

    COLORS = {
        'DEBUG': '\033[36m',      # 青色
        'INFO': '\033[32m',       # 绿色
        'WARNING': '\033[33m',    # 黄色
        'ERROR': '\033[31m',      # 红色
        'CRITICAL': '\033[35m',   # 紫色
    }
    RESET = '\033[0m'

    def __init__(self, fmt=None, datefmt=None, style='%', use_color=False):
        super().__init__(fmt, datefmt, style)
        self.use_color = use_color

    def format(self, record):
        # 确保 context 字段存在
        if not hasattr(record, 'context'):
            record.context = "-"

        levelname = record.levelname
        if self.use_color and levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"

        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class LoggerManager:
    """
    日志管理器（单例）

    管理日志系统的初始化和上下文信息
    """

    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self.config: Optional[LogConfig] = None
            self.context_filter: Optional[ContextFilter] = None
            self._initialized = True

    def load_config_from_file(self, config_file: str) -> LogConfig:
        """
        从 YAML 配置文件的 logging 段加载日志配置

        文件不存在或格式错误时只使用环境变量
        """
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            return LogConfig.from_dict({})
        except yaml.YAMLError as e:
            print(f"加载日志配置文件失败: {e}，使用环境变量配置", file=sys.stderr)
            return LogConfig.from_dict({})

        return LogConfig.from_dict(config_data.get('logging') or {})

    def initialize(self, config: Optional[LogConfig] = None, config_file: Optional[str] = None):
        """
        初始化日志系统

        Args:
            config: 日志配置对象（可选）
            config_file: 配置文件路径（可选）
        """
        if config:
            self.config = config
        elif config_file:
            self.config = self.load_config_from_file(config_file)
        else:
            self.config = LogConfig.from_dict({})

        root_logger = logging.getLogger()
        level = getattr(logging, self.config.level.upper(), logging.INFO)
        root_logger.setLevel(level)
        root_logger.handlers.clear()

        self.context_filter = ContextFilter(self.config.context_fields)

        if self.config.enable_console:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(LogFormatter(
                fmt=self.config.format_string,
                datefmt='%Y-%m-%d %H:%M:%S',
                use_color=sys.stderr.isatty()
            ))
            self._attach(root_logger, handler, level)

        if self.config.enable_file:
            self._attach(root_logger, self._create_file_handler(), level)

    def _attach(self, logger: logging.Logger, handler: logging.Handler, level: int):
        handler.setLevel(level)
        handler.addFilter(self.context_filter)
        logger.addHandler(handler)

    def _create_file_handler(self) -> logging.Handler:
        """创建文件处理器（支持轮转）"""
        log_dir = Path(self.config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file_path = log_dir / self.config.log_file

        if self.config.rotation_type == 'size':
            handler = logging.handlers.RotatingFileHandler(
                filename=log_file_path,
                maxBytes=self.config.max_bytes,
                backupCount=self.config.backup_count,
                encoding='utf-8'
            )
        elif self.config.rotation_type == 'date':
            handler = logging.handlers.TimedRotatingFileHandler(
                filename=log_file_path,
                when='midnight',
                interval=1,
                backupCount=self.config.backup_count,
                encoding='utf-8'
            )
        else:
            handler = logging.FileHandler(filename=log_file_path, encoding='utf-8')

        handler.setFormatter(LogFormatter(
            fmt=self.config.format_string,
            datefmt='%Y-%m-%d %H:%M:%S',
            use_color=False
        ))
        return handler

    def add_context(self, **kwargs):
        if self.context_filter:
            self.context_filter.add_context(**kwargs)

    def clear_context(self):
        if self.context_filter:
            self.context_filter.clear_context()


def get_logger(name: str) -> logging.Logger:
    """获取日志记录器（便捷函数）"""
    return logging.getLogger(name)


def add_context(**kwargs):
    """添加上下文信息（便捷函数）"""
    LoggerManager().add_context(**kwargs)


def clear_context():
    """清除上下文信息（便捷函数）"""
    LoggerManager().clear_context()
