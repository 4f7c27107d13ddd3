"""
配置管理模块

从 YAML 配置文件加载客户端配置。

配置文件格式:
    target:
      host: example.com
      port: 443
      timeout: 5          # 连接超时（秒），可选
    idle_timeout: 30      # 连接建立后的空闲超时（秒），可选
    proxy:                # 可选
      type: socks5        # socks5 或 http
      host: 127.0.0.1
      port: 1080
      username: user
      password: pass
      timeout: 10
    logging:
      level: INFO
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml

from .connection import ConnectOptions, ProxyOptions

logger = logging.getLogger('socket-async-config')


@dataclass
class ClientConfig:
    """
    客户端配置数据类

    Attributes:
        host: 目标主机
        port: 目标端口
        timeout: 连接超时（秒）
        idle_timeout: 连接建立后的空闲超时（秒）
        proxy: 代理参数（可选）
    """
    host: str
    port: int
    timeout: Optional[float] = None
    idle_timeout: Optional[float] = None
    proxy: Optional[ProxyOptions] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ClientConfig':
        """
        从配置字典创建

        Raises:
            KeyError: 缺少 target.host 或 target.port
            InvalidProxyOptions: proxy 段不合法
        """
        target = data.get('target') or {}
        proxy = data.get('proxy')
        return cls(
            host=target['host'],
            port=int(target['port']),
            timeout=target.get('timeout'),
            idle_timeout=data.get('idle_timeout'),
            proxy=ProxyOptions.from_dict(proxy) if proxy else None,
        )

    def connect_options(self) -> ConnectOptions:
        return ConnectOptions(self.host, self.port, self.timeout)


def load_config(config_file: str) -> Dict[str, Any]:
    """
    加载配置文件

    Args:
        config_file: 配置文件路径

    Returns:
        Dict[str, Any]: 配置数据字典，文件不存在或格式错误时返回空字典
    """
    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as e:
        logger.warning(f"配置文件格式错误: {e}")
        return {}


def load_client_config(config_file: str) -> Optional[ClientConfig]:
    """加载客户端配置，文件中没有 target 段时返回 None"""
    data = load_config(config_file)
    if not data.get('target'):
        return None
    return ClientConfig.from_dict(data)
