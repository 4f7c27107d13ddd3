"""
HTTP CONNECT 协商模块

向 HTTP 代理发送 CONNECT 请求，只检查第一次收到数据中的状态行。
"""

import base64
import ipaddress
import logging
import re
from typing import Optional

from .errors import HttpProxyError

logger = logging.getLogger('socket-async-http')

STATUS_OK = re.compile(r'^HTTP/1\.[01] 200', re.IGNORECASE)
STATUS_LINE = re.compile(r'^HTTP/\d\.\d (\d{3})', re.IGNORECASE)


def format_authority(host: str, port: int) -> str:
    """IPv6 字面量加方括号"""
    try:
        if ipaddress.ip_address(host).version == 6:
            return f"[{host}]:{port}"
    except ValueError:
        pass
    return f"{host}:{port}"


class HttpConnectNegotiator:
    """
    HTTP CONNECT 握手

    Attributes:
        bridge: 已连接到代理服务器的 AsyncBridge
        username: 用户名，设置时发送 Proxy-Authorization
        password: 密码
        timeout: 等待应答的超时时间（秒）
    """

    def __init__(self, bridge, username: Optional[str] = None,
                 password: Optional[str] = None, timeout: Optional[float] = 10.0):
        self.bridge = bridge
        self.username = username or ''
        self.password = password or ''
        self.timeout = timeout

    def build_request(self, host: str, port: int) -> bytes:
        header = f"CONNECT {format_authority(host, port)} HTTP/1.1\r\n"
        header += "Connection: keep-alive\r\n"
        header += "Content-Length: 0\r\n"
        if self.username:
            credentials = f"{self.username}:{self.password}".encode('utf-8')
            header += f"Proxy-Authorization: Basic {base64.b64encode(credentials).decode('ascii')}\r\n"
        header += "\r\n"
        return header.encode('utf-8')

    async def run(self, host: str, port: int):
        """
        执行 CONNECT 请求

        Raises:
            HttpProxyError: 代理未返回 200 应答
        """
        logger.debug(f"发送 HTTP CONNECT 请求: {host}:{port}")
        self.bridge.write(self.build_request(host, port))

        data = await self.bridge.read_and_clear(None, self.timeout)
        response = data.decode('utf-8', errors='replace').strip()
        if not STATUS_OK.match(response):
            match = STATUS_LINE.match(response)
            status = int(match.group(1)) if match else None
            logger.warning(f"HTTP 代理拒绝连接: status={status}")
            raise HttpProxyError(f"Failed to connect to target: {response}", response, status)

        logger.info(f"HTTP 隧道已建立: {host}:{port}")
