"""
SOCKS5 协商模块

本模块实现了 SOCKS5 客户端握手（RFC 1928 / RFC 1929）：
1. 问候：提供"无需认证"和"用户名密码"两种方法
2. 认证：代理选择用户名密码时发送认证请求
3. 连接请求：根据目标地址类型（IPv4/域名/IPv6）编码 CONNECT 请求
4. 应答检查：解析 REP 字段，失败时映射为可读的错误消息

协商成功后底层连接即为到目标主机的透明隧道。
"""

import ipaddress
import logging
import socket
import struct
from dataclasses import dataclass
from typing import Optional, Tuple

from .errors import (
    AuthFailed, BadAuthVersion, BadByteCount, BadVersion, SocketAsyncError,
    TargetConnectFailed, UnsupportedAddressType, UnsupportedAuthMethod,
)

logger = logging.getLogger('socket-async-socks5')


# ============================================================================
# SOCKS5 协议常量
# ============================================================================

class SOCKS5:
    """
    SOCKS5 协议常量定义
    """
    VERSION = 0x05
    AUTH_NONE = 0x00
    AUTH_USERPASS = 0x02
    USERPASS_VERSION = 0x01
    USERPASS_SUCCESS = 0x00
    CMD_CONNECT = 0x01
    RSV = 0x00
    ATYP_IPV4 = 0x01
    ATYP_DOMAIN = 0x03
    ATYP_IPV6 = 0x04
    REP_SUCCESS = 0x00


# 问候：版本 5，2 种方法（无需认证、用户名密码）
GREETING = bytes([SOCKS5.VERSION, 0x02, SOCKS5.AUTH_NONE, SOCKS5.AUTH_USERPASS])

# REP 字段到错误消息的映射
REPLY_MESSAGES = {
    0x01: 'Proxy server failure',
    0x02: 'Connection not allowed by ruleset',
    0x03: 'Network unreachable',
    0x04: 'Host unreachable',
    0x05: 'Connection refused',
    0x06: 'TTL expired',
    0x07: 'Command not supported',
    0x08: 'Address type not supported',
}


# ============================================================================
# 目标地址编码
# ============================================================================

@dataclass(frozen=True)
class TargetAddress:
    """
    目标地址

    Attributes:
        atyp: 地址类型（ATYP_IPV4 / ATYP_DOMAIN / ATYP_IPV6）
        address: IPv4 为 4 字节，IPv6 为 16 字节，域名为名称的 UTF-8 编码
    """
    atyp: int
    address: bytes

    @classmethod
    def classify(cls, host: str) -> 'TargetAddress':
        """
        根据主机字符串确定地址类型

        Raises:
            UnsupportedAddressType: 空主机名、超过 255 字节的域名或带区域标识的 IPv6 地址
        """
        if host.startswith('[') and host.endswith(']'):
            host = host[1:-1]
        if '%' in host:
            raise UnsupportedAddressType(f"Not support target host: {host}")

        try:
            ip = ipaddress.ip_address(host)
        except ValueError:
            name = host.encode('utf-8')
            if not name or len(name) > 255:
                raise UnsupportedAddressType(f"Not support target host: {host}")
            return cls(SOCKS5.ATYP_DOMAIN, name)

        if ip.version == 4:
            return cls(SOCKS5.ATYP_IPV4, ip.packed)
        return cls(SOCKS5.ATYP_IPV6, ip.packed)

    def encode(self, port: int) -> bytes:
        """编码为 ATYP + 地址 + 端口（大端 2 字节）"""
        if self.atyp == SOCKS5.ATYP_DOMAIN:
            body = bytes([len(self.address)]) + self.address
        else:
            body = self.address
        return bytes([self.atyp]) + body + struct.pack('>H', port)


def encode_address(host: str, port: int) -> bytes:
    """将主机和端口编码为 SOCKS5 地址字段"""
    return TargetAddress.classify(host).encode(port)


def address_length(data: bytes, offset: int = 0) -> Optional[int]:
    """
    计算从 offset 开始的地址字段（ATYP + 地址 + 端口）长度

    Returns:
        Optional[int]: 字段长度；数据不足以确定长度时返回 None

    Raises:
        UnsupportedAddressType: 未知的地址类型
    """
    if len(data) <= offset:
        return None
    atyp = data[offset]
    if atyp == SOCKS5.ATYP_IPV4:
        return 1 + 4 + 2
    if atyp == SOCKS5.ATYP_IPV6:
        return 1 + 16 + 2
    if atyp == SOCKS5.ATYP_DOMAIN:
        if len(data) <= offset + 1:
            return None
        return 1 + 1 + data[offset + 1] + 2
    raise UnsupportedAddressType(f"Unexpected address type: {atyp}")


def decode_address(data: bytes, offset: int = 0) -> Tuple[str, int, int]:
    """
    解析 SOCKS5 地址字段

    Returns:
        Tuple[str, int, int]: (主机, 端口, 消耗的字节数)

    Raises:
        BadByteCount: 数据不完整
        UnsupportedAddressType: 未知的地址类型
    """
    length = address_length(data, offset)
    if length is None or len(data) < offset + length:
        raise BadByteCount('Unexpected number of bytes received.')

    atyp = data[offset]
    if atyp == SOCKS5.ATYP_IPV4:
        host = socket.inet_ntoa(data[offset + 1:offset + 5])
    elif atyp == SOCKS5.ATYP_IPV6:
        host = socket.inet_ntop(socket.AF_INET6, data[offset + 1:offset + 17])
    else:
        host = data[offset + 2:offset + length - 2].decode('utf-8', errors='replace')

    port = struct.unpack('>H', data[offset + length - 2:offset + length])[0]
    return host, port, length


# ============================================================================
# 协商器
# ============================================================================

class Socks5Negotiator:
    """
    SOCKS5 握手

    通过 AsyncBridge 收发数据，任何异常都立即终止协商。

    Attributes:
        bridge: 已连接到代理服务器的 AsyncBridge
        username: 用户名（代理要求认证时使用）
        password: 密码
        timeout: 每一步读取的超时时间（秒）
    """

    def __init__(self, bridge, username: Optional[str] = None,
                 password: Optional[str] = None, timeout: Optional[float] = 10.0):
        self.bridge = bridge
        self.username = username or ''
        self.password = password or ''
        self.timeout = timeout

    async def run(self, host: str, port: int) -> Tuple[str, int]:
        """
        执行完整的 SOCKS5 握手

        Args:
            host: 目标主机
            port: 目标端口

        Returns:
            Tuple[str, int]: 代理返回的绑定地址 (BND.ADDR, BND.PORT)
        """
        method = await self._greet()
        if method == SOCKS5.AUTH_USERPASS:
            await self._authenticate()
        bound = await self._request(host, port)
        logger.info(f"SOCKS5 隧道已建立: {host}:{port}（bound={bound[0]}:{bound[1]}）")
        return bound

    async def _read_pair(self) -> bytes:
        try:
            data = await self.bridge.read_and_clear(lambda chunks: len(chunks) >= 2, self.timeout)
        except SocketAsyncError:
            # 应答不足 2 字节就超时或断开
            if 0 < self.bridge.buffered < 2:
                raise BadByteCount('Unexpected number of bytes received.')
            raise
        if len(data) != 2:
            raise BadByteCount('Unexpected number of bytes received.')
        return data

    async def _greet(self) -> int:
        logger.debug("发送 SOCKS5 问候")
        self.bridge.write(GREETING)
        data = await self._read_pair()
        if data[0] != SOCKS5.VERSION:
            raise BadVersion(f"Unexpected socks version number: {data[0]}.")
        method = data[1]
        if method not in (SOCKS5.AUTH_NONE, SOCKS5.AUTH_USERPASS):
            raise UnsupportedAuthMethod(f"Unexpected socks authentication method: {method}")
        logger.debug(f"代理选择认证方法: {method}")
        return method

    async def _authenticate(self):
        username = self.username.encode('utf-8')
        password = self.password.encode('utf-8')
        request = (
            bytes([SOCKS5.USERPASS_VERSION, len(username)]) + username
            + bytes([len(password)]) + password
        )
        logger.debug("发送用户名密码认证")
        self.bridge.write(request)

        data = await self._read_pair()
        if data[0] != SOCKS5.USERPASS_VERSION:
            raise BadAuthVersion(f"Unexpected authentication method code: {data[0]}.")
        if data[1] != SOCKS5.USERPASS_SUCCESS:
            raise AuthFailed(f"Username and password authentication failure: {data[1]}.")

    async def _request(self, host: str, port: int) -> Tuple[str, int]:
        target = TargetAddress.classify(host)
        request = bytes([SOCKS5.VERSION, SOCKS5.CMD_CONNECT, SOCKS5.RSV]) + target.encode(port)
        logger.debug(f"发送 CONNECT 请求: {host}:{port}（atyp={target.atyp}）")
        self.bridge.write(request)

        reply = await self.bridge.read_until(lambda chunks: len(chunks) >= 2, self.timeout)
        if reply[0] != SOCKS5.VERSION:
            raise BadVersion(f"Unexpected SOCKS version number: {reply[0]}.")
        if reply[1] != SOCKS5.REP_SUCCESS:
            message = REPLY_MESSAGES.get(reply[1])
            if message is None:
                message = f"Unknown error, failed to connect to target: {host}"
            raise TargetConnectFailed(message, reply[1])

        # VER REP RSV + 地址字段；只取走应答本身，隧道数据留在缓冲区
        def complete(chunks: bytes) -> bool:
            length = address_length(chunks, 3)
            return length is not None and len(chunks) >= 3 + length

        reply = await self.bridge.read_until(complete, self.timeout)
        bound_host, bound_port, length = decode_address(reply, 3)
        self.bridge.splice(0, 3 + length)
        return bound_host, bound_port
