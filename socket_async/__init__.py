"""
socket-async

支持异步写法和代理的 TCP 连接库：
- 带独立连接超时的 connect
- 基于接收缓冲区的 read_until / read_and_clear
- SOCKS5 和 HTTP CONNECT 代理协商

使用示例:
    from socket_async import open_connection

    sock = await open_connection('example.com', 80, timeout=5.0,
                                 proxy='socks5://127.0.0.1:1080')
    sock.write(b'HEAD / HTTP/1.0\\r\\n\\r\\n')
    head = await sock.read_and_clear(lambda chunks: b'\\r\\n\\r\\n' in chunks, 10.0)
"""

from .buffer import ReceiveBuffer
from .bridge import AsyncBridge
from .connection import (
    ConnectOptions,
    ProxyOptions,
    SocketAsync,
    open_connection,
)
from .errors import (
    # 错误码
    ENOTFOUND,
    ECONNREFUSED,
    ECONNECTTIMEOUT,
    ESOCKETTIMEOUT,
    EENDFIN,
    ESOCKETCLOSED,

    # 异常类型
    SocketAsyncError,
    OperationInProgress,
    InvalidProxyOptions,
    Socks5Error,
    BadByteCount,
    BadVersion,
    UnsupportedAuthMethod,
    BadAuthVersion,
    AuthFailed,
    UnsupportedAddressType,
    TargetConnectFailed,
    HttpProxyError,
    ProxyError,
)
from .http_connect import HttpConnectNegotiator
from .socks5 import Socks5Negotiator, TargetAddress, decode_address, encode_address
from .stream import ByteStream, StreamEvent
from .tcp import TcpStream

__version__ = '1.0.0'

__all__ = [
    'ReceiveBuffer',
    'AsyncBridge',
    'ByteStream',
    'StreamEvent',
    'TcpStream',
    'ConnectOptions',
    'ProxyOptions',
    'SocketAsync',
    'open_connection',
    'Socks5Negotiator',
    'HttpConnectNegotiator',
    'TargetAddress',
    'encode_address',
    'decode_address',
    'ENOTFOUND',
    'ECONNREFUSED',
    'ECONNECTTIMEOUT',
    'ESOCKETTIMEOUT',
    'EENDFIN',
    'ESOCKETCLOSED',
    'SocketAsyncError',
    'OperationInProgress',
    'InvalidProxyOptions',
    'Socks5Error',
    'BadByteCount',
    'BadVersion',
    'UnsupportedAuthMethod',
    'BadAuthVersion',
    'AuthFailed',
    'UnsupportedAddressType',
    'TargetConnectFailed',
    'HttpProxyError',
    'ProxyError',
]
