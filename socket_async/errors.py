"""
错误类型模块

本模块定义了连接、读取和代理协商过程中可能出现的全部异常类型。
每个异常都带有一个字符串错误码（code），调用方可以只检查 code 判断错误类别：

- 建立连接错误: ENOTFOUND, ECONNREFUSED, ECONNECTTIMEOUT
- 空闲/读取超时: ESOCKETTIMEOUT
- 对端终止: EENDFIN, ESOCKETCLOSED
- SOCKS5 协议错误: Socks5Error 及其子类
- HTTP 代理错误: HttpProxyError

使用代理时，代理连接或协商过程中的任何错误都会被包装为 ProxyError。
"""

from typing import Optional


# ============================================================================
# 错误码常量
# ============================================================================

ENOTFOUND = 'ENOTFOUND'
ECONNREFUSED = 'ECONNREFUSED'
ECONNECTTIMEOUT = 'ECONNECTTIMEOUT'
ESOCKETTIMEOUT = 'ESOCKETTIMEOUT'
EENDFIN = 'EENDFIN'
ESOCKETCLOSED = 'ESOCKETCLOSED'
ESOCKETERROR = 'ESOCKETERROR'


class SocketAsyncError(Exception):
    """
    所有错误的基类

    Attributes:
        code: 错误码，例如 ECONNECTTIMEOUT
    """

    code = ESOCKETERROR

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        if code is not None:
            self.code = code
        super().__init__(message or self.code)


class OperationInProgress(SocketAsyncError):
    """同一连接上已有一个未完成的 connect/read 操作"""

    code = 'EINPROGRESS'


class InvalidProxyOptions(SocketAsyncError, ValueError):
    """代理参数不合法（类型、主机或端口），在任何 I/O 之前抛出"""

    code = 'EPROXYOPTIONS'


# ============================================================================
# SOCKS5 协议错误
# ============================================================================

class Socks5Error(SocketAsyncError):
    """SOCKS5 协商失败"""

    code = 'ESOCKS5'


class BadByteCount(Socks5Error):
    code = 'ESOCKS5BYTECOUNT'


class BadVersion(Socks5Error):
    code = 'ESOCKS5VERSION'


class UnsupportedAuthMethod(Socks5Error):
    code = 'ESOCKS5AUTHMETHOD'


class BadAuthVersion(Socks5Error):
    code = 'ESOCKS5AUTHVERSION'


class AuthFailed(Socks5Error):
    code = 'ESOCKS5AUTH'


class UnsupportedAddressType(Socks5Error):
    code = 'ESOCKS5ATYP'


class TargetConnectFailed(Socks5Error):
    """
    代理服务器连接目标失败

    Attributes:
        reply_code: SOCKS5 应答中的 REP 字段
    """

    code = 'ESOCKS5CONNECT'

    def __init__(self, message: str, reply_code: int):
        super().__init__(message)
        self.reply_code = reply_code


# ============================================================================
# HTTP 代理错误
# ============================================================================

class HttpProxyError(SocketAsyncError):
    """
    HTTP CONNECT 请求未得到 200 应答

    Attributes:
        response: 代理返回的原始文本（已去除首尾空白）
        status: 状态码，无法解析时为 None
    """

    code = 'EHTTPPROXY'

    def __init__(self, message: str, response: str = '', status: Optional[int] = None):
        super().__init__(message)
        self.response = response
        self.status = status


# ============================================================================
# 代理错误包装
# ============================================================================

class ProxyError(SocketAsyncError):
    """
    代理错误

    包装代理连接或协商过程中的原始异常，保留原始消息和错误码。

    Attributes:
        original: 原始异常
    """

    def __init__(self, original: BaseException):
        self.original = original
        super().__init__(str(original), getattr(original, 'code', ESOCKETERROR))
