"""
TCP 字节流模块

基于 asyncio Protocol 实现 ByteStream，将传输层回调转换为事件通知：
- connection_made  -> CONNECT
- data_received    -> DATA
- eof_received     -> END
- connection_lost  -> ERROR（如有异常）+ CLOSE

连接阶段的异常（DNS 解析失败、连接被拒绝等）会被转换为带错误码的 SocketAsyncError。
"""

import asyncio
import errno
import logging
import socket
from typing import List, Optional, Tuple

from .errors import (
    ENOTFOUND, ECONNREFUSED, ESOCKETCLOSED, ESOCKETERROR,
    SocketAsyncError,
)
from .stream import ByteStream, StreamEvent

logger = logging.getLogger('socket-async-tcp')


def translate_error(exc: BaseException, host: str = '', port: int = 0) -> SocketAsyncError:
    """
    将底层异常转换为带错误码的 SocketAsyncError

    Args:
        exc: 原始异常
        host: 目标主机，用于错误消息
        port: 目标端口，用于错误消息

    Returns:
        SocketAsyncError: 转换后的异常，原始异常保存在 __cause__ 中
    """
    if isinstance(exc, SocketAsyncError):
        return exc

    if isinstance(exc, socket.gaierror):
        error = SocketAsyncError(f"getaddrinfo {ENOTFOUND} {host}", ENOTFOUND)
    elif isinstance(exc, ConnectionRefusedError):
        error = SocketAsyncError(f"connect {ECONNREFUSED} {host}:{port}", ECONNREFUSED)
    elif isinstance(exc, OSError) and exc.errno in errno.errorcode:
        code = errno.errorcode[exc.errno]
        error = SocketAsyncError(f"{code} {exc.strerror or exc}", code)
    else:
        error = SocketAsyncError(str(exc) or ESOCKETERROR, ESOCKETERROR)

    error.__cause__ = exc
    return error


class TcpStream(ByteStream, asyncio.Protocol):
    """
    TCP 字节流

    connect() 在当前事件循环上创建连接任务，连接结果通过事件通知。
    连接建立前写入的数据会被排队，连接成功后按顺序发送。

    Attributes:
        remote: 目标地址 (host, port)，未发起连接时为 None
    """

    def __init__(self):
        super().__init__()
        self.remote: Optional[Tuple[str, int]] = None
        self._transport: Optional[asyncio.Transport] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._pending_writes: List[bytes] = []
        self._destroyed = False

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def connect(self, host: str, port: int):
        if self._connect_task is not None or self._destroyed:
            raise SocketAsyncError("stream is already connecting or destroyed", 'EISCONN')

        loop = asyncio.get_running_loop()
        self.remote = (host, port)
        self._active = True
        self._refresh_timer()

        logger.debug(f"发起 TCP 连接: {host}:{port}")
        self._connect_task = loop.create_task(
            loop.create_connection(lambda: self, host, port)
        )
        self._connect_task.add_done_callback(self._on_connect_done)

    def _on_connect_done(self, task: asyncio.Task):
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        host, port = self.remote
        error = translate_error(exc, host, port)
        logger.debug(f"TCP 连接失败: {host}:{port}, error={error}")
        if not self._destroyed:
            self._emit(StreamEvent.ERROR, error)
        self.destroy()

    def write(self, data: bytes):
        if self._destroyed or self._closed:
            raise SocketAsyncError(f"{ESOCKETCLOSED} write after destroy", ESOCKETCLOSED)
        if self._transport is None:
            self._pending_writes.append(bytes(data))
        else:
            self._transport.write(data)
        self._refresh_timer()

    def destroy(self):
        if self._destroyed:
            return
        self._destroyed = True
        self._pending_writes.clear()

        if self._transport is not None:
            self._transport.abort()
            return

        if self._connect_task is not None and not self._connect_task.done():
            self._connect_task.cancel()
        try:
            asyncio.get_running_loop().call_soon(self._emit_close)
        except RuntimeError:
            self._emit_close()

    # ------------------------------------------------------------------
    # asyncio.Protocol 回调
    # ------------------------------------------------------------------

    def connection_made(self, transport: asyncio.Transport):
        self._transport = transport
        if self._destroyed:
            transport.abort()
            return

        for chunk in self._pending_writes:
            transport.write(chunk)
        self._pending_writes.clear()

        self._refresh_timer()
        self._emit(StreamEvent.CONNECT)

    def data_received(self, data: bytes):
        self._refresh_timer()
        self._emit(StreamEvent.DATA, data)

    def eof_received(self):
        self._emit(StreamEvent.END)
        # 返回 None，传输层随后自动关闭
        return None

    def connection_lost(self, exc: Optional[Exception]):
        if exc is not None and not self._destroyed:
            host, port = self.remote or ('', 0)
            self._emit(StreamEvent.ERROR, translate_error(exc, host, port))
        self._emit_close()
