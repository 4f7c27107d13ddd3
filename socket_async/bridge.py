"""
事件到协程的桥接模块

AsyncBridge 包装一个 ByteStream，把事件通知转换为可 await 的操作：
- connect_with_timeout: 建立连接，支持独立于空闲超时的连接超时
- read_until: 等待缓冲区满足条件
- read_and_clear: read_until 之后立即移除已读取的字节

每个连接对象同一时间只有一个挂起的操作槽位，由第一个到达的事件完成，
之后到达的事件只做后台处理。操作完成时（无论成功失败）都会先恢复原来的
空闲超时设置，再唤醒等待方。
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from .buffer import ReceiveBuffer
from .errors import (
    ECONNECTTIMEOUT, EENDFIN, ESOCKETCLOSED, ESOCKETTIMEOUT,
    OperationInProgress, SocketAsyncError,
)
from .stream import ByteStream, StreamEvent

logger = logging.getLogger('socket-async-bridge')

Predicate = Callable[[bytes], bool]


class _PendingOperation:
    """
    挂起的操作

    Attributes:
        kind: 'connect' 或 'read'
        future: 完成句柄，只会被设置一次
        predicate: read 操作的判断函数，None 表示任意数据即满足
        previous_timeout: 操作开始前的空闲超时，完成时恢复
    """

    CONNECT = 'connect'
    READ = 'read'

    def __init__(self, kind: str, future: asyncio.Future,
                 previous_timeout: Optional[float], predicate: Optional[Predicate] = None):
        self.kind = kind
        self.future = future
        self.previous_timeout = previous_timeout
        self.predicate = predicate


class AsyncBridge:
    """
    字节流的异步桥接

    Attributes:
        stream: 底层字节流
        error: 连接的终止错误，连接正常时为 None
        buffered: 接收缓冲区中的字节数
    """

    def __init__(self, stream: ByteStream):
        self.stream = stream
        self._buffer = ReceiveBuffer()
        self._error: Optional[BaseException] = None
        self._pending: Optional[_PendingOperation] = None
        stream.subscribe(self._on_event)

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    # ------------------------------------------------------------------
    # 公开操作
    # ------------------------------------------------------------------

    async def connect_with_timeout(self, options) -> None:
        """
        建立连接

        Args:
            options: ConnectOptions，包含 host、port 和可选的 timeout（秒）

        Raises:
            SocketAsyncError: ECONNECTTIMEOUT、EENDFIN、ESOCKETCLOSED 或底层错误
        """
        self._ensure_idle()
        previous = self.stream.timeout
        if options.timeout:
            self.stream.set_timeout(options.timeout)

        logger.info(f"正在连接 {options.host}:{options.port}（timeout={options.timeout}）")
        try:
            self.stream.connect(options.host, options.port)
        except Exception:
            self.stream.set_timeout(previous or 0)
            raise

        op = self._begin(_PendingOperation.CONNECT, previous)
        await self._wait(op)
        logger.info(f"已连接 {options.host}:{options.port}")

    async def read_until(self, predicate: Optional[Predicate] = None,
                         timeout: Optional[float] = None) -> bytes:
        """
        等待缓冲区内容满足条件

        每次收到数据都会用整个缓冲区调用 predicate。满足时返回缓冲区的快照，
        缓冲区本身不会被清空。

        Args:
            predicate: 判断函数，参数为当前缓冲区内容；None 表示任意数据即满足
            timeout: 本次读取的超时时间（秒），None 表示沿用空闲超时

        Returns:
            bytes: 满足条件时的缓冲区内容

        Raises:
            SocketAsyncError: ESOCKETTIMEOUT、EENDFIN、ESOCKETCLOSED 或底层错误
        """
        self._ensure_idle()
        previous = self.stream.timeout
        if timeout:
            self.stream.set_timeout(timeout)

        op = self._begin(_PendingOperation.READ, previous, predicate)
        if self._buffer:
            self._check_read(op)
        if not op.future.done() and self._error is not None:
            self._complete(op, error=self._error)
        return await self._wait(op)

    async def read_and_clear(self, predicate: Optional[Predicate] = None,
                             timeout: Optional[float] = None) -> bytes:
        """
        读取数据并移除已读取的部分

        只移除 read_until 完成时的字节数，之后到达的数据保留在缓冲区中。
        """
        data = await self.read_until(predicate, timeout)
        self._buffer.splice(0, len(data))
        return data

    def splice(self, start: int = 0, end: Optional[int] = None) -> bytes:
        """移除并返回缓冲区中 [start, end) 区间的字节"""
        return self._buffer.splice(start, end)

    def write(self, data: bytes):
        """
        写入数据

        Raises:
            SocketAsyncError: 连接已处于终止状态
        """
        if self._error is not None:
            raise self._error
        logger.debug(f"写入数据: {len(data)} 字节")
        self.stream.write(data)

    def set_timeout(self, timeout: Optional[float]):
        """设置空闲超时（秒），0 或 None 表示清除"""
        self.stream.set_timeout(timeout)

    def destroy(self):
        """释放底层连接"""
        self.stream.destroy()

    # ------------------------------------------------------------------
    # 挂起操作管理
    # ------------------------------------------------------------------

    def _ensure_idle(self):
        if self._pending is not None:
            raise OperationInProgress(
                f"a {self._pending.kind} operation is already pending on this connection"
            )

    def _begin(self, kind: str, previous: Optional[float],
               predicate: Optional[Predicate] = None) -> _PendingOperation:
        future = asyncio.get_running_loop().create_future()
        op = _PendingOperation(kind, future, previous, predicate)
        self._pending = op
        return op

    async def _wait(self, op: _PendingOperation) -> Any:
        try:
            return await op.future
        finally:
            # 等待方被取消时释放槽位
            if self._pending is op:
                self._release(op)

    def _release(self, op: _PendingOperation):
        self._pending = None
        self.stream.set_timeout(op.previous_timeout or 0)

    def _complete(self, op: _PendingOperation, result: Any = None,
                  error: Optional[BaseException] = None):
        """完成操作，只有第一次调用生效"""
        if self._pending is not op or op.future.done():
            return
        self._release(op)
        if error is not None:
            op.future.set_exception(error)
        else:
            op.future.set_result(result)

    def _check_read(self, op: _PendingOperation):
        data = self._buffer.peek()
        try:
            satisfied = op.predicate is None or op.predicate(data)
        except Exception as e:
            self._complete(op, error=e)
            return
        if satisfied:
            self._complete(op, result=data)

    # ------------------------------------------------------------------
    # 事件处理
    # ------------------------------------------------------------------

    def _record(self, error: BaseException):
        if self._error is None:
            self._error = error

    def _on_event(self, event: StreamEvent, payload: Any):
        op = self._pending

        if event is StreamEvent.DATA:
            logger.debug(f"收到数据: {len(payload)} 字节，缓冲区 {len(self._buffer) + len(payload)} 字节")
            self._buffer.append(payload)
            if op is not None and op.kind == _PendingOperation.READ:
                self._check_read(op)

        elif event is StreamEvent.CONNECT:
            if op is not None and op.kind == _PendingOperation.CONNECT:
                self._complete(op)

        elif event is StreamEvent.TIMEOUT:
            if op is not None and op.kind == _PendingOperation.CONNECT:
                error = SocketAsyncError(ECONNECTTIMEOUT, ECONNECTTIMEOUT)
            else:
                error = SocketAsyncError(ESOCKETTIMEOUT, ESOCKETTIMEOUT)
            logger.debug(f"连接超时: {error.code}")
            self._record(error)
            if op is not None:
                self._complete(op, error=error)
            self.stream.destroy()

        elif event is StreamEvent.ERROR:
            logger.error(f"连接出错: {payload}")
            self._record(payload)
            if op is not None:
                self._complete(op, error=payload)
            self.stream.destroy()

        elif event is StreamEvent.END:
            logger.debug("对端发送 FIN")
            error = SocketAsyncError(EENDFIN, EENDFIN)
            self._record(error)
            if op is not None:
                self._complete(op, error=error)
            self.stream.destroy()

        elif event is StreamEvent.CLOSE:
            logger.debug("连接已关闭")
            error = SocketAsyncError(ESOCKETCLOSED, ESOCKETCLOSED)
            self._record(error)
            if op is not None:
                self._complete(op, error=error)
