"""
测试用的内存字节流

FakeStream 记录所有写入的数据，并按顺序对每次写入回放预设的应答，
用来在不依赖网络的情况下模拟代理服务器。
"""

import asyncio
from typing import List, Optional, Sequence, Union

from socket_async.errors import ESOCKETCLOSED, SocketAsyncError
from socket_async.stream import ByteStream, StreamEvent

Reply = Union[bytes, Sequence[bytes], None]


class FakeStream(ByteStream):
    """
    内存字节流

    Args:
        replies: 每次 write 之后回放的应答。元素为 bytes 时作为一次数据通知，
            为列表时每个元素一次数据通知，为 None 时不应答
        auto_connect: connect() 后是否自动触发 CONNECT
        connect_error: connect() 后触发的 ERROR，设置时不触发 CONNECT
    """

    def __init__(self, replies: Optional[List[Reply]] = None, auto_connect: bool = True,
                 connect_error: Optional[BaseException] = None):
        super().__init__()
        self.replies = list(replies or [])
        self.auto_connect = auto_connect
        self.connect_error = connect_error
        self.writes: List[bytes] = []
        self.connected_to = None
        self._destroyed = False

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def connect(self, host: str, port: int):
        self.connected_to = (host, port)
        self._active = True
        self._refresh_timer()
        loop = asyncio.get_running_loop()
        if self.connect_error is not None:
            loop.call_soon(self.fail, self.connect_error)
        elif self.auto_connect:
            loop.call_soon(self.accept)

    def accept(self):
        """模拟连接建立"""
        if self._destroyed or self._closed:
            return
        self._refresh_timer()
        self._emit(StreamEvent.CONNECT)

    def write(self, data: bytes):
        if self._destroyed or self._closed:
            raise SocketAsyncError(ESOCKETCLOSED, ESOCKETCLOSED)
        self.writes.append(bytes(data))
        self._refresh_timer()
        if not self.replies:
            return
        reply = self.replies.pop(0)
        if reply is None:
            return
        chunks = [reply] if isinstance(reply, (bytes, bytearray)) else list(reply)
        loop = asyncio.get_running_loop()
        for chunk in chunks:
            loop.call_soon(self.feed, chunk)

    def feed(self, data: bytes):
        """模拟收到数据"""
        if self._destroyed or self._closed:
            return
        self._refresh_timer()
        self._emit(StreamEvent.DATA, bytes(data))

    def end(self):
        """模拟对端发送 FIN"""
        self._emit(StreamEvent.END)

    def fail(self, error: BaseException):
        """模拟底层错误"""
        if self._destroyed:
            return
        self._emit(StreamEvent.ERROR, error)

    def destroy(self):
        if self._destroyed:
            return
        self._destroyed = True
        asyncio.get_running_loop().call_soon(self._emit_close)
