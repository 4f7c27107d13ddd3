"""
接收缓冲区模块

ReceiveBuffer 累积从连接上收到的全部字节，只能通过 append 增长，
通过调用方显式的 splice 缩减。缓冲区归单个 AsyncBridge 所有，不做任何加锁。
"""

from typing import Optional


class ReceiveBuffer:
    """
    可增长的字节累加器

    Attributes:
        length: 当前缓冲的字节数（只读）
    """

    def __init__(self):
        self._data = bytearray()

    def append(self, data: bytes):
        """追加一次数据通知收到的字节"""
        self._data += data

    def splice(self, start: int = 0, end: Optional[int] = None) -> bytes:
        """
        取出并移除 [start, end) 区间的字节

        区间前后的字节按原顺序保留。越界索引按切片语义截断，不抛出异常。

        Args:
            start: 起始索引，默认为 0
            end: 结束索引，默认为缓冲区长度

        Returns:
            bytes: 被移除的字节
        """
        if end is None:
            end = len(self._data)
        chunk = bytes(self._data[start:end])
        del self._data[start:end]
        return chunk

    def peek(self) -> bytes:
        """返回当前内容的快照，不修改缓冲区"""
        return bytes(self._data)

    @property
    def length(self) -> int:
        return len(self._data)

    def __len__(self):
        return len(self._data)

    def __bool__(self):
        return bool(self._data)

    def __repr__(self):
        return f"<ReceiveBuffer length={len(self._data)}>"
