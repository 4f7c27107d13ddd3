"""
字节流抽象模块

本模块定义了 AsyncBridge 所依赖的字节流能力（ByteStream）：
- connect: 发起连接，立即返回，结果通过事件通知
- write: 写入数据
- destroy: 释放底层资源，CLOSE 事件异步且只触发一次
- subscribe: 订阅事件通知（CONNECT, DATA, ERROR, TIMEOUT, END, CLOSE）
- set_timeout: 空闲超时，任何收发活动都会重新计时

具体的传输实现（TcpStream、测试用的 FakeStream）继承此类。
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, List, Optional

logger = logging.getLogger('socket-async-stream')


class StreamEvent(Enum):
    """字节流事件类型"""
    CONNECT = 'connect'   # 连接建立成功
    DATA = 'data'         # 收到数据，payload 为 bytes
    ERROR = 'error'       # 出错，payload 为异常对象
    TIMEOUT = 'timeout'   # 空闲超时
    END = 'end'           # 对端发送 FIN
    CLOSE = 'close'       # 底层资源已关闭


EventHandler = Callable[[StreamEvent, Any], None]


class ByteStream(ABC):
    """
    字节流基类

    实现了事件订阅和空闲超时计时器，子类只需实现 connect、write、destroy，
    并在合适的时机调用 _emit / _emit_close / _refresh_timer。

    Attributes:
        timeout: 当前空闲超时时间（秒），None 表示未设置
        closed: CLOSE 事件是否已经触发
    """

    def __init__(self):
        self._handlers: List[EventHandler] = []
        self._timeout: Optional[float] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._active = False
        self._closed = False

    def subscribe(self, handler: EventHandler):
        """订阅事件通知"""
        self._handlers.append(handler)

    def unsubscribe(self, handler: EventHandler):
        """取消订阅"""
        if handler in self._handlers:
            self._handlers.remove(handler)

    @property
    def timeout(self) -> Optional[float]:
        return self._timeout

    @property
    def closed(self) -> bool:
        return self._closed

    def set_timeout(self, timeout: Optional[float]):
        """
        设置空闲超时

        Args:
            timeout: 超时时间（秒），0 或 None 表示清除
        """
        self._timeout = timeout or None
        self._refresh_timer()

    def _refresh_timer(self):
        """收发活动后重新计时，仅在连接中或已连接时生效"""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._timeout and self._active and not self._closed:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self._timeout, self._on_idle)

    def _on_idle(self):
        self._timer = None
        logger.debug(f"空闲超时触发（{self._timeout} 秒）")
        self._emit(StreamEvent.TIMEOUT)

    def _emit(self, event: StreamEvent, payload: Any = None):
        for handler in list(self._handlers):
            handler(event, payload)

    def _emit_close(self):
        """触发 CLOSE 事件，重复调用无效"""
        if self._closed:
            return
        self._closed = True
        self._active = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._emit(StreamEvent.CLOSE)

    @property
    @abstractmethod
    def destroyed(self) -> bool:
        """destroy() 是否已被调用"""
        pass

    @abstractmethod
    def connect(self, host: str, port: int):
        """
        发起连接，不等待结果

        Args:
            host: 目标主机
            port: 目标端口
        """
        pass

    @abstractmethod
    def write(self, data: bytes):
        """
        写入数据

        Args:
            data: 要发送的数据
        """
        pass

    @abstractmethod
    def destroy(self):
        """释放底层资源"""
        pass
