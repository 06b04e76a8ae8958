from __future__ import annotations

import asyncio
import logging
import random
import socket
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Tuple

Address = Tuple[str, int]
Filter = Callable[[bytes, Address], Optional[Any]]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Impairment:
    loss_rate: float = 0.0
    delay_ms: int = 0

    def should_drop(self) -> bool:
        return self.loss_rate > 0 and random.random() < self.loss_rate


class TransportDelegate(Protocol):
    def on_datagram(self, data: bytes, addr: Address, context: Any) -> None: ...

    def on_sent(self, tag: Any) -> None: ...

    def on_send_failed(self, tag: Any, exc: BaseException) -> None: ...

    def on_error(self, exc: BaseException) -> None: ...


class UdpTransport:
    """Non-blocking UDP socket whose events are delivered on an asyncio loop.

    Every callback to the delegate is queued on the loop, never invoked from
    inside ``send``, so the delegate always observes one event at a time.
    """

    def __init__(
        self,
        delegate: TransportDelegate,
        loop: asyncio.AbstractEventLoop,
        impairment: Impairment | None = None,
    ):
        self.delegate = delegate
        self.loop = loop
        self.impairment = impairment or Impairment()
        self.sock: socket.socket | None = None
        self._filter: Filter | None = None
        self._receiving = False

    def bind(self, port: int = 0, host: str = "0.0.0.0") -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setblocking(False)
            sock.bind((host, port))
        except OSError:
            sock.close()
            raise
        self.sock = sock
        logger.debug("bound UDP socket to %s:%d", *sock.getsockname())

    def set_filter(self, fn: Filter | None) -> None:
        self._filter = fn

    def begin_receiving(self) -> None:
        if self.sock is None:
            raise OSError("socket is not bound")
        if not self._receiving:
            self.loop.add_reader(self.sock.fileno(), self._on_readable)
            self._receiving = True

    def send(self, data: bytes, addr: Address, tag: Any = None) -> None:
        if self.sock is None:
            self.loop.call_soon(self.delegate.on_send_failed, tag, OSError("socket is closed"))
            return
        if self.impairment.should_drop():
            logger.debug("DROPPED outbound %d bytes to %s:%d", len(data), *addr)
            self.loop.call_soon(self.delegate.on_sent, tag)
            return
        if self.impairment.delay_ms > 0:
            self.loop.call_later(self.impairment.delay_ms / 1000.0, self._sendto, data, addr, tag)
        else:
            self._sendto(data, addr, tag)

    def _sendto(self, data: bytes, addr: Address, tag: Any) -> None:
        if self.sock is None:
            return
        try:
            self.sock.sendto(data, addr)
        except OSError as exc:
            self.loop.call_soon(self.delegate.on_send_failed, tag, exc)
        else:
            self.loop.call_soon(self.delegate.on_sent, tag)

    def _on_readable(self) -> None:
        if self.sock is None:
            return
        try:
            data, addr = self.sock.recvfrom(65535)
        except (BlockingIOError, InterruptedError):
            return
        except OSError as exc:
            # ICMP errors (e.g. port unreachable) surface here on Linux
            self.delegate.on_error(exc)
            return
        if self.impairment.should_drop():
            logger.debug("DROPPED inbound %d bytes from %s:%d", len(data), *addr[:2])
            return

        context = None
        if self._filter is not None:
            context = self._filter(data, addr)
            if context is None:
                logger.debug("filtered %d bytes from %s:%d", len(data), *addr[:2])
                return
        self.delegate.on_datagram(data, addr, context)

    def close(self) -> None:
        if self.sock is None:
            return
        if self._receiving:
            self.loop.remove_reader(self.sock.fileno())
            self._receiving = False
        self.sock.close()
        self.sock = None
