from __future__ import annotations

import asyncio
import enum
import functools
import logging
import os
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Optional

from .constants import (
    BLOCK_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT_S,
    ERR_UNSUPPORTED_PACKET,
    MAX_BLOCK,
)
from .errors import (
    AlreadyRunningError,
    FileUnreadableError,
    ProtocolViolationError,
    RemoteError,
    TftpError,
    TransferTimeoutError,
    TransportFailureError,
)
from .net import Address, Impairment, TransportDelegate, UdpTransport
from .observer import (
    CompositeObserver,
    LoggingObserver,
    StatsObserver,
    TftpClientObserver,
    TransferStats,
)
from .packet import Ack, Data, Opcode, Packet, TransmissionMode, WriteRequest, deserialize, serialize
from .timer import LoopScheduler, Scheduler, TimerHandle

logger = logging.getLogger(__name__)

TransportFactory = Callable[[TransportDelegate], Any]


class ClientState(enum.Enum):
    IDLE = "idle"
    AWAITING_REQUEST_ACK = "awaiting-request-ack"
    AWAITING_BLOCK_ACK = "awaiting-block-ack"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ClientConfig:
    host: str
    port: int = DEFAULT_PORT
    timeout: float = DEFAULT_TIMEOUT_S
    max_retries: int = DEFAULT_MAX_RETRIES


@dataclass(slots=True)
class _Transfer:
    path: str
    name: str
    mode: TransmissionMode
    file: BinaryIO
    size: int
    scheduler: Scheduler
    state: ClientState = ClientState.AWAITING_REQUEST_ACK
    transport: Any = None
    remote: Optional[Address] = None
    last_block: int = 0  # 0 while the write request is outstanding
    block_index: int = 0  # unwrapped, drives file offsets
    sent_bytes: int = 0
    final_sent: bool = False
    retries: int = 0
    timer: Optional[TimerHandle] = None


class TftpClient:
    """Uploads files to a TFTP server (RFC 1350 write requests).

    One transfer runs at a time. All work happens in callbacks on a single
    event loop: timer firings from the scheduler and datagram/send events
    from the transport. Progress and the outcome are reported through the
    observer; ``send_file`` itself never raises for transfer failures.
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        observer: TftpClientObserver | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_S,
        max_retries: int = DEFAULT_MAX_RETRIES,
        scheduler: Scheduler | None = None,
        transport_factory: TransportFactory | None = None,
    ):
        self.host = host
        self.port = port
        self.observer = observer or TftpClientObserver()
        self.timeout = timeout
        self.max_retries = max_retries
        self._scheduler = scheduler
        self._transport_factory = transport_factory
        self._transfer: Optional[_Transfer] = None

    @classmethod
    def from_config(cls, config: ClientConfig, observer: TftpClientObserver | None = None, **kwargs) -> "TftpClient":
        return cls(
            config.host,
            config.port,
            observer,
            timeout=config.timeout,
            max_retries=config.max_retries,
            **kwargs,
        )

    @property
    def is_ready(self) -> bool:
        return self._transfer is None

    @property
    def state(self) -> ClientState:
        if self._transfer is None:
            return ClientState.IDLE
        return self._transfer.state

    def send_file(self, path: str, name: str, mode: TransmissionMode = TransmissionMode.OCTET) -> None:
        """Start uploading ``path`` to the server as ``name``.

        Raises RuntimeError only if no scheduler was given and there is no
        running event loop to create one on.
        """
        if not self.is_ready:
            logger.warning("send_file(%s) rejected: transfer already running", path)
            self.observer.did_fail(self, AlreadyRunningError())
            return

        scheduler = self._scheduler or LoopScheduler(asyncio.get_running_loop())

        try:
            f = open(path, "rb")
        except OSError as exc:
            self._fail(FileUnreadableError(f"Could not open {path}: {exc.strerror or exc}"))
            return
        try:
            size = os.fstat(f.fileno()).st_size
        except OSError as exc:
            f.close()
            self._fail(FileUnreadableError(f"Could not stat {path}: {exc.strerror or exc}"))
            return

        t = _Transfer(path=path, name=name, mode=mode, file=f, size=size, scheduler=scheduler)
        self._transfer = t
        logger.info("sending %s (%d bytes) to %s:%d as %r [%s]", path, size, self.host, self.port, name, mode.token)

        try:
            t.transport = self._make_transport()
            t.transport.bind(0)
            t.transport.set_filter(self._accept)
            t.transport.begin_receiving()
        except OSError as exc:
            error = TransportFailureError(f"Could not open UDP socket: {exc}")
            error.__cause__ = exc
            self._fail(error)
            return

        self._send_request(t)

    def cancel(self) -> None:
        if self._transfer is not None:
            logger.debug("transfer of %s cancelled", self._transfer.path)
        self._cleanup()

    # -- transport delegate -------------------------------------------------

    def on_datagram(self, data: bytes, addr: Address, context: Any) -> None:
        t = self._transfer
        if t is None:
            return
        packet: Optional[Packet] = context
        if packet is None:
            self._fail(ProtocolViolationError("Invalid packet received"))
            return

        if packet.opcode is Opcode.ERROR:
            logger.debug("ERROR code=%d message=%r from %s:%d", packet.code, packet.message, *addr[:2])
            self._fail(RemoteError(packet.message, code=packet.code))
        elif packet.opcode is not Opcode.ACK:
            self._fail(ProtocolViolationError("Unsupported packet received", code=ERR_UNSUPPORTED_PACKET))
        elif t.state is ClientState.AWAITING_REQUEST_ACK:
            self._on_request_ack(t, packet, addr)
        elif t.state is ClientState.AWAITING_BLOCK_ACK:
            self._on_block_ack(t, packet)

    def on_sent(self, tag: Any) -> None:
        if self._transfer is None:
            return
        if tag.opcode is Opcode.WRQ:
            self.observer.did_send_request(self)
        elif tag.opcode is Opcode.DATA:
            self.observer.did_send_data_block(self, tag.block)

    def on_send_failed(self, tag: Any, exc: BaseException) -> None:
        if self._transfer is None:
            return
        error = TransportFailureError(f"Could not send packet: {exc}")
        error.__cause__ = exc
        self._fail(error)

    def on_error(self, exc: BaseException) -> None:
        if self._transfer is None:
            return
        error = TransportFailureError(f"Socket error: {exc}")
        error.__cause__ = exc
        self._fail(error)

    # -- internals ----------------------------------------------------------

    def _make_transport(self) -> Any:
        if self._transport_factory is not None:
            return self._transport_factory(self)
        return UdpTransport(self, asyncio.get_running_loop())

    def _accept(self, data: bytes, addr: Address) -> Optional[Packet]:
        t = self._transfer
        if t is None:
            return None
        if t.remote is not None and addr != t.remote:
            return None
        return deserialize(data)

    def _send_request(self, t: _Transfer) -> None:
        self.observer.will_send_request(self)
        if self._transfer is not t:
            return
        packet = WriteRequest(name=t.name, mode=t.mode)
        t.last_block = 0
        t.transport.send(serialize(packet), (self.host, self.port), packet)
        self._arm_timer(t)

    def _send_block(self, t: _Transfer, index: int) -> None:
        block = index & MAX_BLOCK
        offset = (index - 1) * BLOCK_SIZE
        try:
            if t.file.tell() != offset:
                t.file.seek(offset)
            payload = t.file.read(BLOCK_SIZE)
        except OSError as exc:
            self._fail(FileUnreadableError(f"Failed to read file: {exc}"))
            return

        # Only a non-empty file whose size is a multiple of BLOCK_SIZE ends
        # with an empty block.
        if not payload and not (t.size and t.size % BLOCK_SIZE == 0 and index == t.size // BLOCK_SIZE + 1):
            self._fail(FileUnreadableError("Failed to read file"))
            return

        t.block_index = index
        t.last_block = block
        t.sent_bytes = offset + len(payload)
        self.observer.will_send_data_block(self, block)
        self.observer.will_send_bytes(self, t.sent_bytes, t.size)
        if self._transfer is not t:
            return

        packet = Data(block=block, payload=payload)
        t.transport.send(serialize(packet), t.remote, packet)
        if len(payload) < BLOCK_SIZE:
            t.final_sent = True
        self._arm_timer(t)

    def _on_request_ack(self, t: _Transfer, ack: Ack, addr: Address) -> None:
        if ack.block != 0:
            logger.debug("ignoring ACK block=%d while awaiting request ack", ack.block)
            return
        self._cancel_timer(t)
        t.retries = 0
        t.remote = addr
        logger.debug("request acknowledged by %s:%d", *addr[:2])
        self.observer.did_receive_request_ack(self)
        if self._transfer is not t:
            return
        if t.size == 0:
            self._complete(t)
            return
        t.state = ClientState.AWAITING_BLOCK_ACK
        self._send_block(t, 1)

    def _on_block_ack(self, t: _Transfer, ack: Ack) -> None:
        if ack.block != t.last_block:
            logger.debug("ignoring stale ACK block=%d (expecting %d)", ack.block, t.last_block)
            return
        self._cancel_timer(t)
        t.retries = 0
        self.observer.will_receive_ack(self, ack.block)
        self.observer.did_receive_ack(self, ack.block)
        self.observer.did_send_bytes(self, t.sent_bytes, t.size)
        if self._transfer is not t:
            return
        if t.final_sent:
            self._complete(t)
        else:
            self._send_block(t, t.block_index + 1)

    def _arm_timer(self, t: _Transfer) -> None:
        self._cancel_timer(t)
        t.timer = t.scheduler.schedule(self.timeout, functools.partial(self._on_timeout, t))

    @staticmethod
    def _cancel_timer(t: _Transfer) -> None:
        if t.timer is not None:
            t.timer.cancel()
            t.timer = None

    def _on_timeout(self, t: _Transfer) -> None:
        if self._transfer is not t:
            return
        t.timer = None
        t.retries += 1
        if t.retries > self.max_retries:
            logger.debug("no ACK for block=%d after %d retries", t.last_block, self.max_retries)
            self._fail(TransferTimeoutError())
            return
        logger.debug("timeout; block=%d retry=%d/%d", t.last_block, t.retries, self.max_retries)
        if t.state is ClientState.AWAITING_REQUEST_ACK:
            self._send_request(t)
        else:
            self._send_block(t, t.block_index)

    def _complete(self, t: _Transfer) -> None:
        t.state = ClientState.COMPLETED
        logger.info("transfer complete; %d bytes sent as %r", t.size, t.name)
        self._cleanup()
        self.observer.did_complete(self, t.path, t.name)

    def _fail(self, error: TftpError) -> None:
        if self._transfer is not None:
            self._transfer.state = ClientState.FAILED
        logger.warning("transfer failed: %s", error)
        self._cleanup()
        self.observer.did_fail(self, error)

    def _cleanup(self) -> None:
        t = self._transfer
        if t is None:
            return
        self._transfer = None
        self._cancel_timer(t)
        if t.transport is not None:
            t.transport.close()
        t.file.close()
        t.remote = None


class _FutureObserver(TftpClientObserver):
    def __init__(self, future: "asyncio.Future[None]"):
        self.future = future

    def did_complete(self, client, path, name):
        if not self.future.done():
            self.future.set_result(None)

    def did_fail(self, client, error):
        if not self.future.done():
            self.future.set_exception(error)


async def upload(
    host: str,
    path: str,
    name: str | None = None,
    mode: TransmissionMode = TransmissionMode.OCTET,
    *,
    port: int = DEFAULT_PORT,
    timeout: float = DEFAULT_TIMEOUT_S,
    max_retries: int = DEFAULT_MAX_RETRIES,
    observer: TftpClientObserver | None = None,
    impairment: Impairment | None = None,
) -> TransferStats:
    """Upload one file and wait for the outcome.

    Returns the transfer statistics on success and raises the reported
    TftpError on failure. Cancelling the awaiting task cancels the transfer.
    """
    loop = asyncio.get_running_loop()
    done: asyncio.Future[None] = loop.create_future()
    stats = StatsObserver()
    observers: list[TftpClientObserver] = [stats, LoggingObserver()]
    if observer is not None:
        observers.append(observer)
    observers.append(_FutureObserver(done))

    client = TftpClient(
        host,
        port,
        CompositeObserver(observers),
        timeout=timeout,
        max_retries=max_retries,
        transport_factory=lambda delegate: UdpTransport(delegate, loop, impairment),
    )
    client.send_file(path, name or os.path.basename(path), mode)
    try:
        await done
    finally:
        client.cancel()
    return stats.stats
