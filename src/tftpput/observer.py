from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from .client import TftpClient
    from .errors import TftpError

logger = logging.getLogger(__name__)


class TftpClientObserver:
    """Receives lifecycle notifications from a TftpClient.

    Every method is a no-op; subclass and override the ones you care about.
    Notifications are delivered synchronously on the client's event loop.
    """

    def will_send_request(self, client: "TftpClient") -> None:
        pass

    def did_send_request(self, client: "TftpClient") -> None:
        pass

    def did_receive_request_ack(self, client: "TftpClient") -> None:
        pass

    def will_send_data_block(self, client: "TftpClient", block: int) -> None:
        pass

    def did_send_data_block(self, client: "TftpClient", block: int) -> None:
        pass

    def will_receive_ack(self, client: "TftpClient", block: int) -> None:
        pass

    def did_receive_ack(self, client: "TftpClient", block: int) -> None:
        pass

    def did_fail(self, client: "TftpClient", error: "TftpError") -> None:
        pass

    def did_complete(self, client: "TftpClient", path: str, name: str) -> None:
        pass

    def will_send_bytes(self, client: "TftpClient", sent: int, total: int) -> None:
        pass

    def did_send_bytes(self, client: "TftpClient", sent: int, total: int) -> None:
        pass


class CompositeObserver(TftpClientObserver):
    def __init__(self, observers: Iterable[TftpClientObserver]):
        self.observers = list(observers)

    def will_send_request(self, client):
        for o in self.observers:
            o.will_send_request(client)

    def did_send_request(self, client):
        for o in self.observers:
            o.did_send_request(client)

    def did_receive_request_ack(self, client):
        for o in self.observers:
            o.did_receive_request_ack(client)

    def will_send_data_block(self, client, block):
        for o in self.observers:
            o.will_send_data_block(client, block)

    def did_send_data_block(self, client, block):
        for o in self.observers:
            o.did_send_data_block(client, block)

    def will_receive_ack(self, client, block):
        for o in self.observers:
            o.will_receive_ack(client, block)

    def did_receive_ack(self, client, block):
        for o in self.observers:
            o.did_receive_ack(client, block)

    def did_fail(self, client, error):
        for o in self.observers:
            o.did_fail(client, error)

    def did_complete(self, client, path, name):
        for o in self.observers:
            o.did_complete(client, path, name)

    def will_send_bytes(self, client, sent, total):
        for o in self.observers:
            o.will_send_bytes(client, sent, total)

    def did_send_bytes(self, client, sent, total):
        for o in self.observers:
            o.did_send_bytes(client, sent, total)


class LoggingObserver(TftpClientObserver):
    def will_send_request(self, client):
        logger.debug("sending WRQ to %s:%d", client.host, client.port)

    def did_send_request(self, client):
        logger.debug("WRQ sent")

    def did_send_data_block(self, client, block):
        logger.debug("sent DATA block=%d", block)

    def did_receive_ack(self, client, block):
        logger.debug("ACK block=%d", block)

    def did_send_bytes(self, client, sent, total):
        logger.debug("progress %d/%d bytes", sent, total)


@dataclass(slots=True)
class TransferStats:
    packets_sent: int = 0
    bytes_sent: int = 0
    total_bytes: int = 0
    blocks_acked: int = 0
    retransmits: int = 0
    start_ts: float | None = None
    end_ts: float | None = None

    @property
    def duration_s(self) -> float:
        if self.start_ts is None or self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)

    @property
    def throughput_mbps(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return (self.bytes_sent * 8 / 1_000_000) / self.duration_s

    def as_dict(self) -> dict:
        return {
            "bytes": self.bytes_sent,
            "total": self.total_bytes,
            "packets": self.packets_sent,
            "blocks": self.blocks_acked,
            "retransmits": self.retransmits,
            "seconds": self.duration_s,
            "mbps": self.throughput_mbps,
        }


class StatsObserver(TftpClientObserver):
    """Collects TransferStats for one transfer at a time."""

    def __init__(self) -> None:
        self.stats = TransferStats()
        self._last_block: int | None = None

    def will_send_request(self, client):
        if self.stats.start_ts is None:
            self.stats.start_ts = time.monotonic()
        else:
            self.stats.retransmits += 1
        self.stats.packets_sent += 1

    def will_send_data_block(self, client, block):
        if block == self._last_block:
            self.stats.retransmits += 1
        self._last_block = block
        self.stats.packets_sent += 1

    def did_send_bytes(self, client, sent, total):
        self.stats.blocks_acked += 1
        self.stats.bytes_sent = sent
        self.stats.total_bytes = total

    def did_complete(self, client, path, name):
        self.stats.end_ts = time.monotonic()

    def did_fail(self, client, error):
        self.stats.end_ts = time.monotonic()
