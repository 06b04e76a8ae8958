from __future__ import annotations

import struct

import pytest

from tftpput.client import TftpClient
from tftpput.observer import TftpClientObserver
from tftpput.packet import Ack, Data, Error, Opcode, WriteRequest

SERVER = ("10.0.0.7", 40123)
HOST = "tftp.example"


class ManualTimer:
    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Scheduler driven by a fake clock; ``advance`` fires due timers in order."""

    def __init__(self):
        self.now = 0.0
        self.timers = []

    def schedule(self, delay, callback):
        timer = ManualTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self):
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds):
        self.now += seconds
        while True:
            due = sorted((t for t in self.pending if t.when <= self.now), key=lambda t: t.when)
            if not due:
                return
            due[0].fired = True
            due[0].callback()


class FakeTransport:
    def __init__(self, delegate):
        self.delegate = delegate
        self.sent = []
        self.unconfirmed = []
        self.filter = None
        self.bound = False
        self.receiving = False
        self.closed = False

    def bind(self, port=0):
        self.bound = True

    def set_filter(self, fn):
        self.filter = fn

    def begin_receiving(self):
        self.receiving = True

    def send(self, data, addr, tag=None):
        self.sent.append((data, addr))
        self.unconfirmed.append(tag)

    def close(self):
        self.closed = True

    def confirm_sends(self):
        tags, self.unconfirmed = self.unconfirmed, []
        for tag in tags:
            self.delegate.on_sent(tag)

    def deliver(self, data, addr=SERVER):
        """Push one datagram through the filter; returns False if it was dropped."""
        context = None
        if self.filter is not None:
            context = self.filter(data, addr)
            if context is None:
                return False
        self.delegate.on_datagram(data, addr, context)
        return True


class RecordingObserver(TftpClientObserver):
    def __init__(self):
        self.events = []

    def names(self):
        return [e[0] for e in self.events]

    def errors(self):
        return [e[1] for e in self.events if e[0] == "did_fail"]

    def will_send_request(self, client):
        self.events.append(("will_send_request",))

    def did_send_request(self, client):
        self.events.append(("did_send_request",))

    def did_receive_request_ack(self, client):
        self.events.append(("did_receive_request_ack",))

    def will_send_data_block(self, client, block):
        self.events.append(("will_send_data_block", block))

    def did_send_data_block(self, client, block):
        self.events.append(("did_send_data_block", block))

    def will_receive_ack(self, client, block):
        self.events.append(("will_receive_ack", block))

    def did_receive_ack(self, client, block):
        self.events.append(("did_receive_ack", block))

    def did_fail(self, client, error):
        self.events.append(("did_fail", error))

    def did_complete(self, client, path, name):
        self.events.append(("did_complete", path, name))

    def will_send_bytes(self, client, sent, total):
        self.events.append(("will_send_bytes", sent, total))

    def did_send_bytes(self, client, sent, total):
        self.events.append(("did_send_bytes", sent, total))


def decode_sent(data):
    (opcode,) = struct.unpack_from("!H", data)
    if opcode == Opcode.WRQ:
        return WriteRequest.from_bytes(data[2:])
    if opcode == Opcode.DATA:
        return Data.from_bytes(data[2:])
    raise AssertionError(f"client sent unexpected opcode {opcode}")


class Harness:
    def __init__(self, tmp_path):
        self.tmp_path = tmp_path
        self.scheduler = ManualScheduler()
        self.observer = RecordingObserver()
        self.transports = []
        self.client = TftpClient(
            HOST,
            69,
            self.observer,
            scheduler=self.scheduler,
            transport_factory=self._make_transport,
        )

    def _make_transport(self, delegate):
        transport = FakeTransport(delegate)
        self.transports.append(transport)
        return transport

    @property
    def transport(self):
        return self.transports[-1]

    def make_file(self, size, name="report.txt"):
        path = self.tmp_path / name
        path.write_bytes(bytes(i % 251 for i in range(size)))
        return str(path)

    def packets(self):
        return [decode_sent(data) for data, _ in self.transport.sent]

    def ack(self, block, addr=SERVER):
        return self.transport.deliver(Ack(block).to_bytes(), addr)

    def error(self, code, message, addr=SERVER):
        return self.transport.deliver(Error(code, message).to_bytes(), addr)

    def run_to_completion(self, limit=100):
        self.ack(0)
        for _ in range(limit):
            if self.client.is_ready:
                return
            self.ack(self.packets()[-1].block)
        raise AssertionError("transfer did not complete")


@pytest.fixture
def harness(tmp_path):
    return Harness(tmp_path)
