from __future__ import annotations

from tftpput.observer import CompositeObserver, StatsObserver, TftpClientObserver


def test_stats_counts_retransmits(harness):
    stats = StatsObserver()
    harness.client.observer = CompositeObserver([harness.observer, stats])
    harness.client.send_file(harness.make_file(700), "report.txt")
    harness.scheduler.advance(5.0)
    harness.ack(0)
    harness.scheduler.advance(5.0)
    harness.ack(1)
    harness.ack(2)

    s = stats.stats
    assert s.packets_sent == 5
    assert s.retransmits == 2
    assert s.blocks_acked == 2
    assert (s.bytes_sent, s.total_bytes) == (700, 700)
    assert s.end_ts is not None
    assert s.as_dict()["retransmits"] == 2


def test_base_observer_is_noop(harness):
    harness.client.observer = TftpClientObserver()
    harness.client.send_file(harness.make_file(10), "report.txt")
    harness.run_to_completion()
    assert harness.client.is_ready
