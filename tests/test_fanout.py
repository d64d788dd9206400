"""
Tests for the scoring fan-out: failed and timed-out lookups become failed
outcomes instead of propagating.
"""

from __future__ import annotations

import threading

from backend_listguard.core.fanout import fan_out


def _boom():
    raise ConnectionError("boom")


def test_failed_and_timed_out_lookups(signal_pool):
    release = threading.Event()
    try:
        outcomes = fan_out(
            signal_pool,
            {"fast": lambda: 42, "broken": _boom, "slow": lambda: release.wait(5)},
            timeout_sec=0.2,
            component="test",
        )
    finally:
        release.set()

    assert list(outcomes) == ["fast", "broken", "slow"]
    assert outcomes["fast"].ok and outcomes["fast"].value == 42
    assert not outcomes["broken"].ok
    assert outcomes["broken"].error == "Signal broken unavailable: boom"
    assert outcomes["slow"].error == "Signal slow unavailable: timeout"
