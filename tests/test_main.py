from __future__ import annotations

import asyncio
import logging

import pytest

from fakes import POOL_WBNB_USDT, USDT, WBNB, FakeSession, default_resolver, feed, swap_log
from swap_volume_monitor.__main__ import log_leaderboard, parse_args
from swap_volume_monitor.models import SwapKind
from swap_volume_monitor.pricing import StaticPriceTable
from swap_volume_monitor.volume_monitor import VolumeMonitor


def test_parse_args_defaults_and_overrides():
    args = parse_args([])
    assert (args.window, args.top, args.wss_url) == ("5m", 10, None)

    args = parse_args(["--window", "15m", "--top", "3", "--wss-url", "wss://other.test"])
    assert (args.window, args.top, args.wss_url) == ("15m", 3, "wss://other.test")


def test_parse_args_rejects_unknown_window():
    with pytest.raises(SystemExit):
        parse_args(["--window", "1h"])


def test_log_leaderboard_writes_one_line_per_pool(caplog):
    monitor = VolumeMonitor(
        wss_url="wss://stream.test",
        resolver=default_resolver(),
        prices=StaticPriceTable({WBNB: 800.0, USDT: 1.0}),
        session=FakeSession(),
        clock=lambda: 10.0,
    )
    feed(monitor, swap_log(SwapKind.PANCAKE_V3, POOL_WBNB_USDT, -(10**18), 1))
    monitor.refresh()

    with caplog.at_level(logging.INFO, logger="Main"):
        log_leaderboard(monitor, rows=5)

    lines = [record.getMessage() for record in caplog.records if record.name == "Main"]
    assert "1 pools, $800.00 volume, 1 swaps (5m)" in lines[0]
    assert "WBNB/USDT" in lines[1]
    assert POOL_WBNB_USDT in lines[1]
