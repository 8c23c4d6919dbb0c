from __future__ import annotations

from web3 import Web3

from fakes import POOL_WBNB_USDT, RECIPIENT, SENDER, swap_log
from swap_volume_monitor.event_decoder import classify_topic, decode_swap
from swap_volume_monitor.models import SwapKind


def test_classify_topic_matches_both_protocols_case_insensitively():
    assert classify_topic(SwapKind.PANCAKE_V3.topic0.upper().replace("0X", "0x")) is SwapKind.PANCAKE_V3
    assert classify_topic(SwapKind.UNISWAP_V3.topic0) is SwapKind.UNISWAP_V3
    assert classify_topic("0x" + "ab" * 32) is SwapKind.UNRECOGNIZED
    assert classify_topic(None) is SwapKind.UNRECOGNIZED


def test_classify_topic_accepts_raw_bytes():
    raw = bytes.fromhex(SwapKind.UNISWAP_V3.topic0[2:])
    assert classify_topic(raw) is SwapKind.UNISWAP_V3


def test_decode_pancake_swap_includes_protocol_fees():
    log = swap_log(SwapKind.PANCAKE_V3, POOL_WBNB_USDT, -(10**18), 500_000_000, tick=-1200)

    event = decode_swap(SwapKind.PANCAKE_V3, log["data"], log["topics"])

    assert event is not None
    assert event.kind is SwapKind.PANCAKE_V3
    assert event.sender == Web3.to_checksum_address(SENDER)
    assert event.recipient == Web3.to_checksum_address(RECIPIENT)
    assert event.amount0 == -(10**18)
    assert event.amount1 == 500_000_000
    assert event.sqrt_price_x96 == 2**96
    assert event.liquidity == 10**20
    assert event.tick == -1200
    assert event.protocol_fees_token0 == 7
    assert event.protocol_fees_token1 == 9


def test_decode_uniswap_swap_has_no_protocol_fees():
    log = swap_log(SwapKind.UNISWAP_V3, POOL_WBNB_USDT, 123, -456)

    event = decode_swap(SwapKind.UNISWAP_V3, log["data"], log["topics"])

    assert event is not None
    assert (event.amount0, event.amount1) == (123, -456)
    assert event.protocol_fees_token0 is None
    assert event.protocol_fees_token1 is None


def test_decode_rejects_topic_of_other_protocol():
    log = swap_log(SwapKind.UNISWAP_V3, POOL_WBNB_USDT, 1, -1)
    assert decode_swap(SwapKind.PANCAKE_V3, log["data"], log["topics"]) is None


def test_decode_rejects_unrecognized_kind():
    log = swap_log(SwapKind.UNISWAP_V3, POOL_WBNB_USDT, 1, -1)
    assert decode_swap(SwapKind.UNRECOGNIZED, log["data"], log["topics"]) is None


def test_decode_returns_none_for_malformed_payloads():
    log = swap_log(SwapKind.PANCAKE_V3, POOL_WBNB_USDT, 1, -1)

    assert decode_swap(SwapKind.PANCAKE_V3, "0xzz", log["topics"]) is None
    assert decode_swap(SwapKind.PANCAKE_V3, "0x", log["topics"]) is None
    assert decode_swap(SwapKind.PANCAKE_V3, log["data"][:100], log["topics"]) is None
    assert decode_swap(SwapKind.PANCAKE_V3, log["data"], log["topics"][:1]) is None
    assert decode_swap(SwapKind.PANCAKE_V3, log["data"], []) is None
    assert decode_swap(SwapKind.PANCAKE_V3, None, log["topics"]) is None


def test_decode_rejects_short_address_topic():
    log = swap_log(SwapKind.UNISWAP_V3, POOL_WBNB_USDT, 1, -1)
    topics = [log["topics"][0], "0x1234", log["topics"][2]]
    assert decode_swap(SwapKind.UNISWAP_V3, log["data"], topics) is None
