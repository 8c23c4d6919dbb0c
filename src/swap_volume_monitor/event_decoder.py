import logging
from typing import Optional, Sequence

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from swap_volume_monitor.config import SWAP_DATA_TYPES
from swap_volume_monitor.models import SwapEvent, SwapKind

logger = logging.getLogger("EventDecoder")


def _normalize_topic(topic) -> str:
    if isinstance(topic, (bytes, bytearray)):
        topic = "0x" + bytes(topic).hex()
    topic = str(topic).lower()
    return topic if topic.startswith("0x") else "0x" + topic


def classify_topic(topic0) -> SwapKind:
    """Map a log's first topic to the Swap event it identifies."""
    if topic0 is None:
        return SwapKind.UNRECOGNIZED
    topic = _normalize_topic(topic0)
    for kind in (SwapKind.PANCAKE_V3, SwapKind.UNISWAP_V3):
        if topic == kind.topic0:
            return kind
    return SwapKind.UNRECOGNIZED


def _topic_to_address(topic) -> str:
    word = _normalize_topic(topic)[2:]
    if len(word) != 64:
        raise ValueError(f"Indexed address topic must be 32 bytes, got {len(word) // 2}")
    return Web3.to_checksum_address("0x" + word[-40:])


def decode_swap(kind: SwapKind, data, topics: Sequence) -> Optional[SwapEvent]:
    """
    Decode a Swap log for the given protocol.

    Returns None for anything that does not decode cleanly; nothing partial
    is ever returned.
    """
    if kind is SwapKind.UNRECOGNIZED:
        logger.warning("Refusing to decode log with unrecognized topic0")
        return None

    try:
        if not topics or len(topics) < 3:
            raise ValueError(f"Swap log needs 3 topics, got {len(topics or [])}")
        if classify_topic(topics[0]) is not kind:
            raise ValueError(f"topic0 {topics[0]} does not match {kind.protocol}")

        sender = _topic_to_address(topics[1])
        recipient = _topic_to_address(topics[2])

        raw = data if isinstance(data, (bytes, bytearray)) else Web3.to_bytes(hexstr=data)
        values = abi_decode(SWAP_DATA_TYPES[kind.config_key], bytes(raw))

        amount0, amount1, sqrt_price_x96, liquidity, tick = values[:5]
        protocol_fees_token0 = protocol_fees_token1 = None
        if kind is SwapKind.PANCAKE_V3:
            protocol_fees_token0, protocol_fees_token1 = values[5], values[6]

        return SwapEvent(
            kind=kind,
            sender=sender,
            recipient=recipient,
            amount0=int(amount0),
            amount1=int(amount1),
            sqrt_price_x96=int(sqrt_price_x96),
            liquidity=int(liquidity),
            tick=int(tick),
            protocol_fees_token0=protocol_fees_token0,
            protocol_fees_token1=protocol_fees_token1,
        )
    except (DecodingError, ValueError, TypeError, AttributeError, IndexError) as e:
        logger.warning(f"Failed to decode {kind.protocol} swap: {e}")
        return None
