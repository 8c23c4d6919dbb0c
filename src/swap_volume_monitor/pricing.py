from typing import Dict, Optional, Protocol

from swap_volume_monitor.config import TOKEN_PRICES


class PriceProvider(Protocol):
    def price_of(self, token_address: str) -> Optional[float]:
        ...


class StaticPriceTable:
    """Fixed USD prices keyed by token address (case-insensitive)."""

    def __init__(self, prices: Optional[Dict[str, float]] = None):
        source = TOKEN_PRICES if prices is None else prices
        self._prices = {address.strip().lower(): float(price) for address, price in source.items()}

    def price_of(self, token_address: str) -> Optional[float]:
        if not token_address:
            return None
        return self._prices.get(token_address.strip().lower())
