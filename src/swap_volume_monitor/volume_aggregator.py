import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional

from swap_volume_monitor.config import TIME_WINDOWS
from swap_volume_monitor.metadata_resolver import MetadataResolver
from swap_volume_monitor.models import PoolRecord, PoolSnapshot, Transaction
from swap_volume_monitor.pricing import PriceProvider, StaticPriceTable

logger = logging.getLogger("VolumeAggregator")

FIVE_MIN = TIME_WINDOWS["5m"]
FIFTEEN_MIN = TIME_WINDOWS["15m"]


class VolumeAggregator:
    """
    Per-pool swap ledger with rolling 5m/15m USD volume and swap counts.

    Only pools with a common token are ever stored; swaps for any other
    address are dropped.
    """

    def __init__(
        self,
        resolver: MetadataResolver,
        prices: Optional[PriceProvider] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.resolver = resolver
        self.prices = prices if prices is not None else StaticPriceTable()
        self._clock = clock
        self._pools: Dict[str, PoolRecord] = {}
        self._pending: Dict[str, asyncio.Future] = {}
        self._generation = 0
        self.dropped_transactions = 0
        self.skipped_pools = 0

    @property
    def pool_count(self) -> int:
        return len(self._pools)

    def has_pool(self, pool_address: str) -> bool:
        return pool_address.lower() in self._pools

    async def initialize_pool(self, pool_address: str, protocol: str):
        """Create the pool record once; concurrent callers share one lookup."""
        key = pool_address.lower()
        if key in self._pools:
            return

        pending = self._pending.get(key)
        if pending is None:
            pending = asyncio.ensure_future(
                self._load_pool(key, pool_address, protocol, self._generation)
            )
            self._pending[key] = pending
            pending.add_done_callback(lambda task: self._forget_pending(key, task))
        # A cancelled caller must not cancel the lookup other callers share
        await asyncio.shield(pending)

    def _forget_pending(self, key: str, task: asyncio.Future):
        if self._pending.get(key) is task:
            del self._pending[key]

    async def _load_pool(self, key: str, pool_address: str, protocol: str, generation: int):
        try:
            logger.info(f"Initializing pool {pool_address} ({protocol})")
            info = await self.resolver.get_pool_info(pool_address)
            if info is None:
                self.skipped_pools += 1
                logger.info(f"Skipping pool {pool_address}: not a common-token pool or lookup failed")
                return

            token0_info, token1_info = await asyncio.gather(
                self.resolver.get_token_info(info.token0),
                self.resolver.get_token_info(info.token1),
            )
        except Exception as e:
            logger.error(f"Failed to initialize pool {pool_address}: {e}")
            return

        if generation != self._generation:
            logger.debug(f"Discarding pool {pool_address} resolved before cache clear")
            return
        if key in self._pools:
            return

        now = self._clock()
        record = PoolRecord(
            info=info,
            protocol=protocol,
            token0_info=token0_info,
            token1_info=token1_info,
            first_seen=now,
            last_update=now,
        )
        self._pools[key] = record
        logger.info(f"Pool initialized: {pool_address} - {record.display_name} ({protocol}) - Fee: {info.fee}")

    def _usd_volume(self, record: PoolRecord, amount0: int, amount1: int) -> float:
        raw_amount = amount0 if record.info.common_token_index == 0 else amount1
        decimals = record.common_token_info.decimals
        price = self.prices.price_of(record.info.common_token)
        if not price:
            return 0.0
        return abs(int(raw_amount)) / (10 ** decimals) * price

    def add_transaction(
        self,
        pool_address: str,
        amount0: int,
        amount1: int,
        timestamp: Optional[float] = None,
    ) -> Optional[Transaction]:
        record = self._pools.get(pool_address.lower())
        if record is None:
            self.dropped_transactions += 1
            logger.debug(f"No pool record for {pool_address}; swap dropped")
            return None

        now = self._clock() if timestamp is None else timestamp
        usd_volume = self._usd_volume(record, amount0, amount1)
        if usd_volume == 0:
            logger.debug(f"No USD price for {record.info.common_token}; recording zero volume")

        transaction = Transaction(
            amount0=float(abs(int(amount0))),
            amount1=float(abs(int(amount1))),
            timestamp=now,
            usd_volume=usd_volume,
            raw_volume=float(abs(int(amount0)) + abs(int(amount1))),
        )
        record.transactions.append(transaction)

        # Keep only the last 15 minutes, relative to this event
        record.transactions[:] = [tx for tx in record.transactions if now - tx.timestamp < FIFTEEN_MIN]

        recent = [tx for tx in record.transactions if now - tx.timestamp < FIVE_MIN]
        record.volume_5m = sum(tx.usd_volume for tx in recent)
        record.swap_count_5m = len(recent)
        record.volume_15m = sum(tx.usd_volume for tx in record.transactions)
        record.swap_count_15m = len(record.transactions)

        record.total_volume += usd_volume
        record.total_swaps += 1
        record.last_update = now

        logger.debug(
            f"Volume update {record.display_name}: 5m=${record.volume_5m:.2f}, 15m=${record.volume_15m:.2f}"
        )
        return transaction

    def get_pool(self, pool_address: str) -> Optional[PoolSnapshot]:
        record = self._pools.get(pool_address.lower())
        return PoolSnapshot.from_record(record) if record else None

    def snapshot(self) -> List[PoolSnapshot]:
        return [PoolSnapshot.from_record(record) for record in self._pools.values()]

    def clear(self):
        """Drop all pool state; lookups still in flight are discarded on completion."""
        self._generation += 1
        self._pools.clear()
        self._pending.clear()
        self.dropped_transactions = 0
        self.skipped_pools = 0
        logger.info("Pool state cleared")
