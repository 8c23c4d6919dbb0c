import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Set

import aiohttp

from swap_volume_monitor.config import MONITOR_CONFIG, RPC_URL, WSS_URL
from swap_volume_monitor.event_decoder import classify_topic, decode_swap
from swap_volume_monitor.metadata_resolver import MetadataResolver
from swap_volume_monitor.models import ConnectionState, RankedPool, Stats, SwapEvent, SwapKind, TimeWindow
from swap_volume_monitor.pricing import PriceProvider
from swap_volume_monitor.ranking import RankingService
from swap_volume_monitor.stream_connection import StreamConnection
from swap_volume_monitor.volume_aggregator import VolumeAggregator

logger = logging.getLogger("VolumeMonitor")


class VolumeMonitor:
    """
    Live swap-volume leaderboard for common-token pools.

    Wires the log stream, decoder, metadata resolver, aggregator and ranking
    tick together and exposes connect / disconnect / refresh /
    change_time_window to the presentation layer.
    """

    def __init__(
        self,
        wss_url: Optional[str] = None,
        rpc_url: str = RPC_URL,
        resolver: Optional[MetadataResolver] = None,
        aggregator: Optional[VolumeAggregator] = None,
        ranking: Optional[RankingService] = None,
        prices: Optional[PriceProvider] = None,
        reconnect_config: Optional[Dict] = None,
        session: Optional[aiohttp.ClientSession] = None,
        check_rpc_on_connect: bool = MONITOR_CONFIG["check_rpc_on_connect"],
        tick_interval: float = MONITOR_CONFIG["tick_interval"],
        clock: Callable[[], float] = time.time,
    ):
        # An explicit URL wins over the environment / default endpoint
        self.wss_url = wss_url.strip() if wss_url and wss_url.strip() else WSS_URL
        self.resolver = resolver or MetadataResolver(rpc_url=rpc_url)
        self.aggregator = aggregator or VolumeAggregator(self.resolver, prices=prices, clock=clock)
        self.ranking = ranking or RankingService(self.aggregator.snapshot, clock=clock)
        self.stream = StreamConnection(
            self.wss_url,
            topics=[SwapKind.PANCAKE_V3.topic0, SwapKind.UNISWAP_V3.topic0],
            on_log=self.handle_log,
            reconnect_config=reconnect_config,
            session=session,
            status_listener=self._on_status,
        )
        self.check_rpc_on_connect = check_rpc_on_connect
        self.tick_interval = tick_interval
        self._clock = clock
        self._connection_status = self.stream.status

        self.unrecognized_events = 0
        self.decode_failures = 0
        self.swaps_processed = 0
        self._recording: Set[asyncio.Future] = set()

        logger.info(f"VolumeMonitor initialized (stream: {self.wss_url})")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _on_status(self, state: ConnectionState, status: str):
        self._connection_status = status

    @property
    def pools(self) -> List[RankedPool]:
        return self.ranking.top_pools

    @property
    def stats(self) -> Stats:
        return self.ranking.stats

    @property
    def is_connected(self) -> bool:
        return self.stream.is_connected

    @property
    def connection_state(self) -> ConnectionState:
        return self.stream.state

    @property
    def connection_status(self) -> str:
        return self._connection_status

    @property
    def selected_time_window(self) -> str:
        return self.ranking.window.value

    async def connect(self) -> bool:
        if self.check_rpc_on_connect and not await self.resolver.check_connection():
            self._connection_status = "RPC connection failed"
            logger.error("Cannot reach the RPC endpoint; stream not opened")
            return False

        self.ranking.start(self.tick_interval)
        await self.stream.connect()
        return True

    async def disconnect(self):
        await self.stream.disconnect()
        await self.ranking.stop()

        pending = list(self._recording)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info(f"Dropped {len(pending)} swaps waiting on pool metadata")

    async def close(self):
        """Disconnect and release the RPC session and cache connection."""
        await self.disconnect()
        await self.resolver.close()

    async def wait_pending(self):
        """Wait until every swap queued behind a pool lookup is recorded."""
        while self._recording:
            await asyncio.gather(*list(self._recording))

    def refresh(self) -> List[RankedPool]:
        return self.ranking.refresh()

    def change_time_window(self, window: str):
        try:
            selected = TimeWindow(window)
        except ValueError:
            raise ValueError(f"Unsupported time window {window!r}; expected '5m' or '15m'") from None
        self.ranking.window = selected
        self.ranking.refresh()
        logger.info(f"Time window changed to {selected.value}")

    async def handle_log(self, log: Dict):
        """Route one log notification: decode it, then record the swap once its pool is known."""
        topics = log.get("topics") or []
        kind = classify_topic(topics[0] if topics else None)
        if kind is SwapKind.UNRECOGNIZED:
            self.unrecognized_events += 1
            logger.debug(f"Ignoring log with unrecognized topic0 from {log.get('address')}")
            return

        event = decode_swap(kind, log.get("data"), topics)
        pool_address = log.get("address")
        if event is None or not pool_address:
            self.decode_failures += 1
            return

        timestamp = self._clock()
        if self.aggregator.has_pool(pool_address):
            self._record(pool_address, event, timestamp)
            return

        # Pool lookups run beside the read loop so other swaps keep flowing
        task = asyncio.ensure_future(self._initialize_and_record(pool_address, kind, event, timestamp))
        self._recording.add(task)
        task.add_done_callback(self._recording.discard)

    async def _initialize_and_record(self, pool_address: str, kind: SwapKind, event: SwapEvent, timestamp: float):
        await self.aggregator.initialize_pool(pool_address, kind.protocol)
        self._record(pool_address, event, timestamp)

    def _record(self, pool_address: str, event: SwapEvent, timestamp: float):
        recorded = self.aggregator.add_transaction(pool_address, event.amount0, event.amount1, timestamp)
        if recorded is not None:
            self.swaps_processed += 1

    def clear_cache(self):
        self.aggregator.clear()
        self.resolver.clear_cache()
        self.ranking.reset()
        logger.info("Caches cleared")

    def cache_stats(self) -> Dict:
        return {
            **self.resolver.cache_stats(),
            "pools_tracked": self.aggregator.pool_count,
            "top_pools_count": len(self.ranking.top_pools),
            "swaps_processed": self.swaps_processed,
            "swaps_awaiting_pool": len(self._recording),
            "dropped_transactions": self.aggregator.dropped_transactions,
            "skipped_pools": self.aggregator.skipped_pools,
            "unrecognized_events": self.unrecognized_events,
            "decode_failures": self.decode_failures,
            "message_errors": self.stream.message_errors,
            "stats": self.stats,
        }
