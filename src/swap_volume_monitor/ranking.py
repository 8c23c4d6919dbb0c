import asyncio
import logging
import time
from typing import Callable, Iterable, List, Optional, Tuple

from swap_volume_monitor.config import MONITOR_CONFIG
from swap_volume_monitor.models import PoolSnapshot, RankedPool, Stats, TimeWindow

logger = logging.getLogger("RankingService")


class RankingService:
    """
    Leaderboard of common-token pools by windowed USD volume, refreshed on
    a fixed tick.
    """

    def __init__(
        self,
        source: Callable[[], List[PoolSnapshot]],
        top_n: int = MONITOR_CONFIG["top_n"],
        excluded_fee: str = MONITOR_CONFIG["excluded_fee"],
        hide_inactive: bool = MONITOR_CONFIG["hide_inactive"],
        clock: Callable[[], float] = time.time,
    ):
        self.source = source
        self.top_n = top_n
        self.excluded_fee = excluded_fee
        self.hide_inactive = hide_inactive
        self.window = TimeWindow.FIVE_MIN
        self.top_pools: List[RankedPool] = []
        self.stats = Stats()
        self.listener: Optional[Callable[[List[RankedPool], Stats], None]] = None
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _eligible(self, pool: PoolSnapshot, window: TimeWindow, now: float) -> bool:
        if not pool.is_common_pool:
            return False
        if pool.fee == self.excluded_fee:
            return False
        if self.hide_inactive:
            if now - pool.last_update > window.seconds:
                return False
            if pool.volume(window) == 0:
                return False
        return True

    def rank(self, pools: Iterable[PoolSnapshot], window: TimeWindow) -> Tuple[List[RankedPool], Stats]:
        now = self._clock()
        eligible = [pool for pool in pools if self._eligible(pool, window, now)]

        # sorted() is stable: equal volumes keep insertion order
        ordered = sorted(eligible, key=lambda pool: pool.volume(window), reverse=True)
        ranked = [
            RankedPool(
                rank=position,
                pool=pool,
                volume=pool.volume(window),
                swap_count=pool.swap_count(window),
            )
            for position, pool in enumerate(ordered[: self.top_n], start=1)
        ]

        stats = Stats(
            total_pools=len(eligible),
            common_token_pools=len(eligible),
            total_volume=sum(pool.volume(window) for pool in eligible),
            total_swaps=sum(pool.swap_count(window) for pool in eligible),
        )
        return ranked, stats

    def refresh(self) -> List[RankedPool]:
        self.top_pools, self.stats = self.rank(self.source(), self.window)
        logger.debug(
            f"Ranking updated: {len(self.top_pools)} pools, "
            f"${self.stats.total_volume:.2f} over {self.window.value}"
        )
        if self.listener:
            try:
                self.listener(self.top_pools, self.stats)
            except Exception as e:
                logger.error(f"Error in ranking listener: {e}")
        return self.top_pools

    def reset(self):
        self.top_pools = []
        self.stats = Stats()

    def start(self, interval: float = MONITOR_CONFIG["tick_interval"]):
        if self.is_running:
            logger.warning("Ranking tick is already running")
            return
        self._task = asyncio.ensure_future(self._tick(interval))
        logger.info(f"Ranking tick started (interval: {interval}s)")

    async def _tick(self, interval: float):
        while True:
            try:
                self.refresh()
            except Exception as e:
                logger.error(f"Error refreshing ranking: {e}")
            await asyncio.sleep(interval)

    async def stop(self):
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Ranking tick stopped")
