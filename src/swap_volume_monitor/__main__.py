import argparse
import asyncio
import logging

from swap_volume_monitor.config import RPC_URL
from swap_volume_monitor.volume_monitor import VolumeMonitor

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("Main")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Live swap volume leaderboard for common-token pools")
    parser.add_argument("--wss-url", default=None, help="Log streaming WebSocket endpoint")
    parser.add_argument("--rpc-url", default=RPC_URL, help="JSON-RPC HTTP endpoint for contract reads")
    parser.add_argument("--window", choices=["5m", "15m"], default="5m")
    parser.add_argument("--report-interval", type=float, default=10.0, help="Seconds between leaderboard logs")
    parser.add_argument("--top", type=int, default=10, help="Rows to log per report")
    return parser.parse_args(argv)


def log_leaderboard(monitor: VolumeMonitor, rows: int):
    stats = monitor.stats
    logger.info(
        f"[{monitor.connection_status}] {stats.total_pools} pools, "
        f"${stats.total_volume:,.2f} volume, {stats.total_swaps} swaps ({monitor.selected_time_window})"
    )
    for entry in monitor.pools[:rows]:
        pool = entry.pool
        logger.info(
            f"#{entry.rank:<2} {pool.display_name:<16} {pool.fee:>6} {pool.protocol:<15} "
            f"${entry.volume:>14,.2f} {entry.swap_count:>5} swaps  {pool.address}"
        )


async def run(args):
    monitor = VolumeMonitor(wss_url=args.wss_url, rpc_url=args.rpc_url)
    monitor.change_time_window(args.window)
    if not await monitor.connect():
        logger.error(f"Monitor not started: {monitor.connection_status}")
        return
    try:
        while True:
            await asyncio.sleep(args.report_interval)
            log_leaderboard(monitor, args.top)
    finally:
        await monitor.close()


def main(argv=None):
    args = parse_args(argv)
    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Monitor stopped")


if __name__ == "__main__":
    main()
