from __future__ import annotations

import asyncio
from collections import namedtuple

import aiohttp
from eth_abi import encode as abi_encode

from swap_volume_monitor.config import COMMON_TOKENS, SWAP_DATA_TYPES
from swap_volume_monitor.metadata_resolver import check_common_token_pool, fallback_token_info, format_fee
from swap_volume_monitor.models import PoolInfo, SwapKind, TokenInfo

WBNB = COMMON_TOKENS["WBNB"]
USDT = COMMON_TOKENS["USDT"]
USDC = COMMON_TOKENS["USDC"]
CAKE = "0x0E09FaBB73Bd3Ade0a17ECC321fD13a19e81cE82"
OTHER_A = "0x2222222222222222222222222222222222222222"
OTHER_B = "0x3333333333333333333333333333333333333333"

POOL_WBNB_USDT = "0x36696169C63e42cd08ce11f5deeBbCeBae652050"
POOL_CAKE_USDT = "0x7f51c8AaA6B0599aBd16674e2b17FEc7a9f674A1"
POOL_NON_COMMON = "0x1111111111111111111111111111111111111111"

SENDER = "0x13f4EA83D0bd40E75C8222255bc855a974568Dd4"
RECIPIENT = "0x1b81D678ffb9C0263b24A97847620C99d213eB14"


def make_pool_info(address: str, token0: str, token1: str, raw_fee: int = 500) -> PoolInfo | None:
    classification = check_common_token_pool(token0, token1)
    if classification is None:
        return None
    return PoolInfo(
        address=address,
        token0=token0,
        token1=token1,
        fee=format_fee(raw_fee),
        raw_fee=raw_fee,
        is_common_pool=True,
        last_updated=0.0,
        **classification,
    )


def make_token_info(address: str, symbol: str, decimals: int = 18) -> TokenInfo:
    return TokenInfo(address=address, name=f"{symbol} Token", symbol=symbol, decimals=decimals, last_updated=0.0)


def address_topic(address: str) -> str:
    return "0x" + "0" * 24 + address[2:].lower()


def swap_log(
    kind: SwapKind,
    pool_address: str,
    amount0: int,
    amount1: int,
    *,
    sqrt_price_x96: int = 2**96,
    liquidity: int = 10**20,
    tick: int = -1200,
) -> dict:
    values = [amount0, amount1, sqrt_price_x96, liquidity, tick]
    if kind is SwapKind.PANCAKE_V3:
        values += [7, 9]
    data = abi_encode(SWAP_DATA_TYPES[kind.config_key], values)
    return {
        "address": pool_address,
        "topics": [kind.topic0, address_topic(SENDER), address_topic(RECIPIENT)],
        "data": "0x" + data.hex(),
    }


class FakeResolver:
    """Stands in for MetadataResolver; records every lookup."""

    def __init__(self, pools: dict | None = None, tokens: dict | None = None, connected: bool = True):
        self.pools = {address.lower(): info for address, info in (pools or {}).items()}
        self.tokens = {address.lower(): info for address, info in (tokens or {}).items()}
        self.connected = connected
        self.pool_calls: list[str] = []
        self.token_calls: list[str] = []
        self.gate: asyncio.Event | None = None
        self.cleared = False
        self.closed = False

    async def get_pool_info(self, pool_address: str):
        self.pool_calls.append(pool_address)
        if self.gate is not None:
            await self.gate.wait()
        return self.pools.get(pool_address.lower())

    async def get_token_info(self, token_address: str):
        self.token_calls.append(token_address)
        return self.tokens.get(token_address.lower()) or fallback_token_info(token_address, 0.0)

    async def check_connection(self) -> bool:
        return self.connected

    def clear_cache(self):
        self.cleared = True

    def cache_stats(self) -> dict:
        return {"pool_cache_size": len(self.pools), "token_cache_size": len(self.tokens)}

    async def close(self):
        self.closed = True


def default_resolver() -> FakeResolver:
    return FakeResolver(
        pools={
            POOL_WBNB_USDT: make_pool_info(POOL_WBNB_USDT, WBNB, USDT, raw_fee=500),
            POOL_CAKE_USDT: make_pool_info(POOL_CAKE_USDT, CAKE, USDT, raw_fee=2500),
        },
        tokens={
            WBNB: make_token_info(WBNB, "WBNB"),
            USDT: make_token_info(USDT, "USDT"),
            CAKE: make_token_info(CAKE, "CAKE"),
        },
    )


FakeMessage = namedtuple("FakeMessage", ["type", "data"])


class FakeWebSocket:
    def __init__(self, close_code: int = 1000):
        self.sent: list[str] = []
        self.closed = False
        self.close_code = close_code
        self._inbox: asyncio.Queue = asyncio.Queue()

    def push_text(self, text: str):
        self._inbox.put_nowait(FakeMessage(aiohttp.WSMsgType.TEXT, text))

    def server_close(self):
        self._inbox.put_nowait(None)

    async def send_str(self, data: str):
        self.sent.append(data)

    async def close(self):
        self.closed = True
        self._inbox.put_nowait(None)

    def exception(self):
        return None

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self._inbox.get()
        if message is None:
            self.closed = True
            raise StopAsyncIteration
        return message


class FakeSession:
    """Hands out queued FakeWebSockets; an exhausted queue means refused connections."""

    def __init__(self, sockets: list | None = None):
        self.sockets = list(sockets or [])
        self.connect_calls = 0
        self.closed = False

    async def ws_connect(self, url: str):
        self.connect_calls += 1
        if not self.sockets:
            raise aiohttp.ClientConnectionError(f"cannot connect to {url}")
        return self.sockets.pop(0)

    async def close(self):
        self.closed = True


async def wait_until(predicate, timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


def feed(monitor, *logs):
    """Hand logs to a monitor as the stream would, then let queued swaps land."""

    async def scenario():
        for log in logs:
            await monitor.handle_log(log)
        await monitor.wait_pending()

    asyncio.run(scenario())
