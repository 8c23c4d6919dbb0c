import asyncio
import logging
import time
from typing import Callable, Dict, Optional

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from swap_volume_monitor.config import (
    COMMON_TOKENS,
    ERC20_ABI,
    FEE_TIERS,
    KNOWN_TOKENS,
    MONITOR_CONFIG,
    POOL_ABI,
    RPC_URL,
)
from swap_volume_monitor.models import PoolInfo, TokenInfo
from swap_volume_monitor.redis_service import RedisService

logger = logging.getLogger("MetadataResolver")


def format_fee(fee: int) -> str:
    """Map an on-chain fee to its display tier, e.g. 2500 -> "0.25%"."""
    fee = int(fee)
    if fee in FEE_TIERS:
        return FEE_TIERS[fee]
    return f"{fee / 10000:.2f}%"


def check_common_token_pool(token0: str, token1: str) -> Optional[Dict]:
    """
    Classify a pool by common-token membership. token0 wins when both sides
    are common. Returns None when neither side is.
    """
    symbols_by_address = {address.lower(): symbol for symbol, address in COMMON_TOKENS.items()}
    has_token0 = token0.lower() in symbols_by_address
    has_token1 = token1.lower() in symbols_by_address

    if not (has_token0 or has_token1):
        return None

    common_token = token0 if has_token0 else token1
    return {
        "common_token": common_token,
        "common_token_symbol": symbols_by_address[common_token.lower()],
        "other_token": token1 if has_token0 else token0,
        "common_token_index": 0 if has_token0 else 1,
    }


def fallback_token_info(address: str, now: float) -> TokenInfo:
    known = KNOWN_TOKENS.get(address.lower())
    if known:
        return TokenInfo(
            address=address,
            name=known["name"],
            symbol=known["symbol"],
            decimals=known["decimals"],
            last_updated=now,
        )
    return TokenInfo(
        address=address,
        name="Unknown Token",
        symbol="UNKNOWN",
        decimals=18,
        last_updated=now,
    )


class MetadataResolver:
    """
    Resolves pool (token0/token1/fee) and token (name/symbol/decimals)
    metadata through read-only contract calls, cached for a fixed TTL.
    """

    POOL_PREFIX = "pool_info:"
    TOKEN_PREFIX = "token_info:"

    def __init__(
        self,
        rpc_url: str = RPC_URL,
        cache: Optional[RedisService] = None,
        cache_ttl: float = MONITOR_CONFIG["cache_ttl"],
        clock: Callable[[], float] = time.time,
    ):
        self.rpc_url = rpc_url
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url)) if rpc_url else None
        self.cache = cache if cache is not None else RedisService()
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._contract_cache = {}
        logger.info(f"MetadataResolver initialized (rpc: {rpc_url})")

    def get_contract(self, address: str, abi):
        key = (address.lower(), id(abi))
        if key not in self._contract_cache:
            self._contract_cache[key] = self.w3.eth.contract(
                address=Web3.to_checksum_address(address), abi=abi
            )
        return self._contract_cache[key]

    async def _read(self, address: str, abi, function_name: str):
        contract = self.get_contract(address, abi)
        return await getattr(contract.functions, function_name)().call()

    async def check_connection(self) -> bool:
        """Probe the RPC endpoint before opening the log stream"""
        if self.w3 is None:
            return False
        try:
            connected = await self.w3.is_connected()
        except Exception as e:
            logger.error(f"RPC connection check failed: {e}")
            return False
        if not connected:
            logger.error(f"RPC endpoint not reachable: {self.rpc_url}")
        return bool(connected)

    async def get_pool_info(self, pool_address: str) -> Optional[PoolInfo]:
        key = f"{self.POOL_PREFIX}{pool_address.lower()}"
        cached = self.cache.get_json(key)
        if cached is not None:
            if not cached.get("is_common_pool"):
                return None
            return PoolInfo.from_dict(cached)

        try:
            token0, token1, fee = await asyncio.gather(
                self._read(pool_address, POOL_ABI, "token0"),
                self._read(pool_address, POOL_ABI, "token1"),
                self._read(pool_address, POOL_ABI, "fee"),
            )
        except Exception as e:
            logger.error(f"Error reading pool contract {pool_address}: {e}")
            return None

        logger.debug(f"Pool {pool_address}: token0={token0}, token1={token1}, fee={fee}")

        classification = check_common_token_pool(token0, token1)
        if classification is None:
            # Pool composition is immutable, so the negative answer is cached too
            self.cache.set_json(key, {"is_common_pool": False}, ttl=self.cache_ttl)
            return None

        info = PoolInfo(
            address=pool_address,
            token0=token0,
            token1=token1,
            fee=format_fee(fee),
            raw_fee=int(fee),
            is_common_pool=True,
            last_updated=self._clock(),
            **classification,
        )
        self.cache.set_json(key, info.to_dict(), ttl=self.cache_ttl)
        return info

    async def get_token_info(self, token_address: str) -> TokenInfo:
        key = f"{self.TOKEN_PREFIX}{token_address.lower()}"
        cached = self.cache.get_json(key)
        if cached is not None:
            return TokenInfo.from_dict(cached)

        try:
            name, symbol, decimals = await asyncio.gather(
                self._read(token_address, ERC20_ABI, "name"),
                self._read(token_address, ERC20_ABI, "symbol"),
                self._read(token_address, ERC20_ABI, "decimals"),
            )
        except Exception as e:
            logger.warning(f"Error reading token contract {token_address}: {e}")
            return fallback_token_info(token_address, self._clock())

        info = TokenInfo(
            address=token_address,
            name=name,
            symbol=symbol,
            decimals=int(decimals),
            last_updated=self._clock(),
        )
        self.cache.set_json(key, info.to_dict(), ttl=self.cache_ttl)
        return info

    def clear_cache(self):
        pools = self.cache.delete_prefix(self.POOL_PREFIX)
        tokens = self.cache.delete_prefix(self.TOKEN_PREFIX)
        logger.info(f"Metadata cache cleared ({pools} pools, {tokens} tokens)")

    def cache_stats(self) -> Dict:
        return {
            "pool_cache_size": self.cache.count_prefix(self.POOL_PREFIX),
            "token_cache_size": self.cache.count_prefix(self.TOKEN_PREFIX),
            "cache_backend": self.cache.get_metrics(),
        }

    async def close(self):
        if self.w3 is not None:
            await self.w3.provider.disconnect()
        self.cache.close()
        logger.info("MetadataResolver closed")
