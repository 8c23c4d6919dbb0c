from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, List, Optional

from swap_volume_monitor.config import SWAP_TOPICS, TIME_WINDOWS


class SwapKind(Enum):
    """Which Swap event a log carries, selected by its topic0."""

    PANCAKE_V3 = ("PANCAKESWAP_V3", "PancakeSwap V3")
    UNISWAP_V3 = ("UNISWAP_V3", "Uniswap V3")
    UNRECOGNIZED = (None, None)

    def __init__(self, config_key: Optional[str], protocol: Optional[str]):
        self.config_key = config_key
        self.protocol = protocol

    @property
    def topic0(self) -> Optional[str]:
        if self.config_key is None:
            return None
        return SWAP_TOPICS[self.config_key]


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class TimeWindow(Enum):
    FIVE_MIN = "5m"
    FIFTEEN_MIN = "15m"

    @property
    def seconds(self) -> int:
        return TIME_WINDOWS[self.value]


@dataclass(frozen=True)
class SwapEvent:
    kind: SwapKind
    sender: str
    recipient: str
    amount0: int
    amount1: int
    sqrt_price_x96: int
    liquidity: int
    tick: int
    protocol_fees_token0: Optional[int] = None
    protocol_fees_token1: Optional[int] = None


@dataclass(frozen=True)
class TokenInfo:
    address: str
    name: str
    symbol: str
    decimals: int
    last_updated: float

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "TokenInfo":
        return cls(
            address=data["address"],
            name=data["name"],
            symbol=data["symbol"],
            decimals=int(data["decimals"]),
            last_updated=float(data["last_updated"]),
        )


@dataclass(frozen=True)
class PoolInfo:
    """Immutable pool metadata as read from the pool contract."""

    address: str
    token0: str
    token1: str
    fee: str
    raw_fee: int
    is_common_pool: bool
    common_token: str
    common_token_symbol: Optional[str]
    other_token: str
    common_token_index: int
    last_updated: float

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "PoolInfo":
        return cls(**data)


@dataclass
class Transaction:
    amount0: float
    amount1: float
    timestamp: float
    usd_volume: float
    raw_volume: float


@dataclass
class PoolRecord:
    """Mutable aggregation state for one tracked pool."""

    info: PoolInfo
    protocol: str
    token0_info: TokenInfo
    token1_info: TokenInfo
    first_seen: float
    last_update: float
    transactions: List[Transaction] = field(default_factory=list)
    volume_5m: float = 0.0
    volume_15m: float = 0.0
    swap_count_5m: int = 0
    swap_count_15m: int = 0
    total_volume: float = 0.0
    total_swaps: int = 0

    @property
    def address(self) -> str:
        return self.info.address

    @property
    def display_name(self) -> str:
        return f"{self.token0_info.symbol}/{self.token1_info.symbol}"

    @property
    def full_name(self) -> str:
        return f"{self.token0_info.name}/{self.token1_info.name}"

    @property
    def common_token_info(self) -> TokenInfo:
        return self.token0_info if self.info.common_token_index == 0 else self.token1_info


@dataclass(frozen=True)
class PoolSnapshot:
    address: str
    protocol: str
    display_name: str
    full_name: str
    token0: str
    token1: str
    fee: str
    is_common_pool: bool
    common_token: str
    other_token: str
    common_token_index: int
    volume_5m: float
    volume_15m: float
    swap_count_5m: int
    swap_count_15m: int
    total_volume: float
    total_swaps: int
    last_update: float
    first_seen: float

    @classmethod
    def from_record(cls, record: PoolRecord) -> "PoolSnapshot":
        return cls(
            address=record.address,
            protocol=record.protocol,
            display_name=record.display_name,
            full_name=record.full_name,
            token0=record.info.token0,
            token1=record.info.token1,
            fee=record.info.fee,
            is_common_pool=record.info.is_common_pool,
            common_token=record.info.common_token,
            other_token=record.info.other_token,
            common_token_index=record.info.common_token_index,
            volume_5m=record.volume_5m,
            volume_15m=record.volume_15m,
            swap_count_5m=record.swap_count_5m,
            swap_count_15m=record.swap_count_15m,
            total_volume=record.total_volume,
            total_swaps=record.total_swaps,
            last_update=record.last_update,
            first_seen=record.first_seen,
        )

    def volume(self, window: TimeWindow) -> float:
        return self.volume_5m if window is TimeWindow.FIVE_MIN else self.volume_15m

    def swap_count(self, window: TimeWindow) -> int:
        return self.swap_count_5m if window is TimeWindow.FIVE_MIN else self.swap_count_15m


@dataclass(frozen=True)
class RankedPool:
    rank: int
    pool: PoolSnapshot
    volume: float
    swap_count: int


@dataclass(frozen=True)
class Stats:
    total_pools: int = 0
    common_token_pools: int = 0
    total_volume: float = 0.0
    total_swaps: int = 0
