import os
from dotenv import load_dotenv

load_dotenv()

# Blockchain connections (BNB Smart Chain)
RPC_URL = os.getenv("RPC_URL", "https://bsc-dataseed.binance.org/")

# Log streaming endpoint, overridable per monitor instance
DEFAULT_WSS_URL = "wss://bsc.mesol.live"
WSS_URL = os.getenv("WSS_URL") or DEFAULT_WSS_URL

# database connections (optional, metadata cache falls back to memory)
REDIS_HOST = os.getenv("REDIS_HOST")
REDIS_PORT = os.getenv("REDIS_PORT")
REDIS_DB = os.getenv("REDIS_DB")

# Swap event topic0 hashes
SWAP_TOPICS = {
    # Swap(address,address,int256,int256,uint160,uint128,int24,uint128,uint128)
    "PANCAKESWAP_V3": "0x19b47279256b2a23a1665c810c8d55a1758940ee09377d4f8d26497a3577dc83",
    # Swap(address,address,int256,int256,uint160,uint128,int24)
    "UNISWAP_V3": "0xc42079f94a6350d7e6235f29174924f928cc2ac818eb64fed8004e115fbcca67",
}

# Common tokens: a pool is tracked only if one side is in this list
COMMON_TOKENS = {
    "WBNB": "0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c",
    "USDT": "0x55d398326f99059fF775485246999027B3197955",
    "USDC": "0x8AC76a51cc950d9822D68b83fE1Ad97B32Cd580d",
}

# Used when the token contract cannot be read
KNOWN_TOKENS = {
    COMMON_TOKENS["WBNB"].lower(): {"symbol": "WBNB", "name": "Wrapped BNB", "decimals": 18},
    COMMON_TOKENS["USDT"].lower(): {"symbol": "USDT", "name": "Tether USD", "decimals": 18},
    COMMON_TOKENS["USDC"].lower(): {"symbol": "USDC", "name": "USD Coin", "decimals": 18},
}

# Static USD prices, not an oracle
NATIVE_TOKEN_PRICE_USD = float(os.getenv("NATIVE_TOKEN_PRICE_USD", "800"))

TOKEN_PRICES = {
    COMMON_TOKENS["WBNB"].lower(): NATIVE_TOKEN_PRICE_USD,
    COMMON_TOKENS["USDT"].lower(): 1.0,
    COMMON_TOKENS["USDC"].lower(): 1.0,
}

# On-chain fee (hundredths of a bip) -> display tier
FEE_TIERS = {
    100: "0.01%",
    500: "0.05%",
    2500: "0.25%",
    3000: "0.3%",
    10000: "1%",
}

# Reconnect tuning for the log stream
RECONNECT_CONFIG = {
    "max_attempts": int(os.getenv("RECONNECT_MAX_ATTEMPTS", "5")),
    "initial_delay": float(os.getenv("RECONNECT_INITIAL_DELAY", "1.0")),  # seconds
    "max_delay": float(os.getenv("RECONNECT_MAX_DELAY", "30.0")),  # seconds
    "backoff_multiplier": float(os.getenv("RECONNECT_BACKOFF_MULTIPLIER", "2")),
    "connect_timeout": float(os.getenv("WS_CONNECT_TIMEOUT", "10.0")),  # seconds
}

# Monitoring / ranking configuration
MONITOR_CONFIG = {
    "tick_interval": 1.0,  # Leaderboard refresh (seconds)
    "top_n": 20,  # Pools kept on the leaderboard
    "excluded_fee": "0.01%",  # Lowest tier is left out of ranking and stats
    "cache_ttl": 300,  # Pool/token metadata TTL (seconds)
    "hide_inactive": os.getenv("HIDE_INACTIVE_POOLS", "false").lower() == "true",
    "check_rpc_on_connect": True,
}

# Sliding windows (seconds)
TIME_WINDOWS = {
    "5m": 5 * 60,
    "15m": 15 * 60,
}

POOL_ABI = [
    {
        "inputs": [],
        "name": "token0",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "token1",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "fee",
        "outputs": [{"internalType": "uint24", "name": "", "type": "uint24"}],
        "stateMutability": "view",
        "type": "function",
    },
]

ERC20_ABI = [
    {
        "inputs": [],
        "name": "name",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "symbol",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# Non-indexed Swap fields, in ABI order
SWAP_DATA_TYPES = {
    "PANCAKESWAP_V3": ["int256", "int256", "uint160", "uint128", "int24", "uint128", "uint128"],
    "UNISWAP_V3": ["int256", "int256", "uint160", "uint128", "int24"],
}
