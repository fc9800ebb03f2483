#!/usr/bin/env python3
"""Birdeye endpoint paths, cache TTLs and request headers."""
from typing import Dict

from yields_fun.config import BIRDEYE_API_BASE

BIRDEYE_API_V1 = "/v1"
BIRDEYE_API_V3 = "/defi/v3"

# Token
TOKEN_SECURITY = "/defi/token_security"
TOKEN_METADATA = "/token/metadata/{address}"
TOKEN_HOLDER = "/token/holder/{address}"

# Price / volume
PRICE_VOLUME_SINGLE = "/token/price-volume/{address}"
OHLCV = "/token/ohlcv/{address}"
HISTORY_PRICE = "/defi/history_price"

# Trading
TRADES_PAIR = "/trades/pair"

# Market data
MARKET_DATA = f"{BIRDEYE_API_V3}/token/market-data"
PAIR_OVERVIEW = f"{BIRDEYE_API_V3}/pair/overview/single"

# Wallet
WALLET_TOKEN_LIST = f"{BIRDEYE_API_V1}/wallet/token_list"
WALLET_TX_LIST = f"{BIRDEYE_API_V1}/wallet/tx_list"

# Legacy public endpoints used by the trust manager
PUBLIC_TOKEN_LIST = "/public/token_list"
PUBLIC_TOKEN_SECURITY = "/public/token_security"
PUBLIC_MARKET_INFO = "/public/market_info"

TIME_SCOPES = (
    "1m", "3m", "5m", "15m", "30m", "1H", "2H", "4H",
    "6H", "8H", "12H", "1D", "3D", "1W", "1M",
)

# Cache TTLs (seconds)
TTL_SECURITY = 3600
TTL_PRICE_VOLUME = 300
TTL_TRADES = 60
TTL_OHLCV = 300
TTL_HOLDERS = 3600
TTL_METADATA = 86400
TTL_MARKET = 300
TTL_HISTORY = 300
TTL_PAIR = 300
TTL_WALLET = 300


def url(path: str, base: str = BIRDEYE_API_BASE, **params) -> str:
    """Absolute URL for ``path``, formatting any ``{address}`` placeholder."""
    return f"{base.rstrip('/')}{path.format(**params) if params else path}"


def api_headers(api_key: str, chain: str = "solana") -> Dict[str, str]:
    return {
        'accept': 'application/json',
        'x-chain': chain,
        'X-API-KEY': api_key,
    }
