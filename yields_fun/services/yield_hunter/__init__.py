#!/usr/bin/env python3
"""Protocol yield providers and aggregation."""

from .base_provider import YieldProvider, format_opportunities

from .raydium import (
    RaydiumProvider,
    RaydiumPoolState,
    calculate_pool_apy,
    price_to_tick,
    tick_to_price,
    raydium_provider
)

from .orca import OrcaProvider, OrcaPool, orca_provider
from .meteora import MeteoraProvider, MeteoraPool, meteora_provider

from .staking import (
    StakingProvider,
    MarinadeProvider,
    LidoProvider,
    JPoolProvider,
    marinade_provider,
    lido_provider,
    jpool_provider
)

from .lulo import LuloProvider, LuloAccountData, lulo_provider

from .aggregator import (
    YieldAggregator,
    get_all_opportunities,
    build_default_providers,
    yield_provider
)

__all__ = [
    'YieldProvider',
    'format_opportunities',
    'RaydiumProvider',
    'RaydiumPoolState',
    'calculate_pool_apy',
    'price_to_tick',
    'tick_to_price',
    'raydium_provider',
    'OrcaProvider',
    'OrcaPool',
    'orca_provider',
    'MeteoraProvider',
    'MeteoraPool',
    'meteora_provider',
    'StakingProvider',
    'MarinadeProvider',
    'LidoProvider',
    'JPoolProvider',
    'marinade_provider',
    'lido_provider',
    'jpool_provider',
    'LuloProvider',
    'LuloAccountData',
    'lulo_provider',
    'YieldAggregator',
    'get_all_opportunities',
    'build_default_providers',
    'yield_provider'
]
