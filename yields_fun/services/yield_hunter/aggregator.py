#!/usr/bin/env python3
"""
Yield Aggregator - multi-protocol opportunity aggregation.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional, Sequence

from yields_fun.plugin_registry import PluginEntry
from yields_fun.services.types import RiskMetrics, YieldOpportunity
from .base_provider import YieldProvider, rpc_url_from
from .lulo import LuloProvider
from .meteora import MeteoraProvider
from .orca import OrcaProvider
from .raydium import RaydiumProvider
from .staking import JPoolProvider, LidoProvider, MarinadeProvider

logger = logging.getLogger("yields_fun.aggregator")


def get_all_opportunities(
    providers: Sequence[YieldProvider],
    risk_max: Optional[float] = None,
    min_apy: Optional[float] = None
) -> List[YieldOpportunity]:
    """
    Aggregate opportunities from every provider in parallel.

    Args:
        providers: Protocol providers to query
        risk_max: Drop opportunities with risk above this score
        min_apy: Drop opportunities with APY below this percentage

    Returns:
        List of YieldOpportunity sorted by APY descending
    """
    all_opportunities: List[YieldOpportunity] = []

    with ThreadPoolExecutor(max_workers=max(1, min(len(providers), 8))) as executor:
        futures = {
            executor.submit(provider.get_yield_opportunities): provider
            for provider in providers
        }
        for future in as_completed(futures):
            name = futures[future].protocol_name or type(futures[future]).__name__
            try:
                all_opportunities.extend(future.result())
            except Exception as e:
                logger.error(f"[Aggregator] Error fetching {name}: {e}")

    if risk_max is not None:
        all_opportunities = [o for o in all_opportunities if o.risk <= risk_max]
    if min_apy is not None:
        all_opportunities = [o for o in all_opportunities if o.apy >= min_apy]

    all_opportunities.sort(key=lambda o: o.apy, reverse=True)
    return all_opportunities


class YieldAggregator(YieldProvider):
    """Provider view over several protocol providers."""

    opportunities_cache_key = 'all_opportunities'

    def __init__(self, providers: Sequence[YieldProvider], *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.providers = list(providers)

    def get_yield_opportunities(self) -> List[YieldOpportunity]:
        cached = self.get_cached_opportunities(self.opportunities_cache_key)
        if cached:
            return cached
        opportunities = get_all_opportunities(self.providers)
        if opportunities:
            self.cache_opportunities(self.opportunities_cache_key, opportunities)
        return opportunities

    def calculate_risk_metrics(self, opportunity: YieldOpportunity) -> RiskMetrics:
        return RiskMetrics(score=opportunity.risk)


def build_default_providers(runtime) -> List[YieldProvider]:
    """One provider per supported protocol, sharing the runtime cache."""
    cache = runtime.cache_manager
    rpc_url = rpc_url_from(runtime)
    providers: List[YieldProvider] = [
        RaydiumProvider(cache, rpc_url=rpc_url),
        OrcaProvider(cache, rpc_url=rpc_url),
        MeteoraProvider(cache, rpc_url=rpc_url),
        MarinadeProvider(cache, rpc_url=rpc_url),
        LidoProvider(cache, rpc_url=rpc_url),
        JPoolProvider(cache, rpc_url=rpc_url),
    ]
    api_key = runtime.get_setting("FLEXLEND_API_KEY")
    wallet = runtime.get_setting("WALLET_PUBLIC_KEY")
    if api_key and wallet:
        providers.append(LuloProvider(cache, rpc_url=rpc_url, wallet_public_key=wallet, api_key=api_key))
    return providers


def _yield_report(runtime, message, state=None) -> str:
    try:
        aggregator = YieldAggregator(build_default_providers(runtime), runtime.cache_manager,
                                     rpc_url=rpc_url_from(runtime),
                                     wallet_public_key=runtime.get_setting("WALLET_PUBLIC_KEY"))
        return aggregator.get_formatted_report()
    except Exception as e:
        logger.error(f"[Aggregator] Error in yield provider: {e}")
        return "Unable to fetch yield information. Please try again later."


yield_provider = PluginEntry(
    name='yield',
    kind='provider',
    description='Top yield opportunities across all supported protocols',
    handler=_yield_report,
)
