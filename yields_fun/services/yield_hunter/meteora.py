#!/usr/bin/env python3
"""
Meteora LP pools from the Meteora public API.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from yields_fun.config import METEORA_API_BASE
from yields_fun.errors import FetchError, ProviderError
from yields_fun.plugin_registry import PluginEntry
from yields_fun.services.risk import LPRiskWeights, lp_risk_metrics
from yields_fun.services.types import (
    OpportunityType, PoolData, RiskMetrics, YieldOpportunity, safe_float
)
from .base_provider import YieldProvider, format_opportunities, rpc_url_from

logger = logging.getLogger("yields_fun.meteora")

METEORA_RISK_WEIGHTS = LPRiskWeights(protocol_risk=3.0)


@dataclass
class MeteoraPool:
    address: str
    token0_address: str
    token0_symbol: str
    token1_address: str
    token1_symbol: str
    fee: float
    tvl: float
    volume_24h: float
    fees_usd_24h: float

    @property
    def apy(self) -> float:
        if self.tvl <= 0:
            return 0.0
        return self.fees_usd_24h / self.tvl * 365 * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            'address': self.address,
            'token0Address': self.token0_address,
            'token0Symbol': self.token0_symbol,
            'token1Address': self.token1_address,
            'token1Symbol': self.token1_symbol,
            'fee': self.fee,
            'tvlUSD': self.tvl,
            'volumeUSD24h': self.volume_24h,
            'feesUSD24h': self.fees_usd_24h,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MeteoraPool':
        return cls(
            address=data['address'],
            token0_address=data.get('token0Address', ''),
            token0_symbol=data.get('token0Symbol', '?'),
            token1_address=data.get('token1Address', ''),
            token1_symbol=data.get('token1Symbol', '?'),
            fee=safe_float(data.get('fee')),
            tvl=safe_float(data.get('tvlUSD')),
            volume_24h=safe_float(data.get('volumeUSD24h')),
            fees_usd_24h=safe_float(data.get('feesUSD24h')),
        )


class MeteoraProvider(YieldProvider):
    """Meteora LP opportunities."""

    protocol_name = 'Meteora'
    opportunities_cache_key = 'meteora_opportunities'

    def __init__(self, *args, api_base: str = METEORA_API_BASE, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_base = api_base.rstrip('/')

    def fetch_pools(self) -> List[MeteoraPool]:
        """All pools; failures are logged and yield an empty list."""
        cached = self.get_cached_data('meteora_pools')
        if cached is not None:
            return [MeteoraPool.from_dict(p) for p in cached]

        try:
            response = self.fetch_with_retry(
                f"{self.api_base}/pools",
                headers={'Content-Type': 'application/json'},
            )
            if not response.get('success'):
                raise ProviderError("Failed to fetch Meteora pools")

            pools = []
            for item in response.get('data') or []:
                try:
                    pools.append(MeteoraPool.from_dict(item))
                except KeyError as e:
                    logger.debug(f"[Meteora] Skipping malformed pool: {e}")
        except (FetchError, ProviderError, requests.RequestException) as e:
            logger.error(f"[Meteora] Error fetching pools: {e}")
            return []

        logger.info(f"[Meteora] Fetched {len(pools)} pools")
        self.write_to_cache('meteora_pools', [p.to_dict() for p in pools])
        return pools

    def calculate_pool_risk(self, pool: MeteoraPool) -> RiskMetrics:
        return lp_risk_metrics(pool.volume_24h, pool.tvl, METEORA_RISK_WEIGHTS)

    def get_yield_opportunities(self) -> List[YieldOpportunity]:
        return [
            YieldOpportunity.create(
                protocol=self.protocol_name,
                type=OpportunityType.LP,
                apy=pool.apy,
                tvl=pool.tvl,
                risk=self.calculate_pool_risk(pool).score,
                tokens=[pool.token0_symbol, pool.token1_symbol],
                address=pool.address,
                description=(f"Meteora LP pool for {pool.token0_symbol}/{pool.token1_symbol} "
                             f"with {pool.fee:g}% fee"),
            )
            for pool in self.fetch_pools()
        ]

    def calculate_risk_metrics(self, opportunity: YieldOpportunity) -> RiskMetrics:
        for pool in self.fetch_pools():
            if pool.address == opportunity.address:
                return self.calculate_pool_risk(pool)
        return RiskMetrics(score=opportunity.risk)

    def get_pool_data(self, address: str) -> Optional[PoolData]:
        """PoolData for ``address``; chain-only fields stay 0."""
        pool = next((p for p in self.fetch_pools() if p.address == address), None)
        if pool is None:
            return None
        return PoolData(
            address=pool.address,
            token0=pool.token0_address,
            token1=pool.token1_address,
            fee=pool.fee,
            liquidity=pool.tvl,
            volume_usd_24h=pool.volume_24h,
            fees_usd_24h=pool.fees_usd_24h,
            tvl_usd=pool.tvl,
        )


def _meteora_report(runtime, message, state=None) -> str:
    try:
        provider = MeteoraProvider(runtime.cache_manager, rpc_url=rpc_url_from(runtime))
        opportunities = provider.get_yield_opportunities()
        volumes = {p.address: p.volume_24h for p in provider.fetch_pools()}
        return format_opportunities("🌊 Meteora LP Opportunities", opportunities, volumes=volumes)
    except Exception as e:
        logger.error(f"[Meteora] Error in Meteora provider: {e}")
        return "Unable to fetch Meteora opportunities. Please try again later."


meteora_provider = PluginEntry(
    name='meteora',
    kind='provider',
    description='Meteora LP pool opportunities',
    handler=_meteora_report,
)
