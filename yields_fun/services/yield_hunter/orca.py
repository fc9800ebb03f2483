#!/usr/bin/env python3
"""
Orca Whirlpools provider.
Pool listings come from the Orca REST API; position reads go through the
Orca sidecar service.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from yields_fun.config import ORCA_API_BASE, ORCA_SIDECAR_URL, REQUEST_TIMEOUT
from yields_fun.errors import FetchError, ProviderError
from yields_fun.plugin_registry import PluginEntry
from yields_fun.services.risk import LPRiskWeights, lp_risk_metrics
from yields_fun.services.types import OpportunityType, YieldOpportunity, safe_float, safe_int
from .base_provider import YieldProvider, format_opportunities, rpc_url_from

logger = logging.getLogger("yields_fun.orca")

SPLASH_POOL_TICK_SPACING = 32896
ORCA_RISK_WEIGHTS = LPRiskWeights(protocol_risk=2.0)


@dataclass
class OrcaPool:
    """Represents an Orca Whirlpool."""
    address: str
    token_a_mint: str
    token_b_mint: str
    token_a_symbol: str
    token_b_symbol: str
    tick_spacing: int
    fee_rate: float  # fraction, 0.003 = 0.3%
    price: float
    tvl: float
    volume_24h: float

    @property
    def name(self) -> str:
        return f"{self.token_a_symbol}/{self.token_b_symbol}"

    @property
    def fees_24h(self) -> float:
        return self.volume_24h * self.fee_rate

    @property
    def apy(self) -> float:
        if self.tvl <= 0:
            return 0.0
        return self.fees_24h / self.tvl * 365 * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            'address': self.address,
            'tokenAMint': self.token_a_mint,
            'tokenBMint': self.token_b_mint,
            'tokenASymbol': self.token_a_symbol,
            'tokenBSymbol': self.token_b_symbol,
            'tickSpacing': self.tick_spacing,
            'feeRate': self.fee_rate,
            'price': self.price,
            'tvl': self.tvl,
            'volume24h': self.volume_24h,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OrcaPool':
        return cls(
            address=data['address'],
            token_a_mint=data.get('tokenAMint', ''),
            token_b_mint=data.get('tokenBMint', ''),
            token_a_symbol=data.get('tokenASymbol', ''),
            token_b_symbol=data.get('tokenBSymbol', ''),
            tick_spacing=safe_int(data.get('tickSpacing')),
            fee_rate=safe_float(data.get('feeRate')),
            price=safe_float(data.get('price')),
            tvl=safe_float(data.get('tvl')),
            volume_24h=safe_float(data.get('volume24h')),
        )

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> 'OrcaPool':
        token_a = item.get('tokenA') or {}
        token_b = item.get('tokenB') or {}
        return cls(
            address=item['address'],
            token_a_mint=token_a.get('mint', ''),
            token_b_mint=token_b.get('mint', ''),
            token_a_symbol=token_a.get('symbol', '?'),
            token_b_symbol=token_b.get('symbol', '?'),
            tick_spacing=safe_int(item.get('tickSpacing')),
            fee_rate=safe_float(item.get('lpFeeRate')),
            price=safe_float(item.get('price')),
            tvl=safe_float(item.get('tvl')),
            volume_24h=safe_float((item.get('volume') or {}).get('day')),
        )


class OrcaProvider(YieldProvider):
    """Orca Whirlpool pools, positions and LP opportunities."""

    protocol_name = 'Orca'
    opportunities_cache_key = 'orca_opportunities'

    def __init__(self, *args, api_base: str = ORCA_API_BASE,
                 sidecar_url: str = ORCA_SIDECAR_URL, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_base = api_base.rstrip('/')
        self.sidecar_url = sidecar_url.rstrip('/')

    def get_all_pools(self) -> List[OrcaPool]:
        cached = self.get_cached_data('orca_pools')
        if cached is not None:
            return [OrcaPool.from_dict(p) for p in cached]

        data = self.fetch_with_retry(f"{self.api_base}/v1/whirlpool/list", timeout=30)
        pools = []
        for item in data.get('whirlpools', []):
            try:
                pools.append(OrcaPool.from_api(item))
            except (KeyError, TypeError) as e:
                logger.debug(f"[Orca] Skipping malformed pool data: {e}")

        logger.info(f"[Orca] Fetched {len(pools)} pools")
        self.write_to_cache('orca_pools', [p.to_dict() for p in pools])
        return pools

    def fetch_all_pools_by_token_pair(self, mint_a: str, mint_b: str) -> List[OrcaPool]:
        try:
            wanted = {mint_a, mint_b}
            return [p for p in self.get_all_pools() if {p.token_a_mint, p.token_b_mint} == wanted]
        except (FetchError, requests.RequestException) as e:
            logger.error(f"[Orca] Error fetching pools by token pair: {e}")
            raise ProviderError(f"Orca pools for {mint_a}/{mint_b} unavailable: {e}") from e

    def fetch_concentrated_pool(self, mint_a: str, mint_b: str, tick_spacing: int) -> Optional[OrcaPool]:
        for pool in self.fetch_all_pools_by_token_pair(mint_a, mint_b):
            if pool.tick_spacing == tick_spacing:
                return pool
        return None

    def fetch_splash_pool(self, mint_a: str, mint_b: str) -> Optional[OrcaPool]:
        return self.fetch_concentrated_pool(mint_a, mint_b, SPLASH_POOL_TICK_SPACING)

    def _sidecar_get(self, path: str, what: str) -> List[Dict[str, Any]]:
        try:
            response = self.session.get(f"{self.sidecar_url}{path}", timeout=REQUEST_TIMEOUT)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"[Orca] Error fetching {what}: {e}")
            raise ProviderError(f"Orca sidecar {what} unavailable: {e}") from e
        if isinstance(data, dict):
            return data.get('positions', [])
        return data

    def fetch_positions_for_owner(self, owner: str) -> List[Dict[str, Any]]:
        return self._sidecar_get(f"/positions/{owner}", 'positions for owner')

    def fetch_positions_in_whirlpool(self, whirlpool_address: str) -> List[Dict[str, Any]]:
        return self._sidecar_get(f"/pools/{whirlpool_address}/positions", 'positions in whirlpool')

    def get_yield_opportunities(self) -> List[YieldOpportunity]:
        cached = self.get_cached_opportunities(self.opportunities_cache_key)
        if cached is not None:
            return cached

        try:
            pools = self.get_all_pools()
        except (FetchError, requests.RequestException) as e:
            logger.error(f"[Orca] Failed to fetch pools: {e}")
            return []

        opportunities = [
            YieldOpportunity.create(
                protocol=self.protocol_name,
                type=OpportunityType.LP,
                apy=pool.apy,
                tvl=pool.tvl,
                risk=lp_risk_metrics(pool.volume_24h, pool.tvl, ORCA_RISK_WEIGHTS).score,
                tokens=[pool.token_a_symbol, pool.token_b_symbol],
                address=pool.address,
                description=f"Orca Whirlpool for {pool.name} with {pool.fee_rate * 100:g}% fee",
            )
            for pool in pools if pool.tvl > 0
        ]
        self.cache_opportunities(self.opportunities_cache_key, opportunities)
        return opportunities


def _orca_report(runtime, message, state=None) -> str:
    try:
        provider = OrcaProvider(runtime.cache_manager, rpc_url=rpc_url_from(runtime))
        opportunities = provider.get_yield_opportunities()
        volumes = {p.address: p.volume_24h for p in provider.get_all_pools()} if opportunities else {}
        return format_opportunities("🐋 Orca Whirlpool Opportunities", opportunities, volumes=volumes)
    except Exception as e:
        logger.error(f"[Orca] Error in Orca provider: {e}")
        return "Unable to fetch Orca opportunities. Please try again later."


orca_provider = PluginEntry(
    name='orca',
    kind='provider',
    description='Orca Whirlpool liquidity opportunities',
    handler=_orca_report,
)
