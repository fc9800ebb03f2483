#!/usr/bin/env python3
"""
Raydium concentrated-liquidity pools.
Pool listings and state come from the Raydium API v3.
"""
import logging
import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

import requests

from yields_fun.config import RAYDIUM_API_BASE
from yields_fun.errors import FetchError, ProviderError
from yields_fun.plugin_registry import PluginEntry
from yields_fun.services.risk import LPRiskWeights, lp_risk_metrics
from yields_fun.services.types import (
    OpportunityType, PoolData, RiskMetrics, YieldOpportunity, safe_float, safe_int
)
from .base_provider import YieldProvider, format_opportunities, rpc_url_from

logger = logging.getLogger("yields_fun.raydium")

RAYDIUM_RISK_WEIGHTS = LPRiskWeights(protocol_risk=2.0)
TICK_BASE = 1.0001
LIST_PAGE_SIZE = 100


@dataclass
class RaydiumPoolState:
    """Current state of a Raydium CLMM pool."""
    id: str
    mint_a: str
    mint_b: str
    symbol_a: str
    symbol_b: str
    price: float
    tick_spacing: int
    current_tick: int
    tvl: float
    fee_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RaydiumPoolState':
        return cls(**data)


def price_to_tick(price: float) -> int:
    """floor(ln(price) / ln(1.0001)); 0 for non-positive prices."""
    if price <= 0:
        return 0
    return math.floor(math.log(price) / math.log(TICK_BASE))


def tick_to_price(tick: int) -> float:
    return TICK_BASE ** tick


def calculate_pool_apy(pool: PoolData) -> float:
    """Fee APY: fees_24h / tvl * 365 * 100, 0 when tvl is not positive."""
    if pool.tvl_usd <= 0:
        return 0.0
    return pool.fees_usd_24h / pool.tvl_usd * 365 * 100


def _page_items(data: Any, what: str) -> List[Dict[str, Any]]:
    """Items of a v3 paged response: `{"data": {"data": [...]}}`."""
    if not isinstance(data, dict):
        raise ProviderError(f"Unexpected {what} response: {type(data).__name__}")
    page = data.get('data') or {}
    items = page.get('data') if isinstance(page, dict) else None
    return items if isinstance(items, list) else []


def to_pool_data(raw: Dict[str, Any]) -> PoolData:
    """Map a Raydium API v3 pool item onto PoolData."""
    day = raw.get('day') or {}
    mint_a = raw.get('mintA') or {}
    mint_b = raw.get('mintB') or {}
    price = safe_float(raw.get('price'))
    tvl = safe_float(raw.get('tvl'))
    return PoolData(
        address=raw.get('id', ''),
        token0=mint_a.get('address', ''),
        token1=mint_b.get('address', ''),
        fee=safe_float(raw.get('feeRate')) * 100,
        liquidity=tvl,
        tick=price_to_tick(price),
        token0_price=price,
        token1_price=(1 / price) if price > 0 else 0.0,
        volume_usd_24h=safe_float(day.get('volume')),
        fees_usd_24h=safe_float(day.get('volumeFee')),
        tvl_usd=tvl,
    )


class RaydiumProvider(YieldProvider):
    """Raydium CLMM opportunities and pool state."""

    protocol_name = 'Raydium'
    opportunities_cache_key = 'raydium_opportunities'

    def __init__(self, *args, api_base: str = RAYDIUM_API_BASE, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_base = api_base.rstrip('/')

    # ── API ────────────────────────────────────────────────────────────────

    def fetch_pools(self) -> List[Dict[str, Any]]:
        """Concentrated pools sorted by liquidity, cached as raw items."""
        cached = self.get_cached_data('raydium_pools')
        if cached is not None:
            return cached

        data = self.fetch_with_retry(
            f"{self.api_base}/pools/info/list",
            params={
                'poolType': 'concentrated',
                'poolSortField': 'liquidity',
                'sortType': 'desc',
                'pageSize': LIST_PAGE_SIZE,
                'page': 1,
            },
        )
        if isinstance(data, dict) and not data.get('success', True):
            raise ProviderError("Raydium pool list request was not successful")
        pools = _page_items(data, 'Raydium pool list')
        logger.info(f"[Raydium] Fetched {len(pools)} pools")
        self.write_to_cache('raydium_pools', pools)
        return pools

    def fetch_pool(self, pool_id: str) -> Dict[str, Any]:
        data = self.fetch_with_retry(f"{self.api_base}/pools/info/ids", params={'ids': pool_id})
        if not isinstance(data, dict):
            raise ProviderError(f"Unexpected Raydium pool response: {type(data).__name__}")
        items = [p for p in (data.get('data') or []) if p]
        if not items:
            raise ProviderError(f"Raydium pool {pool_id} not found")
        return items[0]

    def find_pool_by_mints(self, mint_a: str, mint_b: str) -> Optional[Dict[str, Any]]:
        """Deepest concentrated pool for a mint pair, either order."""
        data = self.fetch_with_retry(
            f"{self.api_base}/pools/info/mint",
            params={
                'mint1': mint_a,
                'mint2': mint_b,
                'poolType': 'concentrated',
                'poolSortField': 'liquidity',
                'sortType': 'desc',
                'pageSize': 10,
                'page': 1,
            },
        )
        pools = _page_items(data, 'Raydium mint lookup')
        for pool in pools:
            mints = {(pool.get('mintA') or {}).get('address'), (pool.get('mintB') or {}).get('address')}
            if mints == {mint_a, mint_b}:
                return pool
        return None

    # ── Pool state ─────────────────────────────────────────────────────────

    def get_pool_state(self, pool_id: str) -> RaydiumPoolState:
        cache_key = f"pool_state_{pool_id}"
        cached = self.get_cached_data(cache_key)
        if cached:
            return RaydiumPoolState.from_dict(cached)

        raw = self.fetch_pool(pool_id)
        state = self.pool_state_from_raw(raw)
        self.write_to_cache(cache_key, state.to_dict())
        return state

    @staticmethod
    def pool_state_from_raw(raw: Dict[str, Any]) -> RaydiumPoolState:
        mint_a = raw.get('mintA') or {}
        mint_b = raw.get('mintB') or {}
        config = raw.get('config') or {}
        price = safe_float(raw.get('price'))
        return RaydiumPoolState(
            id=raw.get('id', ''),
            mint_a=mint_a.get('address', ''),
            mint_b=mint_b.get('address', ''),
            symbol_a=mint_a.get('symbol', ''),
            symbol_b=mint_b.get('symbol', ''),
            price=price,
            tick_spacing=safe_int(config.get('tickSpacing'), 1) or 1,
            current_tick=price_to_tick(price),
            tvl=safe_float(raw.get('tvl')),
            fee_rate=safe_float(raw.get('feeRate')),
        )

    def get_current_tick(self, pool_id: str) -> int:
        return self.get_pool_state(pool_id).current_tick

    def get_tick_spacing(self, pool_id: str) -> int:
        return self.get_pool_state(pool_id).tick_spacing

    def get_pool_liquidity(self, pool_id: str) -> float:
        return self.get_pool_state(pool_id).tvl

    def calculate_optimal_range(self, pool_id: str, range_width: int = 10) -> Dict[str, int]:
        state = self.get_pool_state(pool_id)
        return {
            'lowerTick': state.current_tick - range_width * state.tick_spacing,
            'upperTick': state.current_tick + range_width * state.tick_spacing,
            'currentTick': state.current_tick,
            'tickSpacing': state.tick_spacing,
        }

    # ── Opportunities ──────────────────────────────────────────────────────

    def get_yield_opportunities(self) -> List[YieldOpportunity]:
        cached = self.get_cached_opportunities(self.opportunities_cache_key)
        if cached is not None:
            return cached

        try:
            pools = self.fetch_pools()
        except (FetchError, ProviderError, requests.RequestException) as e:
            logger.error(f"[Raydium] Failed to fetch pools: {e}")
            return []

        opportunities = []
        for raw in pools:
            pool = to_pool_data(raw)
            if pool.tvl_usd <= 0:
                logger.debug(f"[Raydium] Skipping empty pool {pool.address}")
                continue
            symbol_a = (raw.get('mintA') or {}).get('symbol', '?')
            symbol_b = (raw.get('mintB') or {}).get('symbol', '?')
            opportunities.append(YieldOpportunity.create(
                protocol=self.protocol_name,
                type=OpportunityType.LP,
                apy=calculate_pool_apy(pool),
                tvl=pool.tvl_usd,
                risk=lp_risk_metrics(pool.volume_usd_24h, pool.tvl_usd, RAYDIUM_RISK_WEIGHTS).score,
                tokens=[symbol_a, symbol_b],
                address=pool.address,
                description=f"Raydium CLMM pool for {symbol_a}/{symbol_b} with {pool.fee:g}% fee",
            ))

        self.cache_opportunities(self.opportunities_cache_key, opportunities)
        return opportunities

    def calculate_risk_metrics(self, opportunity: YieldOpportunity) -> RiskMetrics:
        for raw in self.get_cached_data('raydium_pools') or []:
            if raw.get('id') == opportunity.address:
                pool = to_pool_data(raw)
                return lp_risk_metrics(pool.volume_usd_24h, pool.tvl_usd, RAYDIUM_RISK_WEIGHTS)
        return RiskMetrics(score=opportunity.risk)


def _raydium_report(runtime, message, state=None) -> str:
    try:
        provider = RaydiumProvider(runtime.cache_manager, rpc_url=rpc_url_from(runtime))
        return format_opportunities("🌊 Raydium LP Opportunities", provider.get_yield_opportunities())
    except Exception as e:
        logger.error(f"[Raydium] Error in Raydium provider: {e}")
        return "Unable to fetch Raydium opportunities. Please try again later."


raydium_provider = PluginEntry(
    name='raydium',
    kind='provider',
    description='Raydium concentrated liquidity pool opportunities',
    handler=_raydium_report,
)
