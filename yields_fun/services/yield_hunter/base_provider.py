#!/usr/bin/env python3
"""
Base class for protocol yield providers.

Holds the injected two-tier cache, an HTTP session with the shared retry
policy, and the report formatting every provider reuses.
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from yields_fun.config import CACHE_TTL_SECONDS, DEFAULT_RPC, RPC_URL
from yields_fun.services.cache import TwoTierCache
from yields_fun.services.http_client import build_session, fetch_with_retry
from yields_fun.services.types import RiskMetrics, YieldOpportunity, YieldStats

logger = logging.getLogger("yields_fun.provider")


def rpc_url_from(runtime) -> str:
    return runtime.get_setting("RPC_URL") or DEFAULT_RPC


def format_risk(risk: float) -> str:
    return f"{round(risk, 2):g}"


def format_opportunities(
    title: str,
    opportunities: List[YieldOpportunity],
    volumes: Optional[Dict[str, float]] = None
) -> str:
    """Render opportunities, highest APY first, under ``title``."""
    report = f"{title}\n\n"
    for opp in sorted(opportunities, key=lambda o: o.apy, reverse=True):
        report += f"{opp.description}\n"
        report += f"APY: {opp.apy:.2f}%\n"
        report += f"TVL: ${opp.tvl:,.0f}\n"
        if volumes and opp.address in volumes:
            report += f"24h Volume: ${volumes[opp.address]:,.0f}\n"
        report += f"Risk: {format_risk(opp.risk)}/10\n\n"
    return report


class YieldProvider:
    """Common plumbing for protocol providers."""

    protocol_name = ''
    opportunities_cache_key = 'all_opportunities'

    def __init__(
        self,
        cache: TwoTierCache,
        session: Optional[requests.Session] = None,
        rpc_url: str = RPC_URL,
        wallet_public_key: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.cache = cache
        self.session = session or build_session()
        self.rpc_url = rpc_url
        self.wallet_public_key = wallet_public_key
        self._sleep = sleep

    # ── Cache helpers ──────────────────────────────────────────────────────

    def get_cached_data(self, key: str) -> Optional[Any]:
        return self.cache.get(key)

    def write_to_cache(self, key: str, data: Any, ttl: int = CACHE_TTL_SECONDS) -> None:
        self.cache.set(key, data, ttl)

    def get_cached_opportunities(self, key: str) -> Optional[List[YieldOpportunity]]:
        cached = self.get_cached_data(key)
        if cached is None:
            return None
        return [YieldOpportunity.from_dict(item) for item in cached]

    def cache_opportunities(self, key: str, opportunities: List[YieldOpportunity]) -> None:
        self.write_to_cache(key, [o.to_dict() for o in opportunities])

    # ── HTTP ───────────────────────────────────────────────────────────────

    def fetch_with_retry(self, url: str, method: str = 'GET', **kwargs) -> Any:
        return fetch_with_retry(self.session, method, url, sleep=self._sleep, **kwargs)

    # ── Overridable surface ────────────────────────────────────────────────

    def get_yield_opportunities(self) -> List[YieldOpportunity]:
        return self.get_cached_opportunities(self.opportunities_cache_key) or []

    def calculate_risk_metrics(self, opportunity: YieldOpportunity) -> RiskMetrics:
        return RiskMetrics()

    @property
    def stats_cache_key(self) -> str:
        prefix = f"{self.protocol_name.lower()}_" if self.protocol_name else ''
        return f"{prefix}yield_stats"

    def get_yield_stats(self) -> YieldStats:
        cached = self.get_cached_data(self.stats_cache_key)
        if cached:
            return YieldStats.from_dict(cached)

        opportunities = self.get_yield_opportunities()
        count = len(opportunities)
        stats = YieldStats(
            total_value_locked=sum(o.tvl for o in opportunities),
            average_apy=(sum(o.apy for o in opportunities) / count) if count else 0.0,
            number_of_positions=count,
        )
        self.write_to_cache(self.stats_cache_key, stats.to_dict())
        return stats

    def get_formatted_report(self) -> str:
        try:
            opportunities = self.get_yield_opportunities()
            stats = self.get_yield_stats()

            report = "🌾 Yield Farming Opportunities Report\n\n"
            report += "📊 Overall Stats:\n"
            report += f"Total Value Locked: ${stats.total_value_locked:,.0f}\n"
            report += f"Total Yield Generated: ${stats.total_yield_generated:,.0f}\n"
            report += f"Average APY: {stats.average_apy:.2f}%\n"
            report += f"Active Positions: {stats.number_of_positions}\n"
            report += f"P&L: ${stats.profit_loss:,.0f}\n\n"

            report += "🎯 Top Opportunities:\n"
            top = sorted(opportunities, key=lambda o: o.apy, reverse=True)[:5]
            for opp in top:
                risk = self.calculate_risk_metrics(opp)
                report += f"\n{opp.protocol} - {opp.type.value}\n"
                report += f"APY: {opp.apy:.2f}%\n"
                report += f"TVL: ${opp.tvl:,.0f}\n"
                report += f"Risk Score: {risk.score:.2f}/10\n"
                report += f"Tokens: {'/'.join(opp.tokens)}\n"
            return report
        except Exception as e:
            logger.error(f"[Yield] Error generating yield report: {e}")
            return "Unable to fetch yield information. Please try again later."
