#!/usr/bin/env python3
"""
LuLo (Flexlend) lending provider.
Account data comes from the Flexlend API, keyed by wallet.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

import requests

from yields_fun.config import FLEXLEND_API_BASE
from yields_fun.errors import FetchError
from yields_fun.plugin_registry import PluginEntry
from yields_fun.services.risk import LULO_RISK
from yields_fun.services.types import OpportunityType, YieldOpportunity, safe_float
from .base_provider import YieldProvider, format_opportunities, rpc_url_from

logger = logging.getLogger("yields_fun.lulo")


@dataclass
class LuloAccountData:
    total_value: float
    interest_earned: float
    realtime_apy: float
    owner: str = ''
    allowed_protocols: List[str] = field(default_factory=list)
    homebase: str = ''
    minimum_rate: float = 0.0

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'LuloAccountData':
        settings = data.get('settings') or {}
        protocols = settings.get('allowedProtocols') or ''
        if isinstance(protocols, str):
            protocols = [p.strip() for p in protocols.split(',') if p.strip()]
        return cls(
            total_value=safe_float(data.get('totalValue')),
            interest_earned=safe_float(data.get('interestEarned')),
            realtime_apy=safe_float(data.get('realtimeApy', data.get('realtimeAPY'))),
            owner=settings.get('owner', ''),
            allowed_protocols=list(protocols),
            homebase=settings.get('homebase', ''),
            minimum_rate=safe_float(settings.get('minimumRate')),
        )

    def risk_metrics(self) -> Dict[str, float]:
        return {
            'protocolCount': len(self.allowed_protocols),
            'minimumRate': self.minimum_rate,
            'totalValue': self.total_value,
        }


class LuloProvider(YieldProvider):
    """Lending opportunities from the wallet's LuLo account."""

    protocol_name = 'LuLo'

    def __init__(self, *args, api_key: str = '', api_base: str = FLEXLEND_API_BASE, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_key = api_key
        self.api_base = api_base.rstrip('/')

    def fetch_account_data(self, wallet_address: str) -> LuloAccountData:
        response = self.fetch_with_retry(
            f"{self.api_base}/account",
            headers={
                'x-wallet-pubkey': wallet_address,
                'x-api-key': self.api_key,
            },
        )
        return LuloAccountData.from_api(response.get('data') or {})

    def calculate_risk(self, account: LuloAccountData) -> float:
        return LULO_RISK.score(account.risk_metrics())

    def get_yield_opportunities(self, wallet_address: str = None) -> List[YieldOpportunity]:
        wallet_address = wallet_address or self.wallet_public_key
        cache_key = f"lulo_opportunities_{wallet_address}"
        cached = self.get_cached_opportunities(cache_key)
        if cached is not None:
            return cached

        try:
            account = self.fetch_account_data(wallet_address)
        except (FetchError, requests.RequestException) as e:
            logger.error(f"[LuLo] Error fetching account data: {e}")
            return []

        opportunities = [YieldOpportunity.create(
            protocol=self.protocol_name,
            type=OpportunityType.LENDING,
            apy=account.realtime_apy,
            tvl=account.total_value,
            risk=self.calculate_risk(account),
            tokens=['USDC'],
            address=wallet_address,
            description=(f"LuLo lending across {len(account.allowed_protocols)} "
                         f"protocols with auto-rebalancing"),
        )]
        self.cache_opportunities(cache_key, opportunities)
        return opportunities

    def get_account_stats(self, wallet_address: str = None) -> str:
        wallet_address = wallet_address or self.wallet_public_key
        try:
            account = self.fetch_account_data(wallet_address)
        except (FetchError, requests.RequestException) as e:
            logger.error(f"[LuLo] Error fetching account stats: {e}")
            return "Unable to fetch LuLo account statistics"

        return (
            "LuLo Account Statistics:\n"
            f"Total Value: ${account.total_value:,.2f}\n"
            f"Interest Earned: ${account.interest_earned:,.2f}\n"
            f"Current APY: {account.realtime_apy:.2f}%\n"
            f"Active Protocols: {','.join(account.allowed_protocols)}\n"
            f"Homebase: {account.homebase}\n"
            f"Minimum Rate: {account.minimum_rate:g}%"
        )


def _lulo_report(runtime, message, state=None) -> str:
    api_key = runtime.get_setting("FLEXLEND_API_KEY")
    if not api_key:
        return "LuLo API key not configured"
    wallet_address = runtime.get_setting("WALLET_PUBLIC_KEY")
    if not wallet_address:
        return "Wallet public key not configured"

    try:
        provider = LuloProvider(runtime.cache_manager, rpc_url=rpc_url_from(runtime),
                                wallet_public_key=wallet_address, api_key=api_key)
        report = format_opportunities("💰 LuLo Lending Opportunities", provider.get_yield_opportunities())
        return report + "\n" + provider.get_account_stats()
    except Exception as e:
        logger.error(f"[LuLo] Error in LuLo provider: {e}")
        return "Unable to fetch LuLo opportunities. Please try again later."


lulo_provider = PluginEntry(
    name='lulo',
    kind='provider',
    description='LuLo auto-rebalancing lending opportunities',
    handler=_lulo_report,
)
