#!/usr/bin/env python3
"""
Token pair trust scoring.

Combines Birdeye token, security and market info for the base token with the
DexScreener SOL pair liquidity into five 0-100 scores and a weighted overall
trust score. Each Birdeye source falls back to defaults when it fails.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from yields_fun.errors import FetchError
from yields_fun.services.cache import TwoTierCache
from yields_fun.services.market import birdeye_endpoints as ep
from yields_fun.services.market.birdeye import BirdeyeClient, unwrap
from yields_fun.services.market.dexscreener import DexScreenerClient
from yields_fun.services.types import clamp, safe_float, safe_int

logger = logging.getLogger("yields_fun.trust")

TRUST_CACHE_SECONDS = 300
SOL_QUOTE_SYMBOLS = ('SOL', 'WSOL')


@dataclass(frozen=True)
class TrustWeights:
    volume: float = 0.2
    liquidity: float = 0.2
    volatility: float = 0.2
    transaction: float = 0.2
    security: float = 0.2


DEFAULT_TRUST_WEIGHTS = TrustWeights()


@dataclass
class TokenSecurityMetrics:
    owner_balance: str = "0"
    creator_balance: str = "0"
    owner_percentage: float = 0.0
    creator_percentage: float = 0.0
    top10_holder_balance: str = "0"
    top10_holder_percent: float = 0.0
    is_honeypot: bool = False
    has_renounced: bool = False
    has_blacklist: bool = False
    has_mint_function: bool = False

    @classmethod
    def from_api(cls, data: Optional[Dict[str, Any]]) -> 'TokenSecurityMetrics':
        data = data or {}
        return cls(
            owner_balance=str(data.get('ownerBalance') or "0"),
            creator_balance=str(data.get('creatorBalance') or "0"),
            owner_percentage=safe_float(data.get('ownerPercentage')),
            creator_percentage=safe_float(data.get('creatorPercentage')),
            top10_holder_balance=str(data.get('top10HolderBalance') or "0"),
            top10_holder_percent=safe_float(data.get('top10HolderPercent')),
            is_honeypot=bool(data.get('isHoneypot')),
            has_renounced=bool(data.get('hasRenounced')),
            has_blacklist=bool(data.get('hasBlacklist')),
            has_mint_function=bool(data.get('hasMintFunction')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ownerBalance': self.owner_balance,
            'creatorBalance': self.creator_balance,
            'ownerPercentage': self.owner_percentage,
            'creatorPercentage': self.creator_percentage,
            'top10HolderBalance': self.top10_holder_balance,
            'top10HolderPercent': self.top10_holder_percent,
            'isHoneypot': self.is_honeypot,
            'hasRenounced': self.has_renounced,
            'hasBlacklist': self.has_blacklist,
            'hasMintFunction': self.has_mint_function,
        }


@dataclass
class TokenTradingMetrics:
    price: float = 0.0
    price_change_24h: float = 0.0
    volume_24h: float = 0.0
    volume_change_24h: float = 0.0
    mcap: float = 0.0
    unique_holders: int = 0
    buy_tax_bps: float = 0.0
    sell_tax_bps: float = 0.0
    liquidity_usd: float = 0.0
    liquidity_sol: float = 0.0

    @property
    def high_tax(self) -> bool:
        return self.buy_tax_bps > 1000 or self.sell_tax_bps > 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            'price': self.price,
            'priceChange24h': self.price_change_24h,
            'volume24h': self.volume_24h,
            'volumeChange24h': self.volume_change_24h,
            'mcap': self.mcap,
            'uniqueHolders': self.unique_holders,
            'buyTaxBps': self.buy_tax_bps,
            'sellTaxBps': self.sell_tax_bps,
            'liquidityUSD': self.liquidity_usd,
            'liquiditySOL': self.liquidity_sol,
        }


@dataclass
class TrustMetrics:
    volume_score: float
    liquidity_score: float
    volatility_score: float
    transaction_score: float
    security_score: float
    overall_trust_score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'volumeScore': self.volume_score,
            'liquidityScore': self.liquidity_score,
            'volatilityScore': self.volatility_score,
            'transactionScore': self.transaction_score,
            'securityScore': self.security_score,
            'overallTrustScore': self.overall_trust_score,
        }


@dataclass
class TokenPairTrustState:
    base_address: str
    quote_address: str
    security: TokenSecurityMetrics
    trading: TokenTradingMetrics
    metrics: TrustMetrics
    should_provide: bool
    risk_level: str
    max_exposure: float
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'baseAddress': self.base_address,
            'quoteAddress': self.quote_address,
            'security': self.security.to_dict(),
            'trading': self.trading.to_dict(),
            'metrics': self.metrics.to_dict(),
            'recommendations': {
                'shouldProvide': self.should_provide,
                'riskLevel': self.risk_level,
                'maxExposure': self.max_exposure,
                'warning': list(self.warnings),
            },
        }


def calculate_security_score(security: TokenSecurityMetrics, trading: TokenTradingMetrics) -> float:
    score = 100
    if security.is_honeypot:
        score -= 100
    if security.has_blacklist:
        score -= 20
    if security.has_mint_function:
        score -= 30
    if not security.has_renounced:
        score -= 10
    if security.top10_holder_percent > 50:
        score -= 20
    if trading.high_tax:
        score -= 30
    return max(0, score)


def calculate_scores(
    security: TokenSecurityMetrics,
    trading: TokenTradingMetrics,
    weights: TrustWeights = DEFAULT_TRUST_WEIGHTS
) -> TrustMetrics:
    volume = clamp(trading.volume_24h / 50_000 * 100, 0, 100)
    liquidity = clamp(trading.liquidity_usd / 100_000 * 100, 0, 100)
    volatility = clamp(100 - abs(trading.price_change_24h) * 2, 0, 100)
    transaction = clamp(trading.unique_holders / 1000 * 100, 0, 100)
    sec = clamp(calculate_security_score(security, trading), 0, 100)

    overall = (
        volume * weights.volume
        + liquidity * weights.liquidity
        + volatility * weights.volatility
        + transaction * weights.transaction
        + sec * weights.security
    )
    return TrustMetrics(
        volume_score=volume,
        liquidity_score=liquidity,
        volatility_score=volatility,
        transaction_score=transaction,
        security_score=sec,
        overall_trust_score=overall,
    )


def trust_risk_level(overall: float) -> str:
    if overall >= 80:
        return 'low'
    if overall >= 60:
        return 'medium'
    if overall >= 40:
        return 'high'
    return 'extreme'


def collect_warnings(security: TokenSecurityMetrics, trading: TokenTradingMetrics) -> List[str]:
    warnings = []
    if security.is_honeypot:
        warnings.append("Token is a potential honeypot")
    if security.has_blacklist:
        warnings.append("Token contract has blacklist function")
    if security.has_mint_function:
        warnings.append("Token contract has mint function")
    if security.top10_holder_percent > 50:
        warnings.append("High concentration of tokens in top holders")
    if trading.high_tax:
        warnings.append("High transaction taxes detected")
    if trading.liquidity_usd < 10_000:
        warnings.append("Low liquidity, high slippage risk")
    if trading.unique_holders < 100:
        warnings.append("Low number of unique holders")
    return warnings


def build_trust_state(
    base_address: str,
    quote_address: str,
    security: TokenSecurityMetrics,
    trading: TokenTradingMetrics,
    weights: TrustWeights = DEFAULT_TRUST_WEIGHTS
) -> TokenPairTrustState:
    metrics = calculate_scores(security, trading, weights)
    overall = metrics.overall_trust_score
    return TokenPairTrustState(
        base_address=base_address,
        quote_address=quote_address,
        security=security,
        trading=trading,
        metrics=metrics,
        should_provide=overall >= 70 and not security.is_honeypot,
        risk_level=trust_risk_level(overall),
        max_exposure=min(trading.liquidity_usd * 0.01, overall * 100),
        warnings=collect_warnings(security, trading),
    )


class TokenPairTrustManager:
    """Scores token pairs and caches the trust state per pair for 5 minutes."""

    def __init__(
        self,
        birdeye: BirdeyeClient,
        dexscreener: Optional[DexScreenerClient] = None,
        weights: TrustWeights = DEFAULT_TRUST_WEIGHTS,
        cache: Optional[TwoTierCache] = None
    ):
        self.birdeye = birdeye
        self.dexscreener = dexscreener or DexScreenerClient()
        self.weights = weights
        self.cache = cache or TwoTierCache(namespace='trust', default_ttl=TRUST_CACHE_SECONDS)

    @staticmethod
    def cache_key(base_address: str, quote_address: str) -> str:
        return f"{base_address}-{quote_address}"

    def _birdeye_public(self, path: str, address: str, label: str) -> Dict[str, Any]:
        try:
            return unwrap(self.birdeye.get_public(path, address)) or {}
        except (FetchError, requests.RequestException) as e:
            logger.error(f"[Trust] Error fetching Birdeye {label} for {address}: {e}")
            return {}

    def _sol_pair(self, base_address: str) -> Optional[Dict[str, Any]]:
        for pair in self.dexscreener.get_pairs_by_token_address(base_address):
            if (pair.get('quoteToken') or {}).get('symbol') in SOL_QUOTE_SYMBOLS:
                return pair
        return None

    def calculate_trust_metrics(self, base_address: str):
        token_info = self._birdeye_public(ep.PUBLIC_TOKEN_LIST, base_address, 'token info')
        security_info = self._birdeye_public(ep.PUBLIC_TOKEN_SECURITY, base_address, 'security info')
        market_info = self._birdeye_public(ep.PUBLIC_MARKET_INFO, base_address, 'market info')

        sol_pair = self._sol_pair(base_address) or {}
        liquidity = sol_pair.get('liquidity') or {}

        security = TokenSecurityMetrics.from_api(security_info)
        trading = TokenTradingMetrics(
            price=safe_float(market_info.get('price', token_info.get('price'))),
            price_change_24h=safe_float(market_info.get('priceChange24h')),
            volume_24h=safe_float(market_info.get('volume24h')),
            volume_change_24h=safe_float(market_info.get('volumeChange24h')),
            mcap=safe_float(market_info.get('mcap', token_info.get('mc'))),
            unique_holders=safe_int(market_info.get('uniqueHolders')),
            buy_tax_bps=safe_float(market_info.get('buyTaxBps')),
            sell_tax_bps=safe_float(market_info.get('sellTaxBps')),
            liquidity_usd=safe_float(liquidity.get('usd')),
            liquidity_sol=safe_float(liquidity.get('base')),
        )
        return security, trading

    def get_trust_state(self, base_address: str, quote_address: str) -> TokenPairTrustState:
        key = self.cache_key(base_address, quote_address)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        security, trading = self.calculate_trust_metrics(base_address)
        state = build_trust_state(base_address, quote_address, security, trading, self.weights)
        logger.info(
            f"[Trust] {key}: overall {state.metrics.overall_trust_score:.1f} "
            f"({state.risk_level}), {len(state.warnings)} warning(s)"
        )
        self.cache.set(key, state, TRUST_CACHE_SECONDS)
        return state
