#!/usr/bin/env python3
"""
Birdeye market data client and token-pair evaluation.

Every endpoint is cached in memory with its own TTL. Fetch failures are
raised as FetchError; evaluate_pair fails as a whole if any input fails.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import requests

from yields_fun.config import BIRDEYE_API_BASE, BIRDEYE_API_KEY
from yields_fun.errors import ConfigError
from yields_fun.services.cache import TwoTierCache
from yields_fun.services.http_client import build_session, fetch_with_retry
from yields_fun.services.types import safe_float, safe_int
from . import birdeye_endpoints as ep

logger = logging.getLogger("yields_fun.birdeye")


# =============================================================================
# PAYLOAD HELPERS
# =============================================================================

def unwrap(payload: Any) -> Any:
    """Strip Birdeye's ``{success, data}`` envelope when present."""
    if isinstance(payload, dict) and 'data' in payload:
        return payload['data']
    return payload


def items(payload: Any) -> List[Dict[str, Any]]:
    """List payloads arrive bare, as ``data`` or as ``data.items``."""
    data = unwrap(payload)
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return data.get('items') or []
    return []


def pick(data: Dict[str, Any], *keys: str, default: float = 0.0) -> float:
    """First present numeric field among ``keys``."""
    for key in keys:
        if data.get(key) is not None:
            return safe_float(data[key], default)
    return default


def price_points(history: Any) -> List[float]:
    return [safe_float(p.get('value')) for p in items(history)]


# =============================================================================
# SCORING
# =============================================================================

def calculate_security_score(security: Any) -> float:
    data = unwrap(security) or {}
    score = 100
    if data.get('mutableMetadata'):
        score -= 10
    if data.get('freezeable'):
        score -= 15
    if data.get('transferFeeEnable'):
        score -= 10
    if safe_float(data.get('top10HolderPercent')) > 0.5:
        score -= 20
    if data.get('isToken2022') is False:
        score -= 5
    if safe_float(data.get('metaplexUpdateAuthorityPercent')) > 0.1:
        score -= 15
    if safe_float(data.get('creatorPercentage')) > 0.2:
        score -= 15
    if safe_float(data.get('ownerPercentage')) > 0.2:
        score -= 15
    return max(0, score)


def calculate_contract_risk(base_security: Any, quote_security: Any) -> str:
    base = unwrap(base_security) or {}
    quote = unwrap(quote_security) or {}
    factors = [
        base.get('mutableMetadata') or quote.get('mutableMetadata'),
        base.get('freezeable') or quote.get('freezeable'),
        base.get('transferFeeEnable') or quote.get('transferFeeEnable'),
        safe_float(base.get('top10HolderPercent')) > 0.5
        or safe_float(quote.get('top10HolderPercent')) > 0.5,
        safe_float(base.get('metaplexUpdateAuthorityPercent')) > 0.1
        or safe_float(quote.get('metaplexUpdateAuthorityPercent')) > 0.1,
    ]
    count = sum(1 for f in factors if f)
    if count >= 4:
        return 'extreme'
    if count >= 3:
        return 'high'
    if count >= 2:
        return 'medium'
    return 'low'


def calculate_volatility(prices: List[float]) -> float:
    """Annualised volatility (%) from the population stdev of log returns."""
    values = np.asarray([p for p in prices if p > 0], dtype=float)
    if len(values) < 2:
        return 0.0
    returns = np.diff(np.log(values))
    return float(np.std(returns) * np.sqrt(365) * 100)


def calculate_price_range(prices: List[float]) -> float:
    """1 - (max - min) / mean; 1 with fewer than two points."""
    if len(prices) < 2:
        return 1.0
    values = np.asarray(prices, dtype=float)
    avg = values.mean()
    if avg == 0:
        return 0.0
    return float(1 - (values.max() - values.min()) / avg)


def determine_risk_level(metrics: Dict[str, Any]) -> str:
    security = metrics['securityScore']
    concentration = metrics['holderConcentration']
    holders = metrics['holderCount']
    contract = metrics['contractRisk']

    factors = [
        3 if security < 50 else 2 if security < 70 else 1,
        3 if concentration > 80 else 2 if concentration > 60 else 1,
        3 if holders < 100 else 2 if holders < 500 else 1,
        3 if contract == 'extreme' else 2 if contract == 'high' else 1,
    ]
    score = sum(factors) / len(factors)
    if score >= 2.5:
        return 'extreme'
    if score >= 2:
        return 'high'
    if score >= 1.5:
        return 'medium'
    return 'low'


def generate_recommendation(risk: Dict[str, Any], market: Dict[str, Any]) -> str:
    if (risk['contractRisk'] == 'extreme'
            or risk['securityScore'] < 50
            or market['liquidity'] < 100_000):
        return 'avoid'
    if (market['feeAPY'] > 20
            and market['liquidity'] > 250_000
            and market['volume24h'] > 100_000
            and risk['securityScore'] > 70):
        return 'provide'
    return 'monitor'


def calculate_confidence_score(risk: Dict[str, Any], market: Dict[str, Any],
                               volatility: Dict[str, Any]) -> float:
    factors = [
        risk['securityScore'] / 100,
        min(market['liquidity'] / 1_000_000, 1),
        min(market['volume24h'] / 1_000_000, 1),
        max(0.0, 1 - volatility['pairVolatility'] / 100),
    ]
    return sum(factors) / len(factors) * 100


# =============================================================================
# CLIENT
# =============================================================================

class BirdeyeClient:
    """Birdeye public API client with per-endpoint TTL caching."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        cache: Optional[TwoTierCache] = None,
        base_url: str = BIRDEYE_API_BASE,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.api_key = api_key if api_key is not None else BIRDEYE_API_KEY
        if not self.api_key:
            raise ConfigError("BIRDEYE_API_KEY is required")
        self.base_url = base_url.rstrip('/')
        self.session = session or build_session(ep.api_headers(self.api_key))
        self.cache = cache or TwoTierCache(namespace='birdeye', default_ttl=ep.TTL_MARKET)
        self._sleep = sleep

    def _get(self, cache_key: str, path: str, ttl: int, params: Optional[Dict] = None,
             **path_params) -> Any:
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        data = fetch_with_retry(
            self.session, 'GET', ep.url(path, self.base_url, **path_params),
            params=params, sleep=self._sleep,
        )
        self.cache.set(cache_key, data, ttl)
        return data

    # ── Token ──────────────────────────────────────────────────────────────

    def get_token_security(self, address: str) -> Dict[str, Any]:
        return self._get(f"security_{address}", ep.TOKEN_SECURITY, ep.TTL_SECURITY,
                         params={'address': address})

    def get_price_volume(self, address: str) -> Dict[str, Any]:
        return self._get(f"pricevol_{address}", ep.PRICE_VOLUME_SINGLE, ep.TTL_PRICE_VOLUME,
                         address=address)

    def get_trades_pair(self, base: str, quote: str, limit: int = 100) -> List[Dict[str, Any]]:
        payload = self._get(f"trades_{base}_{quote}", ep.TRADES_PAIR, ep.TTL_TRADES,
                            params={'base_address': base, 'quote_address': quote, 'limit': limit})
        return items(payload)

    def get_ohlcv(self, address: str, interval: str = '1h', limit: int = 168) -> List[Dict[str, Any]]:
        payload = self._get(f"ohlcv_{address}_{interval}", ep.OHLCV, ep.TTL_OHLCV,
                            params={'interval': interval, 'limit': limit}, address=address)
        return items(payload)

    def get_token_holder(self, address: str) -> Dict[str, Any]:
        return self._get(f"holders_{address}", ep.TOKEN_HOLDER, ep.TTL_HOLDERS, address=address)

    def get_token_metadata(self, address: str) -> Dict[str, Any]:
        return self._get(f"metadata_{address}", ep.TOKEN_METADATA, ep.TTL_METADATA, address=address)

    def get_market_data(self, address: str) -> Dict[str, Any]:
        return self._get(f"market_{address}", ep.MARKET_DATA, ep.TTL_MARKET,
                         params={'address': address})

    def get_historical_prices(self, address: str, address_type: str = 'token', type: str = '1D',
                              time_from: Optional[int] = None,
                              time_to: Optional[int] = None) -> Dict[str, Any]:
        if type not in ep.TIME_SCOPES:
            raise ValueError(f"Unsupported time scope: {type}")
        params = {'address': address, 'address_type': address_type, 'type': type}
        if time_from is not None:
            params['time_from'] = time_from
        if time_to is not None:
            params['time_to'] = time_to
        return self._get(f"history_{address}_{type}", ep.HISTORY_PRICE, ep.TTL_HISTORY, params=params)

    def get_pair_overview(self, pair_address: str) -> Dict[str, Any]:
        return self._get(f"pair_{pair_address}", ep.PAIR_OVERVIEW, ep.TTL_PAIR,
                         params={'address': pair_address})

    # ── Wallet ─────────────────────────────────────────────────────────────

    def get_wallet_tokens(self, wallet: str) -> Dict[str, Any]:
        return self._get(f"wallet_tokens_{wallet}", ep.WALLET_TOKEN_LIST, ep.TTL_WALLET,
                         params={'wallet': wallet})

    def get_wallet_transactions(self, wallet: str, limit: int = 100) -> Dict[str, Any]:
        return self._get(f"wallet_tx_{wallet}_{limit}", ep.WALLET_TX_LIST, ep.TTL_WALLET,
                         params={'wallet': wallet, 'limit': limit})

    # ── Legacy public endpoints ────────────────────────────────────────────

    def get_public(self, path: str, address: str) -> Dict[str, Any]:
        return self._get(f"public_{path.rsplit('/', 1)[-1]}_{address}", path, ep.TTL_MARKET,
                         params={'address': address})

    # ── Evaluation ─────────────────────────────────────────────────────────

    def evaluate_pair(self, base: str, quote: str) -> Dict[str, Any]:
        """
        Fetch both tokens' security, price/volume, holders and price history
        plus pair trades concurrently, and score the pair.

        Raises:
            FetchError: if any of the nine inputs cannot be fetched
        """
        calls = {
            'baseSecurity': (self.get_token_security, base),
            'quoteSecurity': (self.get_token_security, quote),
            'basePriceVolume': (self.get_price_volume, base),
            'quotePriceVolume': (self.get_price_volume, quote),
            'baseHolders': (self.get_token_holder, base),
            'quoteHolders': (self.get_token_holder, quote),
            'trades': (self.get_trades_pair, base, quote),
            'baseHistory': (self.get_historical_prices, base),
            'quoteHistory': (self.get_historical_prices, quote),
        }
        with ThreadPoolExecutor(max_workers=len(calls)) as executor:
            futures = {name: executor.submit(fn, *args) for name, (fn, *args) in calls.items()}
            results = {name: future.result() for name, future in futures.items()}

        risk = self.calculate_risk_metrics(results)
        market = self.calculate_market_health(results)
        volatility = self.calculate_volatility_metrics(results)

        return {
            'riskLevel': determine_risk_level(risk),
            'riskMetrics': risk,
            'marketHealth': market,
            'volatilityMetrics': volatility,
            'recommendation': generate_recommendation(risk, market),
            'confidenceScore': calculate_confidence_score(risk, market, volatility),
        }

    @staticmethod
    def calculate_risk_metrics(results: Dict[str, Any]) -> Dict[str, Any]:
        base_sec = unwrap(results['baseSecurity']) or {}
        quote_sec = unwrap(results['quoteSecurity']) or {}
        base_holders = unwrap(results['baseHolders']) or {}
        quote_holders = unwrap(results['quoteHolders']) or {}
        return {
            'securityScore': min(calculate_security_score(base_sec), calculate_security_score(quote_sec)),
            'holderConcentration': max(safe_float(base_sec.get('top10HolderPercent')),
                                       safe_float(quote_sec.get('top10HolderPercent'))),
            'holderCount': min(safe_int(base_holders.get('totalHolders')),
                               safe_int(quote_holders.get('totalHolders'))),
            'contractRisk': calculate_contract_risk(base_sec, quote_sec),
        }

    @staticmethod
    def calculate_market_health(results: Dict[str, Any]) -> Dict[str, Any]:
        base = unwrap(results['basePriceVolume']) or {}
        quote = unwrap(results['quotePriceVolume']) or {}
        recent = list(results['trades'])[:100]
        buys = sum(1 for t in recent if t.get('side') == 'buy')
        return {
            'volume24h': min(pick(base, 'volume24h', 'volumeUSD'), pick(quote, 'volume24h', 'volumeUSD')),
            'liquidity': min(pick(base, 'liquidity'), pick(quote, 'liquidity')),
            'volumeChange24h': min(pick(base, 'volumeChange24h', 'volumeChangePercent'),
                                   pick(quote, 'volumeChange24h', 'volumeChangePercent')),
            'buyPressure': buys / len(recent) if recent else 0.0,
            'feeAPY': min(pick(base, 'feeAPY'), pick(quote, 'feeAPY')),
        }

    @staticmethod
    def calculate_volatility_metrics(results: Dict[str, Any]) -> Dict[str, Any]:
        base_prices = price_points(results['baseHistory'])
        quote_prices = price_points(results['quoteHistory'])
        base_vol = calculate_volatility(base_prices)
        quote_vol = calculate_volatility(quote_prices)
        return {
            'baseVolatility': base_vol,
            'quoteVolatility': quote_vol,
            'pairVolatility': max(base_vol, quote_vol),
            'priceStability': min(calculate_price_range(base_prices), calculate_price_range(quote_prices)),
        }

    def clear_cache(self) -> None:
        self.cache.clear()
