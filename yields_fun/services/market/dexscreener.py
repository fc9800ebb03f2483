#!/usr/bin/env python3
"""
DexScreener client: Solana pair discovery and best-venue selection.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests

from yields_fun.config import DEXSCREENER_API_BASE
from yields_fun.errors import FetchError
from yields_fun.services.cache import TwoTierCache
from yields_fun.services.http_client import build_session, fetch_with_retry
from yields_fun.services.types import safe_float

logger = logging.getLogger("yields_fun.dexscreener")

CACHE_DURATION_SECONDS = 300
TRENDING_DEXES = ('raydium', 'meteora', 'orca')
TRENDING_LIMIT = 50


@dataclass(frozen=True)
class BestDexWeights:
    volume: float = 0.7
    liquidity: float = 0.3


DEFAULT_BEST_DEX_WEIGHTS = BestDexWeights()

NO_DEX = {
    'dexId': 'none',
    'pairAddress': '',
    'volumeUsd24h': 0.0,
    'liquidityUsd': 0.0,
    'score': 0.0,
}


def pair_volume(pair: Dict[str, Any]) -> float:
    return safe_float((pair.get('volume') or {}).get('h24'))


def pair_liquidity(pair: Dict[str, Any]) -> float:
    return safe_float((pair.get('liquidity') or {}).get('usd'))


def matches_pair(pair: Dict[str, Any], base: str, quote: str) -> bool:
    """True when ``pair`` trades base/quote in either order (case-insensitive)."""
    pair_base = (pair.get('baseToken') or {}).get('address', '').lower()
    pair_quote = (pair.get('quoteToken') or {}).get('address', '').lower()
    base, quote = base.lower(), quote.lower()
    return (pair_base, pair_quote) in ((base, quote), (quote, base))


class DexScreenerClient:
    """DexScreener public API with a 5-minute memory cache."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        cache: Optional[TwoTierCache] = None,
        base_url: str = DEXSCREENER_API_BASE,
        weights: BestDexWeights = DEFAULT_BEST_DEX_WEIGHTS,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.session = session or build_session()
        self.cache = cache or TwoTierCache(namespace='dexscreener', default_ttl=CACHE_DURATION_SECONDS)
        self.base_url = base_url.rstrip('/')
        self.weights = weights
        self._sleep = sleep

    def _pairs(self, cache_key: str, path: str) -> Optional[List[Dict[str, Any]]]:
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        try:
            data = fetch_with_retry(self.session, 'GET', f"{self.base_url}{path}", sleep=self._sleep)
        except (FetchError, requests.RequestException) as e:
            logger.error(f"[DexScreener] Error fetching {path}: {e}")
            return None
        return (data or {}).get('pairs') or []

    def get_pairs_by_token_address(self, address: str) -> List[Dict[str, Any]]:
        cache_key = f"token_{address}"
        pairs = self._pairs(cache_key, f"/tokens/{address}")
        if pairs is None:
            return []
        solana_pairs = [p for p in pairs if p.get('chainId') == 'solana']
        self.cache.set(cache_key, solana_pairs, CACHE_DURATION_SECONDS)
        return solana_pairs

    def get_pairs_by_dex(self, dex_id: str) -> List[Dict[str, Any]]:
        cache_key = f"dex_{dex_id}"
        pairs = self._pairs(cache_key, f"/pairs/solana/{dex_id}")
        if pairs is None:
            return []
        self.cache.set(cache_key, pairs, CACHE_DURATION_SECONDS)
        return pairs

    def get_trending_solana_pairs(self, min_liquidity: float = 50_000) -> List[Dict[str, Any]]:
        cache_key = f"trending_{min_liquidity}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        with ThreadPoolExecutor(max_workers=len(TRENDING_DEXES)) as executor:
            results = list(executor.map(self.get_pairs_by_dex, TRENDING_DEXES))

        all_pairs = [pair for pairs in results for pair in pairs]
        trending = sorted(
            (p for p in all_pairs if pair_liquidity(p) >= min_liquidity and pair_volume(p) > 0),
            key=pair_volume,
            reverse=True,
        )[:TRENDING_LIMIT]

        self.cache.set(cache_key, trending, CACHE_DURATION_SECONDS)
        return trending

    def score_pair(self, pair: Dict[str, Any]) -> Dict[str, Any]:
        volume = pair_volume(pair)
        liquidity = pair_liquidity(pair)
        return {
            'dexId': pair.get('dexId', ''),
            'pairAddress': pair.get('pairAddress', ''),
            'volumeUsd24h': volume,
            'liquidityUsd': liquidity,
            'score': volume * self.weights.volume + liquidity * self.weights.liquidity,
        }

    def get_best_dex_for_pair(self, base: str, quote: str) -> Dict[str, Any]:
        """Highest scoring venue for base/quote; the first wins ties."""
        best = None
        for pair in self.get_pairs_by_token_address(base):
            if not matches_pair(pair, base, quote):
                continue
            scored = self.score_pair(pair)
            if best is None or scored['score'] > best['score']:
                best = scored
        return best or dict(NO_DEX)

    def get_dex_scores(self, base: str, quote: str) -> Dict[str, float]:
        """Best score per dexId for base/quote."""
        scores: Dict[str, float] = {}
        for pair in self.get_pairs_by_token_address(base):
            if not matches_pair(pair, base, quote):
                continue
            scored = self.score_pair(pair)
            dex_id = scored['dexId']
            if scored['score'] > scores.get(dex_id, float('-inf')):
                scores[dex_id] = scored['score']
        return scores

    def get_active_pair(self, base: str, quote: str) -> Optional[Dict[str, Any]]:
        """Deepest-liquidity pair for base/quote, or None."""
        candidates = [p for p in self.get_pairs_by_token_address(base) if matches_pair(p, base, quote)]
        if not candidates:
            return None
        return max(candidates, key=pair_liquidity)
