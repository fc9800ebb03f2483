#!/usr/bin/env python3
"""
Token pair evaluator: trust state plus DexScreener venue data, turned into a
provide / monitor / avoid recommendation with a suggested price range.
"""
import json
import logging
from typing import Any, Dict, Optional

from yields_fun.plugin_registry import PluginEntry
from yields_fun.services.market.birdeye import BirdeyeClient
from yields_fun.services.market.dexscreener import DexScreenerClient
from yields_fun.services.types import clamp, safe_float
from .trust_manager import TokenPairTrustManager, TokenPairTrustState

logger = logging.getLogger("yields_fun.evaluator")

PROVIDE_CONFIDENCE = 70
AVOID_CONFIDENCE = 40
PROVIDE_MIN_VOLUME = 50_000
AVOID_MAX_VOLUME = 10_000


def decide_action(confidence: float, volume_24h: float) -> str:
    if confidence >= PROVIDE_CONFIDENCE and volume_24h >= PROVIDE_MIN_VOLUME:
        return 'provide'
    if confidence < AVOID_CONFIDENCE or volume_24h < AVOID_MAX_VOLUME:
        return 'avoid'
    return 'monitor'


def suggested_tick_range(price: float, volatility_score: float) -> Dict[str, float]:
    volatility = 100 - volatility_score
    width = clamp(volatility / 1000, 0.01, 0.05)
    return {'lower': price * (1 - width), 'upper': price * (1 + width)}


class TokenPairEvaluator:
    def __init__(self, trust_manager: TokenPairTrustManager, dexscreener: Optional[DexScreenerClient] = None):
        self.trust_manager = trust_manager
        self.dexscreener = dexscreener or trust_manager.dexscreener

    def generate_recommendation(
        self,
        trust: TokenPairTrustState,
        best_dex: Dict[str, Any],
        active_pair: Optional[Dict[str, Any]],
        amm_scores: Dict[str, float]
    ) -> Dict[str, Any]:
        confidence = trust.metrics.overall_trust_score
        price = safe_float(active_pair.get('priceUsd')) if active_pair else 0.0
        action = decide_action(confidence, best_dex['volumeUsd24h'])

        recommendation = {
            'action': action,
            'confidence': confidence,
            'maxExposure': trust.max_exposure,
            'shouldProvide': action == 'provide',
            'preferredAmm': best_dex['dexId'],
            'ammScores': amm_scores,
            'maxLiquidityUsd': trust.max_exposure,
        }
        if action == 'provide' and price > 0:
            recommendation['suggestedTickRange'] = suggested_tick_range(price, trust.metrics.volatility_score)
        return recommendation

    def evaluate_pair(self, base_address: str, quote_address: str) -> Dict[str, Any]:
        trust = self.trust_manager.get_trust_state(base_address, quote_address)
        best_dex = self.dexscreener.get_best_dex_for_pair(base_address, quote_address)
        amm_scores = self.dexscreener.get_dex_scores(base_address, quote_address)

        active_pair = None
        if best_dex['pairAddress']:
            active_pair = next(
                (p for p in self.dexscreener.get_pairs_by_token_address(base_address)
                 if p.get('pairAddress') == best_dex['pairAddress']),
                None,
            )

        metrics = trust.metrics
        evaluation = {
            'trustState': {
                'overallScore': metrics.overall_trust_score,
                'riskLevel': trust.risk_level,
                'metrics': {
                    'volume': metrics.volume_score,
                    'liquidity': metrics.liquidity_score,
                    'volatility': metrics.volatility_score,
                    'transactions': metrics.transaction_score,
                },
                'warnings': list(trust.warnings),
            },
            'marketState': {
                'bestDex': best_dex['dexId'],
                'currentPrice': safe_float(active_pair.get('priceUsd')) if active_pair else 0.0,
                'volume24h': best_dex['volumeUsd24h'],
                'liquidityUsd': best_dex['liquidityUsd'],
            },
            'metrics': {
                'priceVolatility': 100 - metrics.volatility_score,
                'volumeHealth': metrics.volume_score,
            },
            'recommendation': self.generate_recommendation(trust, best_dex, active_pair, amm_scores),
        }
        logger.info(
            f"[Evaluator] {base_address}/{quote_address}: {evaluation['recommendation']['action']} "
            f"on {best_dex['dexId']} (confidence {metrics.overall_trust_score:.1f})"
        )
        return evaluation


def build_token_pair_evaluator(runtime) -> TokenPairEvaluator:
    birdeye = BirdeyeClient(runtime.get_setting("BIRDEYE_API_KEY") or '')
    dexscreener = DexScreenerClient()
    return TokenPairEvaluator(TokenPairTrustManager(birdeye, dexscreener), dexscreener)


def _evaluate_token_pair(runtime, message, state=None) -> str:
    base_address = message.get("baseTokenAddress")
    quote_address = message.get("quoteTokenAddress")
    if not base_address or not quote_address:
        return "Please provide both base and quote token addresses for evaluation."

    try:
        evaluation = build_token_pair_evaluator(runtime).evaluate_pair(base_address, quote_address)
        if state is not None:
            state.set("lastTokenPairEvaluation", evaluation)
        return json.dumps(evaluation, indent=2)
    except Exception as e:
        logger.error(f"[Evaluator] Error in token pair evaluator: {e}")
        return "Failed to evaluate token pair."


token_pair_evaluator = PluginEntry(
    name='tokenPair',
    kind='evaluator',
    description='Trust and venue evaluation for a token pair',
    handler=_evaluate_token_pair,
)
