#!/usr/bin/env python3
"""
Formula-based yield opportunity evaluator.

Builds token metrics from Birdeye and turns them into a strategy
recommendation: concentrated, full-range, observe or delta-neutral.
"""
import json
import logging
from typing import Any, Dict, List, Optional

import numpy as np

from yields_fun.plugin_registry import PluginEntry
from yields_fun.services.market.birdeye import BirdeyeClient, unwrap, pick, price_points
from yields_fun.services.types import clamp

logger = logging.getLogger("yields_fun.evaluator")

FEE_TIER = 0.003
HEDGE_BASE_SPREAD = 0.001
BASE_EXPOSURE = {'low': 20, 'medium': 10, 'high': 5, 'extreme': 0}
DEFAULT_DISTRIBUTION = 50


def log_return_volatility(prices: List[float]) -> float:
    """Population stdev of log returns (not annualised)."""
    values = np.asarray([p for p in prices if p > 0], dtype=float)
    if len(values) < 2:
        return 0.0
    return float(np.std(np.diff(np.log(values))))


def fee_apr(volume_24h: float, tvl: float) -> float:
    if tvl <= 0:
        return 0.0
    return volume_24h * FEE_TIER * 365 / tvl * 100


def il_risk(volatility: float) -> float:
    return min(100.0, volatility * 200)


def max_exposure(security_score: float, risk_level: str) -> float:
    return clamp(BASE_EXPOSURE[risk_level] * (security_score / 100), 0, 20)


def rebalance_frequency(volatility: float) -> str:
    if volatility > 0.4:
        return 'hourly'
    if volatility > 0.2:
        return 'daily'
    return 'weekly'


def confidence_score(metrics: Dict[str, Any]) -> float:
    return min(
        100.0,
        metrics['securityScore'] * 0.3
        + (100 - metrics['impermanentLossRisk']) * 0.3
        + metrics['holderDistribution'] * 0.2
        + metrics['volumeToTVLRatio'] * 100 * 0.2,
    )


def hedging_cost(volatility: float) -> float:
    return HEDGE_BASE_SPREAD * (1 + volatility)


def hedge_efficiency(correlation: float) -> float:
    return clamp(abs(correlation), 0, 1)


def net_delta(delta: float, efficiency: float) -> float:
    return delta * (1 - efficiency)


def risk_level(metrics: Dict[str, Any]) -> str:
    score = (100 - metrics['securityScore']) * 0.5 + metrics['impermanentLossRisk'] * 0.5
    if score < 20:
        return 'low'
    if score < 40:
        return 'medium'
    if score < 60:
        return 'high'
    return 'extreme'


class YieldOpportunityEvaluator:
    name = "YIELD_OPPORTUNITY_EVALUATOR"

    def __init__(self, birdeye: BirdeyeClient):
        self.birdeye = birdeye

    def calculate_metrics(
        self,
        price_data: Dict[str, Any],
        security_data: Dict[str, Any],
        holder_data: Dict[str, Any],
        prices: List[float]
    ) -> Dict[str, Any]:
        volatility = log_return_volatility(prices)
        volume = pick(price_data, 'volume24h', 'volumeUSD')
        tvl = pick(price_data, 'tvl', 'liquidity')
        vtl = volume / tvl if tvl > 0 else 0.0
        apr = fee_apr(volume, tvl)
        return {
            'price': pick(price_data, 'price', 'value'),
            'priceChange24h': pick(price_data, 'priceChange24h', 'priceChangePercent'),
            'volume24h': volume,
            'tvl': tvl,
            'volumeToTVLRatio': vtl,
            'estimatedAPR': apr,
            'feeAPR': apr,
            'rewardAPR': pick(price_data, 'rewardAPR'),
            'impermanentLossRisk': il_risk(volatility),
            'securityScore': pick(security_data, 'score', default=50.0),
            'priceVolatility': volatility,
            'liquidityConcentration': pick(price_data, 'liquidityConcentration', default=50.0),
            'holderDistribution': pick(holder_data, 'distribution', default=DEFAULT_DISTRIBUTION),
            'hedgingCost': hedging_cost(volatility),
            'hedgeEfficiency': 0.0,
            'netDeltaExposure': 0.0,
            'fundingRate': 0.0,
        }

    def gather_market_data(self, token_address: str) -> Dict[str, Any]:
        price_data = unwrap(self.birdeye.get_price_volume(token_address)) or {}
        security_data = unwrap(self.birdeye.get_token_security(token_address)) or {}
        holder_data = unwrap(self.birdeye.get_token_holder(token_address)) or {}
        history = self.birdeye.get_historical_prices(token_address)
        return self.calculate_metrics(price_data, security_data, holder_data, price_points(history))

    def apply_hedge(self, metrics: Dict[str, Any], funding_rate: float,
                    correlation: float = 1.0, delta: float = 1.0) -> Dict[str, Any]:
        efficiency = hedge_efficiency(correlation)
        metrics = dict(metrics)
        metrics.update({
            'fundingRate': funding_rate,
            'hedgeEfficiency': efficiency,
            'netDeltaExposure': net_delta(delta, efficiency),
        })
        return metrics

    def recommend(self, metrics: Dict[str, Any], intent: str = 'monitor') -> Dict[str, Any]:
        level = risk_level(metrics)
        reasoning = [
            f"Fee APR {metrics['feeAPR']:.2f}% at volume/TVL {metrics['volumeToTVLRatio']:.2f}",
            f"Security score {metrics['securityScore']:.0f}, IL risk {metrics['impermanentLossRisk']:.0f}",
        ]

        hedge_cost_annual = metrics['hedgingCost'] * 365 * 100
        if metrics['fundingRate'] and metrics['feeAPR'] > hedge_cost_annual:
            strategy = 'delta-neutral'
            reasoning.append(f"Fee APR exceeds annualised hedging cost of {hedge_cost_annual:.2f}%")
        elif level == 'extreme':
            strategy = 'observe'
            reasoning.append("Risk too high to deploy capital")
        elif metrics['priceVolatility'] > 0.4:
            strategy = 'full-range'
            reasoning.append("Volatility too high for a narrow range")
        else:
            strategy = 'concentrated'

        if strategy == 'observe':
            intent = 'monitor'
        elif intent == 'monitor':
            intent = 'farm' if strategy == 'delta-neutral' else 'provide_liquidity'

        recommendation = {
            'intent': intent,
            'strategy': strategy,
            'maxExposure': max_exposure(metrics['securityScore'], level),
            'riskLevel': level,
            'reasoning': reasoning,
        }
        if strategy in ('concentrated', 'full-range'):
            recommendation['rangeStrategy'] = {
                'expectedAPR': metrics['feeAPR'] * (1 - metrics['impermanentLossRisk'] / 200),
                'rebalanceFrequency': rebalance_frequency(metrics['priceVolatility']),
                'confidenceScore': confidence_score(metrics),
            }
        return recommendation

    def evaluate(self, token_address: str, intent: str = 'monitor',
                 funding_rate: Optional[float] = None) -> Dict[str, Any]:
        metrics = self.gather_market_data(token_address)
        if funding_rate is not None:
            metrics = self.apply_hedge(metrics, funding_rate)
        return {
            'tokenAddress': token_address,
            'metrics': metrics,
            'recommendation': self.recommend(metrics, intent),
        }


def _validate_yield(runtime, message, state=None) -> bool:
    return bool(message and message.get('tokenAddress'))


def _evaluate_yield(runtime, message, state=None) -> str:
    token_address = message.get('tokenAddress') if message else None
    if not token_address:
        return "No token address found in message"

    try:
        evaluator = YieldOpportunityEvaluator(BirdeyeClient(runtime.get_setting("BIRDEYE_API_KEY") or ''))
        evaluation = evaluator.evaluate(
            token_address,
            intent=message.get('intent') or 'monitor',
            funding_rate=message.get('fundingRate'),
        )
        if state is not None:
            state.set("lastYieldRecommendation", evaluation)
        return json.dumps(evaluation, indent=2)
    except Exception as e:
        logger.error(f"[Evaluator] Error in yield opportunity evaluator: {e}")
        return "Failed to evaluate yield opportunity."


yield_opportunity_evaluator = PluginEntry(
    name='YIELD_OPPORTUNITY_EVALUATOR',
    kind='evaluator',
    description='Evaluates DeFi yield opportunities from market data',
    handler=_evaluate_yield,
    similes=('YIELD_EVAL', 'OPPORTUNITY_EVAL'),
    validate=_validate_yield,
)
