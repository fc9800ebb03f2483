#!/usr/bin/env python3
"""Token performance analysis from Birdeye price/volume and price history."""
import logging
from typing import Any, Dict, List

from yields_fun.services.market.birdeye import (
    BirdeyeClient,
    calculate_volatility,
    pick,
    price_points,
    unwrap
)
from yields_fun.services.types import clamp

logger = logging.getLogger("yields_fun.evaluator")


def calculate_performance_metrics(current: Dict[str, Any], prices: List[float]) -> Dict[str, Any]:
    volume = pick(current, 'volume24h', 'volumeUSD')
    liquidity = pick(current, 'liquidity')
    return {
        'price': pick(current, 'price', 'value'),
        'priceChange24h': pick(current, 'priceChange24h', 'priceChangePercent'),
        'volume24h': volume,
        'volumeChange24h': pick(current, 'volumeChange24h', 'volumeChangePercent'),
        'liquidity': liquidity,
        'historicalVolatility': calculate_volatility(prices),
        'volumeToLiquidity': volume / liquidity if liquidity > 0 else 0.0,
        'feeAPR': pick(current, 'feeAPY'),
        'buyPressure': 0.5,
    }


def calculate_risk_level(metrics: Dict[str, Any]) -> str:
    volatility = metrics['historicalVolatility']
    volume_change = abs(metrics['volumeChange24h'])
    liquidity = metrics['liquidity']
    vtl = metrics['volumeToLiquidity']

    factors = [
        3 if volatility > 100 else 2 if volatility > 50 else 1,
        3 if volume_change > 50 else 2 if volume_change > 25 else 1,
        3 if liquidity < 100_000 else 2 if liquidity < 500_000 else 1,
        3 if vtl > 2 else 2 if vtl > 1 else 1,
    ]
    score = sum(factors) / len(factors)
    if score >= 2.5:
        return 'extreme'
    if score >= 2:
        return 'high'
    if score >= 1.5:
        return 'medium'
    return 'low'


def calculate_confidence(metrics: Dict[str, Any]) -> float:
    factors = [
        max(0, 100 - abs(metrics['volumeChange24h'])) / 100,
        min(metrics['liquidity'] / 1_000_000, 1),
        max(0, 100 - metrics['historicalVolatility']) / 100,
    ]
    return sum(factors) / len(factors) * 100


def determine_time_horizon(metrics: Dict[str, Any], risk_level: str) -> str:
    if risk_level == 'extreme' or metrics['historicalVolatility'] > 100:
        return 'short'
    if risk_level == 'low' and metrics['historicalVolatility'] < 30:
        return 'long'
    return 'medium'


def determine_action(metrics: Dict[str, Any], risk_level: str, confidence: float) -> str:
    if risk_level == 'extreme' or confidence < 40:
        return 'avoid'
    if risk_level == 'high' or confidence < 60:
        return 'monitor'
    if metrics['feeAPR'] > 20 and metrics['liquidity'] > 250_000 and metrics['volume24h'] > 100_000:
        return 'provide'
    return 'monitor'


def suggested_range(metrics: Dict[str, Any]) -> Dict[str, float]:
    factor = clamp(metrics['historicalVolatility'] / 200, 0.05, 0.5)
    return {
        'lower': metrics['price'] * (1 - factor),
        'upper': metrics['price'] * (1 + factor),
    }


def analyze_performance(metrics: Dict[str, Any]) -> Dict[str, Any]:
    risk_level = calculate_risk_level(metrics)
    confidence = calculate_confidence(metrics)
    action = determine_action(metrics, risk_level, confidence)

    recommendation = {
        'action': action,
        'confidence': confidence,
        'timeHorizon': determine_time_horizon(metrics, risk_level),
    }
    if action == 'provide':
        recommendation['suggestedRange'] = suggested_range(metrics)

    return {
        'metrics': metrics,
        'recommendation': recommendation,
        'riskLevel': risk_level,
    }


class PerformanceProvider:
    def __init__(self, birdeye: BirdeyeClient):
        self.birdeye = birdeye

    def get_token_performance(self, token_address: str, time_scope: str = '1D') -> Dict[str, Any]:
        current = unwrap(self.birdeye.get_price_volume(token_address)) or {}
        history = self.birdeye.get_historical_prices(token_address, type=time_scope)
        metrics = calculate_performance_metrics(current, price_points(history))
        analysis = analyze_performance(metrics)
        logger.debug(f"[Performance] {token_address}: {analysis['riskLevel']} / {analysis['recommendation']['action']}")
        return analysis
