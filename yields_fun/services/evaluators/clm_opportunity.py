#!/usr/bin/env python3
"""
Concentrated liquidity opportunity evaluator.

Scores a pair from Birdeye OHLCV, price/volume, trades, security and holder
data, proposes a tick range and decides provide / monitor / avoid.
"""
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List

import numpy as np
import pandas as pd

from yields_fun.plugin_registry import PluginEntry
from yields_fun.services.market.birdeye import BirdeyeClient, unwrap, pick
from yields_fun.services.types import clamp, safe_float, safe_int

logger = logging.getLogger("yields_fun.evaluator")

FEE_TIER = 0.003
TICK_BASE = 1.0001
MAX_PORTFOLIO_EXPOSURE = 20
HOLDING_DISTRIBUTION_PLACEHOLDER = 0.5
TOP_HOLDER_CONCENTRATION_PLACEHOLDER = 0.3


@dataclass(frozen=True)
class CLMRiskWeights:
    rug_pull: float = 0.4
    impermanent_loss: float = 0.3
    security: float = 0.3


DEFAULT_CLM_RISK_WEIGHTS = CLMRiskWeights()


def ohlcv_frame(candles: List[Dict[str, Any]]) -> pd.DataFrame:
    """Birdeye candles as a close/volume frame (accepts short or long keys)."""
    rows = [
        {
            'close': safe_float(c.get('c', c.get('close'))),
            'volume': safe_float(c.get('v', c.get('volume'))),
        }
        for c in candles
    ]
    return pd.DataFrame(rows, columns=['close', 'volume'])


def calculate_volume_stability(volumes: pd.Series) -> float:
    """100 minus the coefficient of variation of volume, in percent."""
    if volumes.empty:
        return 0.0
    mean = volumes.mean()
    if mean <= 0:
        return 0.0
    cv = volumes.std(ddof=0) / mean
    return clamp(100 - cv * 100, 0, 100)


def calculate_price_volatility(closes: pd.Series) -> float:
    """Annualised RMS of log returns, in percent."""
    closes = closes[closes > 0]
    if len(closes) < 2:
        return 0.0
    returns = np.log(closes / closes.shift(1)).dropna()
    return clamp(float(np.sqrt((returns ** 2).mean()) * math.sqrt(365) * 100), 0, 100)


def calculate_fee_apr(volume_24h: float, liquidity: float) -> float:
    if liquidity <= 0:
        return 0.0
    return max(0.0, volume_24h * FEE_TIER * 365 / liquidity * 100)


def calculate_buy_pressure(trades: List[Dict[str, Any]]) -> float:
    """Share of traded volume on the buy side."""
    total = sum(safe_float(t.get('volume')) for t in trades)
    if total <= 0:
        return 0.0
    buys = sum(safe_float(t.get('volume')) for t in trades if t.get('side') == 'buy')
    return clamp(buys / total, 0, 1)


def calculate_security_score(security: Dict[str, Any]) -> float:
    score = 100
    if security.get('isHoneypot'):
        score -= 100
    if security.get('hasBlacklist'):
        score -= 20
    if security.get('hasMintFunction'):
        score -= 30
    if not security.get('hasRenounced'):
        score -= 10
    return clamp(score, 0, 100)


def calculate_rug_pull_risk(security: Dict[str, Any], holder_metrics: Dict[str, Any]) -> float:
    risk = 0
    if security.get('hasMintFunction'):
        risk += 30
    if holder_metrics['topHolderConcentration'] > 50:
        risk += 30
    if not security.get('hasRenounced'):
        risk += 20
    if holder_metrics['totalHolders'] < 100:
        risk += 20
    return clamp(risk, 0, 100)


def calculate_il_risk(volatility: float) -> float:
    return clamp(volatility * 2, 0, 100)


def determine_market_trend(closes: pd.Series) -> str:
    """SMA20 against SMA50 with a 5% band."""
    if closes.empty:
        return 'sideways'
    sma20 = closes.rolling(window=20, min_periods=1).mean().iloc[-1]
    sma50 = closes.rolling(window=50, min_periods=1).mean().iloc[-1]
    if sma20 > sma50 * 1.05:
        return 'bullish'
    if sma20 < sma50 * 0.95:
        return 'bearish'
    return 'sideways'


def price_to_tick(price: float) -> int:
    if price <= 0:
        return 0
    return math.floor(math.log(price) / math.log(TICK_BASE))


def calculate_risk_score(metrics: Dict[str, Any], weights: CLMRiskWeights = DEFAULT_CLM_RISK_WEIGHTS) -> float:
    return (
        metrics['rugPullRisk'] * weights.rug_pull
        + metrics['impermanentLossRisk'] * weights.impermanent_loss
        + (100 - metrics['securityScore']) * weights.security
    )


def risk_level_from_score(score: float) -> str:
    if score < 20:
        return 'low'
    if score < 40:
        return 'medium'
    if score < 60:
        return 'high'
    return 'extreme'


def determine_action(metrics: Dict[str, Any], risk_level: str) -> str:
    if risk_level == 'extreme':
        return 'avoid'
    if metrics['feeAPR'] < 20 or metrics['volumeStability'] < 30:
        return 'avoid'
    if risk_level == 'high' and metrics['feeAPR'] < 100:
        return 'monitor'
    if metrics['securityScore'] < 50:
        return 'avoid'
    return 'provide'


def recommend_range(metrics: Dict[str, Any], price: float) -> Dict[str, Any]:
    if metrics['securityScore'] >= 80 and metrics['volumeStability'] >= 70:
        lower, upper = price * 0.95, price * 1.05
    elif metrics['priceVolatility'] > 50:
        lower, upper = price * 0.7, price * 2.0
    else:
        lower, upper = price * 0.8, price * 1.5

    volatility = metrics['priceVolatility']
    if volatility > 50 or metrics['rugPullRisk'] > 50:
        horizon = 'short'
    elif metrics['volumeStability'] > 70 and metrics['securityScore'] > 80:
        horizon = 'long'
    else:
        horizon = 'medium'

    if volatility > 50:
        rebalance = 'hourly'
    elif volatility > 20:
        rebalance = 'daily'
    else:
        rebalance = 'weekly'

    expected_apr = (metrics['feeAPR'] * (metrics['volumeStability'] / 100)
                    * (1 - metrics['impermanentLossRisk'] / 200))
    confidence = clamp(
        (metrics['securityScore'] + metrics['volumeStability'] + (100 - metrics['rugPullRisk'])) / 3,
        0, 100,
    )
    return {
        'lowerTick': price_to_tick(lower),
        'upperTick': price_to_tick(upper),
        'expectedAPR': expected_apr,
        'confidenceScore': confidence,
        'timeHorizon': horizon,
        'rebalanceFrequency': rebalance,
        'maxExposure': (MAX_PORTFOLIO_EXPOSURE * (100 - metrics['rugPullRisk']) / 100
                        * metrics['volumeStability'] / 100),
    }


class CLMOpportunityEvaluator:
    def __init__(self, birdeye: BirdeyeClient, weights: CLMRiskWeights = DEFAULT_CLM_RISK_WEIGHTS):
        self.birdeye = birdeye
        self.weights = weights

    def calculate_metrics(
        self,
        security: Dict[str, Any],
        market: Dict[str, Any],
        trades: List[Dict[str, Any]],
        candles: List[Dict[str, Any]],
        holders: Dict[str, Any]
    ) -> Dict[str, Any]:
        frame = ohlcv_frame(candles)
        volume_24h = pick(market, 'volume24h', 'volumeUSD')
        liquidity = pick(market, 'liquidity')
        volatility = calculate_price_volatility(frame['close'])
        holder_metrics = {
            'totalHolders': safe_int(holders.get('totalHolders')),
            'holdingDistribution': HOLDING_DISTRIBUTION_PLACEHOLDER,
            'topHolderConcentration': TOP_HOLDER_CONCENTRATION_PLACEHOLDER,
        }

        return {
            'volumeToLiquidity': volume_24h / liquidity if liquidity > 0 else 0.0,
            'feeAPR': calculate_fee_apr(volume_24h, liquidity),
            'priceVolatility': volatility,
            'volumeStability': calculate_volume_stability(frame['volume']),
            'liquidityDepth': liquidity,
            'securityScore': calculate_security_score(security),
            'rugPullRisk': calculate_rug_pull_risk(security, holder_metrics),
            'impermanentLossRisk': calculate_il_risk(volatility),
            'marketTrend': determine_market_trend(frame['close']),
            'buyPressure': calculate_buy_pressure(trades),
            'holderMetrics': holder_metrics,
            'historicalFeeAPY': pick(market, 'feeAPY'),
            'volumeGrowth24h': pick(market, 'volumeChange24h', 'volumeChangePercent'),
            'priceGrowth24h': pick(market, 'priceChange24h', 'priceChangePercent'),
        }

    def evaluate_opportunity(self, base_address: str, quote_address: str) -> Dict[str, Any]:
        logger.info(f"[CLM] Evaluating CLM opportunity for {base_address}/{quote_address}")
        security = unwrap(self.birdeye.get_token_security(base_address)) or {}
        market = unwrap(self.birdeye.get_price_volume(base_address)) or {}
        trades = self.birdeye.get_trades_pair(base_address, quote_address)
        candles = self.birdeye.get_ohlcv(base_address)
        holders = unwrap(self.birdeye.get_token_holder(base_address)) or {}

        metrics = self.calculate_metrics(security, market, trades, candles, holders)
        price = pick(market, 'price', 'value')
        recommendation = recommend_range(metrics, price)
        risk_level = risk_level_from_score(calculate_risk_score(metrics, self.weights))

        return {
            'pairAddress': f"{base_address}/{quote_address}",
            'baseToken': base_address,
            'quoteToken': quote_address,
            'dex': 'raydium',
            'metrics': metrics,
            'recommendation': recommendation,
            'riskLevel': risk_level,
            'confidenceScore': recommendation['confidenceScore'],
            'action': determine_action(metrics, risk_level),
        }


def _validate_clm(runtime, message, state=None) -> bool:
    return bool(state and state.get('baseAddress') and state.get('quoteAddress'))


def _evaluate_clm(runtime, message, state=None) -> str:
    base_address = state.get('baseAddress') if state else None
    quote_address = state.get('quoteAddress') if state else None
    if not base_address or not quote_address:
        return "Missing token addresses for evaluation"

    try:
        evaluator = CLMOpportunityEvaluator(BirdeyeClient(runtime.get_setting("BIRDEYE_API_KEY") or ''))
        evaluation = evaluator.evaluate_opportunity(base_address, quote_address)
        state.set("lastClmEvaluation", evaluation)
        return json.dumps(evaluation, indent=2)
    except Exception as e:
        logger.error(f"[CLM] Error in CLM opportunity evaluator: {e}")
        return "Failed to evaluate CLM opportunity"


clm_opportunity_evaluator = PluginEntry(
    name='CLM_OPPORTUNITY',
    kind='evaluator',
    description='Evaluates concentrated liquidity market making opportunities',
    handler=_evaluate_clm,
    similes=('CONCENTRATED_LIQUIDITY', 'CLM_EVALUATION'),
    validate=_validate_clm,
)
