#!/usr/bin/env python3
"""
Risk scoring shared by every protocol provider.

Staking and lending providers describe their risk as a RiskTable: a base
score plus groups of threshold brackets, where the first matching bracket in
each group contributes its points. LP providers use lp_risk_metrics.
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Tuple

from .types import RiskMetrics, clamp, safe_float


@dataclass(frozen=True)
class RiskBracket:
    """Adds ``points`` when ``metric`` is below (lt) or above (gt) ``threshold``."""
    metric: str
    threshold: float
    points: float
    op: str = 'lt'

    def matches(self, metrics: Mapping[str, float]) -> bool:
        if self.metric not in metrics:
            return False
        value = safe_float(metrics[self.metric])
        if self.op == 'lt':
            return value < self.threshold
        if self.op == 'gt':
            return value > self.threshold
        raise ValueError(f"Unknown bracket op: {self.op}")


@dataclass(frozen=True)
class RiskTable:
    base: float
    groups: Tuple[Tuple[RiskBracket, ...], ...]
    cap: float = 10.0

    def score(self, metrics: Mapping[str, float]) -> float:
        """Base plus the first matching bracket of each group, clamped to [0, cap]."""
        risk = self.base
        for group in self.groups:
            for bracket in group:
                if bracket.matches(metrics):
                    risk += bracket.points
                    break
        return clamp(risk, 0.0, self.cap)


def _lt(metric: str, *steps: Tuple[float, float]) -> Tuple[RiskBracket, ...]:
    return tuple(RiskBracket(metric, threshold, points, 'lt') for threshold, points in steps)


def _gt(metric: str, *steps: Tuple[float, float]) -> Tuple[RiskBracket, ...]:
    return tuple(RiskBracket(metric, threshold, points, 'gt') for threshold, points in steps)


_VALIDATOR_RATIO = _lt('validatorRatio', (0.3, 2), (0.5, 1))
_STAKE_CONCENTRATION = _lt('activeStake', (100_000, 2), (500_000, 1))
_EXCHANGE_RATE = _gt('exchangeRateDeviation', (0.05, 2), (0.02, 1))

# ─── Marinade ───────────────────────────────────────────────────────────────
MARINADE_POOL_RISK = RiskTable(base=3, groups=(
    _VALIDATOR_RATIO,
    _lt('avgScore', (70, 2), (85, 1)),
))

MARINADE_VALIDATOR_RISK = RiskTable(base=4, groups=(
    _gt('commission', (10, 1)),
    _lt('score', (70, 3), (85, 2), (95, 1)),
    _STAKE_CONCENTRATION,
))

# ─── Lido ───────────────────────────────────────────────────────────────────
LIDO_POOL_RISK = RiskTable(base=2, groups=(
    _VALIDATOR_RATIO,
    _lt('avgPerformance', (98, 2), (99, 1)),
    _EXCHANGE_RATE,
))

LIDO_VALIDATOR_RISK = RiskTable(base=3, groups=(
    _gt('commission', (8, 1)),
    _lt('performance', (98, 3), (99, 2), (99.5, 1)),
    _STAKE_CONCENTRATION,
))

# ─── JPool ──────────────────────────────────────────────────────────────────
JPOOL_POOL_RISK = RiskTable(base=4, groups=(
    _VALIDATOR_RATIO,
    _lt('avgPerformance', (98, 2), (99, 1)),
    _lt('avgUptime', (99, 2), (99.5, 1)),
    _EXCHANGE_RATE,
))

JPOOL_VALIDATOR_RISK = RiskTable(base=5, groups=(
    _gt('commission', (8, 1)),
    _lt('performance', (98, 3), (99, 2), (99.5, 1)),
    _lt('uptime', (99, 2), (99.5, 1)),
    _lt('epochsActive', (50, 2), (100, 1)),
    _STAKE_CONCENTRATION,
))

# ─── LuLo ───────────────────────────────────────────────────────────────────
LULO_RISK = RiskTable(base=3, groups=(
    _lt('protocolCount', (2, 3), (3, 2), (4, 1)),
    _gt('minimumRate', (8, 2), (5, 1)),
    _lt('totalValue', (10_000, 2), (100_000, 1)),
))


@dataclass(frozen=True)
class LPRiskWeights:
    """Constants of the LP pool risk formula."""
    volatility_multiplier: float = 10.0
    il_multiplier: float = 1.5
    il_cap: float = 10.0
    liquidity_unit: float = 1_000_000.0
    liquidity_cap: float = 10.0
    protocol_risk: float = 3.0


DEFAULT_LP_RISK_WEIGHTS = LPRiskWeights()


def lp_risk_metrics(volume_24h: float, tvl: float,
                    weights: LPRiskWeights = DEFAULT_LP_RISK_WEIGHTS) -> RiskMetrics:
    """
    Risk for an AMM pool from its 24h volume and TVL.

    volatility = volume/tvl * 10, IL = min(1.5 * volatility, 10),
    liquidity = min(tvl / 1e6, 10), and the score is the mean of volatility,
    IL, (10 - liquidity) and the protocol risk, clamped to [0, 10].
    """
    volume_24h = safe_float(volume_24h)
    tvl = safe_float(tvl)
    ratio = volume_24h / tvl if tvl > 0 else 0.0

    volatility = ratio * weights.volatility_multiplier
    impermanent_loss = min(volatility * weights.il_multiplier, weights.il_cap)
    liquidity = min(tvl / weights.liquidity_unit, weights.liquidity_cap)
    score = (volatility + impermanent_loss + (weights.liquidity_cap - liquidity)
             + weights.protocol_risk) / 4

    return RiskMetrics(
        volatility=volatility,
        impermanent_loss=impermanent_loss,
        liquidity_depth=liquidity,
        counterparty_risk=0.0,
        protocol_risk=weights.protocol_risk,
        score=score,
    )


def staking_pool_metrics(stake_data: Dict, validators) -> Dict[str, float]:
    """Aggregate metrics a staking pool RiskTable reads."""
    total_validators = safe_float(stake_data.get('totalValidators'))
    metrics = {
        'validatorRatio': (safe_float(stake_data.get('validatorCount')) / total_validators
                           if total_validators > 0 else 0.0),
        'exchangeRateDeviation': abs(safe_float(stake_data.get('exchangeRate'), 1.0) - 1),
    }
    # averages are undefined without validators; their brackets then never match
    if validators:
        count = len(validators)
        metrics['avgScore'] = sum(safe_float(v.get('score')) for v in validators) / count
        metrics['avgPerformance'] = sum(safe_float(v.get('performance', 100)) for v in validators) / count
        metrics['avgUptime'] = sum(safe_float(v.get('uptime', 100)) for v in validators) / count
    return metrics
