#!/usr/bin/env python3
"""Risk metrics for an existing concentrated liquidity position."""
from dataclasses import dataclass
from typing import Any, Dict, Sequence

import numpy as np

from yields_fun.services.types import clamp


@dataclass
class CLMPositionMetrics:
    position_score: float
    impermanent_loss_risk: float
    rebalance_frequency: float
    price_volatility: float
    concentration_risk: float
    reward_apr: float
    fee_apr: float
    out_of_range_risk: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'positionScore': self.position_score,
            'impermanentLossRisk': self.impermanent_loss_risk,
            'rebalanceFrequency': self.rebalance_frequency,
            'priceVolatility': self.price_volatility,
            'concentrationRisk': self.concentration_risk,
            'rewardAPR': self.reward_apr,
            'feeAPR': self.fee_apr,
            'outOfRangeRisk': self.out_of_range_risk,
        }


def calculate_volatility(prices: Sequence[float]) -> float:
    """Population stdev of simple returns."""
    values = np.asarray(prices, dtype=float)
    if len(values) < 2:
        return 0.0
    returns = np.diff(values) / values[:-1]
    return float(np.std(returns))


def crosses_range(previous: float, current: float, lower: float, upper: float) -> bool:
    return (
        (previous <= lower <= current)
        or (previous >= upper >= current)
        or (previous <= upper <= current)
        or (previous >= lower >= current)
    )


class CLMEvaluator:
    """Scores a position range against price history."""

    def position_score(self, lower: float, upper: float, price: float) -> float:
        score = 5 + (2 if lower <= price <= upper else -2)
        return clamp(score, 1, 10)

    def impermanent_loss_risk(self, lower: float, upper: float, price: float, volatility: float) -> float:
        width = min((upper - lower) / price, 1) if price > 0 else 0
        risk = (volatility * 5 + (10 - width * 5)) / 2
        return clamp(risk, 1, 10)

    def rebalance_frequency(self, lower: float, upper: float, prices: Sequence[float]) -> float:
        """Expected range crossings per 30 periods."""
        if not prices:
            return 0.0
        crossings = sum(
            1 for prev, cur in zip(prices, prices[1:])
            if crosses_range(prev, cur, lower, upper)
        )
        return crossings * 30 / len(prices)

    def concentration_risk(self, lower: float, upper: float, price: float) -> float:
        relative_width = (upper - lower) / price if price > 0 else 0
        return clamp(10 - relative_width * 10, 0, 10)

    def fee_apr(self, volume_24h: float, fee_rate: float, position_value: float) -> float:
        if position_value <= 0:
            return 0.0
        return volume_24h * fee_rate * 365 / position_value * 100

    def out_of_range_risk(self, lower: float, upper: float, price: float, volatility: float) -> float:
        if price <= 0:
            return 10.0
        min_distance = min(abs(price - lower), abs(upper - price)) / price
        distance_risk = 10 - min(min_distance * 20, 9)
        return clamp((distance_risk + volatility * 10) / 2, 0, 10)

    def evaluate(
        self,
        lower: float,
        upper: float,
        price: float,
        prices: Sequence[float],
        volume_24h: float = 0.0,
        fee_rate: float = 0.0,
        position_value: float = 0.0,
        reward_apr: float = 0.0
    ) -> CLMPositionMetrics:
        prices = list(prices)
        volatility = calculate_volatility(prices)
        return CLMPositionMetrics(
            position_score=self.position_score(lower, upper, price),
            impermanent_loss_risk=self.impermanent_loss_risk(lower, upper, price, volatility),
            rebalance_frequency=self.rebalance_frequency(lower, upper, prices),
            price_volatility=volatility,
            concentration_risk=self.concentration_risk(lower, upper, price),
            reward_apr=reward_apr,
            fee_apr=self.fee_apr(volume_24h, fee_rate, position_value),
            out_of_range_risk=self.out_of_range_risk(lower, upper, price, volatility),
        )
