#!/usr/bin/env python3
"""
Shared record types for yield providers, evaluators and the pool monitor.
"""

import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List


class OpportunityType(Enum):
    LP = 'LP'
    STAKING = 'STAKING'
    LENDING = 'LENDING'
    DELTA_NEUTRAL = 'DELTA_NEUTRAL'


def clamp(value: float, lo: float, hi: float) -> float:
    """Clamp ``value`` into [lo, hi]; non-finite values collapse to ``lo``."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return lo
    if math.isnan(value) or math.isinf(value):
        return lo
    return max(lo, min(hi, value))


def safe_float(value, default: float = 0.0) -> float:
    """Safely convert value to float."""
    try:
        if isinstance(value, bool):
            return float(value)
        if isinstance(value, (int, float)):
            result = float(value)
        elif isinstance(value, str) and value.strip():
            result = float(value)
        else:
            return default
        if math.isnan(result) or math.isinf(result):
            return default
        return result
    except (ValueError, TypeError):
        return default


def safe_int(value, default: int = 0) -> int:
    """Safely convert value to int."""
    try:
        if isinstance(value, (int, float)):
            return int(value)
        if isinstance(value, str):
            clean = value.split('.')[0] if '.' in value else value
            return int(clean) if clean else default
        return default
    except (ValueError, TypeError, OverflowError):
        return default


@dataclass(frozen=True)
class YieldOpportunity:
    """A single yield opportunity surfaced by a protocol provider."""
    protocol: str
    type: OpportunityType
    apy: float
    tvl: float
    risk: float  # 0-10
    tokens: List[str]
    address: str
    description: str

    @classmethod
    def create(
        cls,
        protocol: str,
        type: OpportunityType,
        apy: float,
        tvl: float,
        risk: float,
        tokens: List[str],
        address: str,
        description: str
    ) -> 'YieldOpportunity':
        """Build an opportunity with risk clamped to [0, 10] and apy >= 0."""
        return cls(
            protocol=protocol,
            type=type,
            apy=max(0.0, safe_float(apy)),
            tvl=max(0.0, safe_float(tvl)),
            risk=clamp(risk, 0.0, 10.0),
            tokens=list(tokens),
            address=address,
            description=description,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'protocol': self.protocol,
            'type': self.type.value,
            'apy': self.apy,
            'tvl': self.tvl,
            'risk': self.risk,
            'tokens': list(self.tokens),
            'address': self.address,
            'description': self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'YieldOpportunity':
        return cls.create(
            protocol=data.get('protocol', ''),
            type=OpportunityType(data.get('type', 'LP')),
            apy=data.get('apy', 0),
            tvl=data.get('tvl', 0),
            risk=data.get('risk', 0),
            tokens=data.get('tokens', []),
            address=data.get('address', ''),
            description=data.get('description', ''),
        )


@dataclass
class PoolData:
    """On-chain/off-chain pool snapshot."""
    address: str
    token0: str
    token1: str
    fee: float
    liquidity: float
    sqrt_price: float = 0.0
    tick: int = 0
    token0_price: float = 0.0
    token1_price: float = 0.0
    token0_volume_24h: float = 0.0
    token1_volume_24h: float = 0.0
    volume_usd_24h: float = 0.0
    fees_usd_24h: float = 0.0
    tvl_usd: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'address': self.address,
            'token0': self.token0,
            'token1': self.token1,
            'fee': self.fee,
            'liquidity': self.liquidity,
            'sqrtPrice': self.sqrt_price,
            'tick': self.tick,
            'token0Price': self.token0_price,
            'token1Price': self.token1_price,
            'token0Volume24h': self.token0_volume_24h,
            'token1Volume24h': self.token1_volume_24h,
            'volumeUSD24h': self.volume_usd_24h,
            'feesUSD24h': self.fees_usd_24h,
            'tvlUSD': self.tvl_usd,
        }


@dataclass
class RiskMetrics:
    volatility: float = 0.0
    impermanent_loss: float = 0.0
    liquidity_depth: float = 0.0
    counterparty_risk: float = 0.0
    protocol_risk: float = 0.0
    score: float = 0.0

    def __post_init__(self):
        self.score = clamp(self.score, 0.0, 10.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'volatility': self.volatility,
            'impermanentLoss': self.impermanent_loss,
            'liquidityDepth': self.liquidity_depth,
            'counterpartyRisk': self.counterparty_risk,
            'protocolRisk': self.protocol_risk,
            'score': self.score,
        }


@dataclass
class YieldStats:
    timestamp: float = field(default_factory=time.time)
    total_value_locked: float = 0.0
    total_yield_generated: float = 0.0
    average_apy: float = 0.0
    number_of_positions: int = 0
    profit_loss: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp,
            'totalValueLocked': self.total_value_locked,
            'totalYieldGenerated': self.total_yield_generated,
            'averageApy': self.average_apy,
            'numberOfPositions': self.number_of_positions,
            'profitLoss': self.profit_loss,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'YieldStats':
        return cls(
            timestamp=data.get('timestamp', time.time()),
            total_value_locked=data.get('totalValueLocked', 0.0),
            total_yield_generated=data.get('totalYieldGenerated', 0.0),
            average_apy=data.get('averageApy', 0.0),
            number_of_positions=data.get('numberOfPositions', 0),
            profit_loss=data.get('profitLoss', 0.0),
        )


@dataclass
class MonitoredPool:
    """A token pair tracked by the pool monitor."""
    base_address: str
    quote_address: str
    last_check: float
    last_analysis: Dict[str, Any]
    current_amm: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'baseAddress': self.base_address,
            'quoteAddress': self.quote_address,
            'lastCheck': self.last_check,
            'lastAnalysis': self.last_analysis,
            'currentAmm': self.current_amm,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MonitoredPool':
        return cls(
            base_address=data['baseAddress'],
            quote_address=data['quoteAddress'],
            last_check=float(data.get('lastCheck', 0)),
            last_analysis=data.get('lastAnalysis') or {},
            current_amm=data.get('currentAmm') or 'none',
        )
