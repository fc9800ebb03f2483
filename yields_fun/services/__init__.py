#!/usr/bin/env python3
"""Shared services: record types, cache, HTTP retry and risk scoring."""

from .types import (
    OpportunityType,
    YieldOpportunity,
    PoolData,
    RiskMetrics,
    YieldStats,
    MonitoredPool,
    clamp
)

from .cache import TwoTierCache, MemoryCacheStore, SqlCacheStore
from .http_client import fetch_with_retry, build_session
from .risk import RiskBracket, RiskTable, LPRiskWeights, lp_risk_metrics

__all__ = [
    'OpportunityType',
    'YieldOpportunity',
    'PoolData',
    'RiskMetrics',
    'YieldStats',
    'MonitoredPool',
    'clamp',
    'TwoTierCache',
    'MemoryCacheStore',
    'SqlCacheStore',
    'fetch_with_retry',
    'build_session',
    'RiskBracket',
    'RiskTable',
    'LPRiskWeights',
    'lp_risk_metrics'
]
