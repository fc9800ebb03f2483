#!/usr/bin/env python3
"""Trust scoring and opportunity evaluators."""

from .trust_manager import (
    TokenPairTrustManager,
    TokenPairTrustState,
    TrustWeights,
    calculate_scores
)

from .token_pair import TokenPairEvaluator, token_pair_evaluator
from .clm_opportunity import CLMOpportunityEvaluator, CLMRiskWeights, clm_opportunity_evaluator
from .clm_position import CLMEvaluator, CLMPositionMetrics
from .yield_evaluator import YieldOpportunityEvaluator, yield_opportunity_evaluator
from .performance import PerformanceProvider
from .watchlist import Watchlist

__all__ = [
    'TokenPairTrustManager',
    'TokenPairTrustState',
    'TrustWeights',
    'calculate_scores',
    'TokenPairEvaluator',
    'token_pair_evaluator',
    'CLMOpportunityEvaluator',
    'CLMRiskWeights',
    'clm_opportunity_evaluator',
    'CLMEvaluator',
    'CLMPositionMetrics',
    'YieldOpportunityEvaluator',
    'yield_opportunity_evaluator',
    'PerformanceProvider',
    'Watchlist'
]
