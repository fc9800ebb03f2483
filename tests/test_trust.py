"""Token pair trust scoring and the token pair evaluator."""
from unittest.mock import MagicMock

import pytest

from yields_fun.errors import FetchError
from yields_fun.runtime import Message
from yields_fun.services.evaluators.token_pair import (
    TokenPairEvaluator, decide_action, suggested_tick_range, token_pair_evaluator
)
from yields_fun.services.evaluators.trust_manager import (
    TokenPairTrustManager, TokenSecurityMetrics, TokenTradingMetrics, TrustWeights,
    build_trust_state, calculate_scores
)
from yields_fun.services.market import birdeye_endpoints as ep

BASE = 'BaseMint111'
QUOTE = 'So11111111111111111111111111111111111111112'


def _healthy_trading():
    return TokenTradingMetrics(volume_24h=100_000, liquidity_usd=200_000,
                               price_change_24h=0, unique_holders=2000)


def test_honeypot_zeroes_security_and_blocks_provision():
    trading = _healthy_trading()
    clean = build_trust_state(BASE, QUOTE, TokenSecurityMetrics(has_renounced=True), trading)
    honeypot = build_trust_state(
        BASE, QUOTE, TokenSecurityMetrics(has_renounced=True, is_honeypot=True), trading
    )

    assert clean.metrics.security_score == 100
    assert honeypot.metrics.security_score == 0
    assert clean.metrics.overall_trust_score - honeypot.metrics.overall_trust_score == pytest.approx(20)
    assert clean.should_provide is True
    assert honeypot.should_provide is False
    assert "Token is a potential honeypot" in honeypot.warnings


def test_scores_are_clamped_and_weighted():
    trading = TokenTradingMetrics(volume_24h=25_000, liquidity_usd=1_000_000,
                                  price_change_24h=80, unique_holders=10)
    metrics = calculate_scores(TokenSecurityMetrics(), trading)

    assert metrics.volume_score == 50
    assert metrics.liquidity_score == 100
    assert metrics.volatility_score == 0
    assert metrics.transaction_score == 1
    # not renounced
    assert metrics.security_score == 90
    assert metrics.overall_trust_score == pytest.approx((50 + 100 + 0 + 1 + 90) * 0.2)

    weighted = calculate_scores(TokenSecurityMetrics(), trading, TrustWeights(1, 0, 0, 0, 0))
    assert weighted.overall_trust_score == 50


def test_risk_level_exposure_and_warnings():
    trading = TokenTradingMetrics(liquidity_usd=5_000, unique_holders=10, sell_tax_bps=1500)
    state = build_trust_state(BASE, QUOTE, TokenSecurityMetrics(has_mint_function=True), trading)

    assert state.risk_level == 'extreme'
    assert state.max_exposure == pytest.approx(min(5_000 * 0.01, state.metrics.overall_trust_score * 100))
    assert "Low liquidity, high slippage risk" in state.warnings
    assert "High transaction taxes detected" in state.warnings
    assert state.to_dict()['recommendations']['warning'] == state.warnings


def _trust_manager(cache, security_payload):
    birdeye = MagicMock()

    def public(path, address):
        if path == ep.PUBLIC_MARKET_INFO:
            raise FetchError(url=path, attempts=3, status_code=500)
        if path == ep.PUBLIC_TOKEN_SECURITY:
            return {'success': True, 'data': security_payload}
        return {'success': True, 'data': {'price': 1.5}}

    birdeye.get_public.side_effect = public
    dexscreener = MagicMock()
    dexscreener.get_pairs_by_token_address.return_value = [
        {'quoteToken': {'symbol': 'USDC'}, 'liquidity': {'usd': 1}},
        {'quoteToken': {'symbol': 'SOL'}, 'liquidity': {'usd': 40_000, 'base': 250}},
    ]
    return TokenPairTrustManager(birdeye, dexscreener, cache=cache), birdeye


def test_trust_manager_falls_back_and_caches(cache):
    manager, birdeye = _trust_manager(cache, {'hasRenounced': True, 'isHoneypot': False})

    state = manager.get_trust_state(BASE, QUOTE)
    again = manager.get_trust_state(BASE, QUOTE)

    assert again is state
    assert birdeye.get_public.call_count == 3
    # market info failed: defaults; liquidity from the SOL pair
    assert state.trading.volume_24h == 0
    assert state.trading.price == 1.5
    assert state.trading.liquidity_usd == 40_000
    assert state.trading.liquidity_sol == 250
    assert state.security.has_renounced is True


def test_decide_action_thresholds():
    assert decide_action(70, 50_000) == 'provide'
    assert decide_action(69.9, 1_000_000) == 'monitor'
    assert decide_action(39, 1_000_000) == 'avoid'
    assert decide_action(90, 9_999) == 'avoid'


def test_suggested_range_width_is_clamped():
    assert suggested_tick_range(100, 100) == {'lower': pytest.approx(99), 'upper': pytest.approx(101)}
    assert suggested_tick_range(100, 0) == {'lower': pytest.approx(95), 'upper': pytest.approx(105)}


def _evaluator(trust_state):
    trust_manager = MagicMock()
    trust_manager.get_trust_state.return_value = trust_state
    dexscreener = MagicMock()
    dexscreener.get_best_dex_for_pair.return_value = {
        'dexId': 'raydium', 'pairAddress': 'pair-1', 'volumeUsd24h': 100_000,
        'liquidityUsd': 200_000, 'score': 130_000,
    }
    dexscreener.get_dex_scores.return_value = {'raydium': 130_000, 'orca': 90_000}
    dexscreener.get_pairs_by_token_address.return_value = [{'pairAddress': 'pair-1', 'priceUsd': '2.0'}]
    return TokenPairEvaluator(trust_manager, dexscreener)


def test_evaluate_pair_recommends_provide_with_range():
    trust = build_trust_state(BASE, QUOTE, TokenSecurityMetrics(has_renounced=True), _healthy_trading())

    evaluation = _evaluator(trust).evaluate_pair(BASE, QUOTE)

    recommendation = evaluation['recommendation']
    assert recommendation['action'] == 'provide'
    assert recommendation['shouldProvide'] is True
    assert recommendation['preferredAmm'] == 'raydium'
    assert recommendation['ammScores'] == {'raydium': 130_000, 'orca': 90_000}
    assert recommendation['suggestedTickRange'] == {'lower': pytest.approx(1.98), 'upper': pytest.approx(2.02)}
    assert evaluation['marketState']['currentPrice'] == 2.0


def test_token_pair_entry_requires_both_addresses(runtime, session_state):
    result = token_pair_evaluator(runtime, Message({'baseTokenAddress': BASE}), session_state)
    assert result == "Please provide both base and quote token addresses for evaluation."
