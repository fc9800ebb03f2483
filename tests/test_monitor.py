"""Pool monitor decisions and state handling."""
import copy
from unittest.mock import MagicMock, patch

import pytest

from conftest import FakeClock
from yields_fun.runtime import Message, SessionState
from yields_fun.services.monitor.pool_monitor import (
    STATE_KEY, MonitorState, PoolMonitorJob, amm_scores_changed, pool_key, pool_monitor_job,
    should_adjust
)
from yields_fun.services.types import MonitoredPool
from yields_fun.services.yield_hunter.raydium import price_to_tick

BASE = 'BaseMint111'
QUOTE = 'QuoteMint222'
WALLET = 'AgentWallet1111111111111111111111111111111'
INTERVAL = 300


def _analysis(amm='raydium', volatility=10.0, volume=60.0, scores=None, should_provide=True):
    return {
        'metrics': {'priceVolatility': volatility, 'volumeHealth': volume},
        'recommendation': {
            'preferredAmm': amm,
            'ammScores': scores if scores is not None else {'raydium': 100.0, 'orca': 50.0},
            'shouldProvide': should_provide,
            'suggestedTickRange': {'lower': 1.9, 'upper': 2.1},
            'maxLiquidityUsd': 500.0,
        },
    }


@pytest.fixture
def monitor():
    evaluator = MagicMock()
    evaluator.evaluate_pair.return_value = _analysis()
    actions = MagicMock()
    actions.remove_liquidity.return_value = {'success': True}
    actions.adjust_position.return_value = {'success': True, 'saga': {'state': 'completed'}}
    return PoolMonitorJob(evaluator, actions, check_interval=INTERVAL, clock=FakeClock(), wallet=WALLET)


def _next_analysis(monitor, analysis):
    monitor.evaluator.evaluate_pair.return_value = analysis
    monitor._clock.advance(INTERVAL + 1)
    return monitor.check_pool(pool_key(BASE, QUOTE))


def test_add_pool_is_idempotent(monitor):
    first = monitor.add_pool_to_monitor(BASE, QUOTE)
    second = monitor.add_pool_to_monitor(BASE.lower(), QUOTE.lower())

    assert second is first
    assert first.current_amm == 'raydium'
    assert monitor.evaluator.evaluate_pair.call_count == 1
    assert len(monitor.state) == 1


def test_unchanged_state_calls_no_action(monitor):
    monitor.add_pool_to_monitor(BASE, QUOTE)

    assert monitor.check_pool(pool_key(BASE, QUOTE)) is None
    assert monitor.evaluator.evaluate_pair.call_count == 1

    assert _next_analysis(monitor, _analysis()) is not None
    assert monitor.actions.method_calls == []


def test_amm_switch_removes_from_current_venue(monitor):
    monitor.add_pool_to_monitor(BASE, QUOTE)

    _next_analysis(monitor, _analysis(amm='orca'))

    monitor.actions.remove_liquidity.assert_called_once_with(BASE, QUOTE, 100, WALLET)
    monitor.actions.adjust_position.assert_not_called()
    assert monitor.state.get(pool_key(BASE, QUOTE)).current_amm == 'orca'


def test_missing_dex_data_leaves_pool_untouched(monitor):
    monitor.add_pool_to_monitor(BASE, QUOTE)
    before = monitor.state.get(pool_key(BASE, QUOTE)).last_check

    assert _next_analysis(monitor, _analysis(amm='none', scores={})) is None

    pool = monitor.state.get(pool_key(BASE, QUOTE))
    assert monitor.actions.method_calls == []
    assert pool.current_amm == 'raydium'
    assert pool.last_check == before

    _next_analysis(monitor, _analysis())
    assert monitor.actions.method_calls == []


def test_switch_away_from_non_raydium_venue_has_no_action(monitor):
    monitor.evaluator.evaluate_pair.return_value = _analysis(amm='meteora')
    monitor.add_pool_to_monitor(BASE, QUOTE)

    _next_analysis(monitor, _analysis(amm='orca'))

    assert monitor.actions.method_calls == []


def test_volatility_change_rebalances_on_raydium(monitor):
    monitor.add_pool_to_monitor(BASE, QUOTE)

    _next_analysis(monitor, _analysis(volatility=35.0))

    monitor.actions.adjust_position.assert_called_once_with(
        BASE, QUOTE, price_to_tick(1.9), price_to_tick(2.1), 500.0, WALLET
    )


def test_adjust_without_provide_removes(monitor):
    monitor.add_pool_to_monitor(BASE, QUOTE)

    _next_analysis(monitor, _analysis(volume=0.0, should_provide=False))

    monitor.actions.remove_liquidity.assert_called_once_with(BASE, QUOTE, 100, WALLET)
    monitor.actions.adjust_position.assert_not_called()


def test_check_all_updates_last_check(monitor):
    monitor.add_pool_to_monitor(BASE, QUOTE)
    monitor._clock.advance(INTERVAL + 1)

    monitor.check_all()

    assert monitor.state.get(pool_key(BASE, QUOTE)).last_check == monitor._clock()


def test_amm_score_changes():
    assert amm_scores_changed({'raydium': 100}, {'raydium': 121})
    assert not amm_scores_changed({'raydium': 100}, {'raydium': 119})
    assert amm_scores_changed({'orca': 0}, {'orca': 5})
    assert not amm_scores_changed({'orca': 0}, {})
    assert amm_scores_changed({'orca': 10}, {})


def test_should_adjust_thresholds():
    old = _analysis()
    assert not should_adjust(old, copy.deepcopy(old))
    assert not should_adjust(old, _analysis(volatility=30.0))
    assert should_adjust(old, _analysis(volatility=30.1))
    assert should_adjust(old, _analysis(volume=95.0))
    assert should_adjust(old, _analysis(scores={'raydium': 70.0, 'orca': 50.0}))


def test_monitor_state_round_trip():
    pool = MonitoredPool(BASE, QUOTE, 1.0, _analysis(), 'raydium')
    state = MonitorState()
    key = state.put(pool)

    restored = MonitorState.from_dict(state.to_dict())

    assert key == pool_key(BASE, QUOTE)
    assert key in restored
    assert restored.get(key) == pool


def test_job_entry_persists_state(runtime):
    evaluator = MagicMock()
    evaluator.evaluate_pair.return_value = _analysis()
    state = SessionState()

    with patch('yields_fun.services.monitor.pool_monitor.build_token_pair_evaluator', return_value=evaluator):
        result = pool_monitor_job(runtime, Message({'baseTokenAddress': BASE, 'quoteTokenAddress': QUOTE}), state)
        again = pool_monitor_job(runtime, Message({'baseTokenAddress': BASE, 'quoteTokenAddress': QUOTE}), state)

    assert result == again == "Pool monitoring completed successfully"
    assert list(state.get(STATE_KEY)) == [pool_key(BASE, QUOTE)]
    # second run restores the pool from state; the interval has not elapsed
    assert evaluator.evaluate_pair.call_count == 1


def test_start_and_stop(monitor):
    monitor.check_interval = 0.01
    monitor.start()
    assert monitor.is_running()
    monitor.stop()
    assert not monitor.is_running()
