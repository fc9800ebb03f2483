"""Raydium CLM actions and the two-phase rebalance."""
from unittest.mock import MagicMock

import pytest

from yields_fun.errors import ActionError
from yields_fun.runtime import Message
from yields_fun.services.liquidity.raydium_clm_actions import (
    RaydiumClmActions, calculate_token_amounts, raydium_clm_actions
)
from yields_fun.services.liquidity.saga import RebalanceSaga, SagaState

WALLET = 'AgentWallet1111111111111111111111111111111'
BASE = 'So11111111111111111111111111111111111111112'
QUOTE = 'EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v'

POOL = {
    'id': 'pool-1',
    'mintA': {'address': BASE, 'symbol': 'SOL'},
    'mintB': {'address': QUOTE, 'symbol': 'USDC'},
    'price': 100.0,
    'tvl': 5_000_000,
    'feeRate': 0.0005,
    'config': {'tickSpacing': 10},
}
POSITION = {'poolId': 'pool-1', 'nftMint': 'nft-1', 'tickLower': -500, 'tickUpper': 500}


def _actions(positions=(POSITION,), open_results=None):
    """Actions over a mocked provider and sidecar.

    ``open_results`` is consumed one item per open-position call; exceptions
    are raised, dicts returned.
    """
    provider = MagicMock()
    provider.find_pool_by_mints.return_value = POOL
    sidecar = MagicMock()
    sidecar.get.return_value = {'positions': list(positions)}
    opens = iter(open_results or [{'transaction': 'open-tx'}] * 2)

    def post(path, payload):
        if path == '/build/decrease-liquidity':
            return {'transaction': 'decrease-tx', 'amountA': 2.0, 'amountB': 200.0}
        result = next(opens)
        if isinstance(result, Exception):
            raise result
        return result

    sidecar.post.side_effect = post
    return RaydiumClmActions(provider, sidecar), sidecar


def _open_calls(sidecar):
    return [c.args[1] for c in sidecar.post.call_args_list if c.args[0] == '/build/open-position']


def test_token_amount_split():
    assert calculate_token_amounts(100.0, 1000) == (5.0, 500)
    with pytest.raises(ActionError):
        calculate_token_amounts(0, 1000)


def test_add_liquidity_builds_open_position():
    actions, sidecar = _actions()

    result = actions.add_liquidity(BASE, QUOTE, -100, 100, 1000, WALLET)

    assert result['success'] is True
    assert (result['baseAmount'], result['quoteAmount']) == (5.0, 500)
    [payload] = _open_calls(sidecar)
    assert payload['tickLower'] == -100 and payload['tickUpper'] == 100
    assert payload['poolId'] == 'pool-1'


def test_add_liquidity_rejects_inverted_range_and_missing_wallet():
    actions, sidecar = _actions()
    assert actions.add_liquidity(BASE, QUOTE, 100, -100, 1000, WALLET)['success'] is False
    assert actions.add_liquidity(BASE, QUOTE, -100, 100, 1000, None) == {
        'success': False, 'error': "Agent wallet not found in state"
    }
    sidecar.post.assert_not_called()


def test_remove_liquidity_reports_amounts_and_old_range():
    actions, _ = _actions()

    result = actions.remove_liquidity(BASE, QUOTE, 100, WALLET)

    assert result['removedAmounts'] == {'baseAmount': 2.0, 'quoteAmount': 200.0}
    assert result['oldRange'] == [-500, 500]
    assert result['transactions'] == ['decrease-tx']


def test_pool_not_found():
    actions, _ = _actions()
    actions.provider.find_pool_by_mints.return_value = None
    assert actions.remove_liquidity(BASE, QUOTE, 50, WALLET)['error'] == "Pool not found"


def test_adjust_position_completes():
    actions, sidecar = _actions()

    result = actions.adjust_position(BASE, QUOTE, -200, 200, 1000, WALLET)

    assert result['success'] is True
    saga = result['saga']
    assert saga['state'] == 'completed'
    assert [h['state'] for h in saga['history']] == ['started', 'removed', 'completed']
    assert saga['oldRange'] == [-500, 500]
    assert saga['newRange'] == [-200, 200]
    assert len(_open_calls(sidecar)) == 1


def test_adjust_position_compensates_when_reopen_fails():
    actions, sidecar = _actions(open_results=[ActionError("slippage exceeded"), {'transaction': 'restore-tx'}])

    result = actions.adjust_position(BASE, QUOTE, -200, 200, 1000, WALLET)

    assert result['success'] is False
    assert result['error'] == "slippage exceeded"
    assert result['saga']['state'] == 'compensated'
    restore = _open_calls(sidecar)[-1]
    assert (restore['tickLower'], restore['tickUpper']) == (-500, 500)
    assert (restore['baseAmount'], restore['quoteAmount']) == (2.0, 200.0)


def test_adjust_position_fails_when_compensation_fails():
    actions, _ = _actions(open_results=[ActionError("slippage exceeded"), ActionError("sidecar down")])

    result = actions.adjust_position(BASE, QUOTE, -200, 200, 1000, WALLET)

    assert result['saga']['state'] == 'failed'
    assert result['saga']['error'] == "compensation failed: sidecar down"


def test_adjust_position_fails_before_removal_without_wallet():
    actions, sidecar = _actions()

    result = actions.adjust_position(BASE, QUOTE, -200, 200, 1000, None)

    assert result['saga']['state'] == 'failed'
    assert [h['state'] for h in result['saga']['history']] == ['started', 'failed']
    sidecar.post.assert_not_called()


def test_adjust_position_with_nothing_removed_is_compensated():
    actions, sidecar = _actions(positions=(), open_results=[ActionError("slippage exceeded")])

    result = actions.adjust_position(BASE, QUOTE, -200, 200, 1000, WALLET)

    assert result['saga']['state'] == 'compensated'
    assert result['saga']['history'][-1]['note'] == "nothing to restore"
    assert len(_open_calls(sidecar)) == 1


def test_finished_saga_rejects_transitions():
    saga = RebalanceSaga(BASE, QUOTE, (-1, 1), 10.0, clock=lambda: 0.0)
    saga.transition(SagaState.FAILED, error="boom")

    assert saga.finished
    with pytest.raises(ValueError):
        saga.transition(SagaState.COMPLETED)


def test_clm_entry_validates_command_parameters(runtime):
    message = Message({'command': 'addLiquidity', 'baseTokenAddress': BASE, 'quoteTokenAddress': QUOTE})
    assert raydium_clm_actions(runtime, message) == "Missing parameters for addLiquidity"
    assert raydium_clm_actions(runtime, Message({'command': 'addLiquidity'})) == "Missing required parameters"
    message = Message({'command': 'swap', 'baseTokenAddress': BASE, 'quoteTokenAddress': QUOTE})
    assert raydium_clm_actions(runtime, message) == "Unknown command"
