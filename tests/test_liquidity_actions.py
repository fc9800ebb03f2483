"""Orca, Meteora, LuLo, OX and Raydium farm actions."""
import json
from unittest.mock import MagicMock

import pytest
import requests

from conftest import make_response
from yields_fun.config import USDC_MINT
from yields_fun.errors import ActionError, MissingParameterError
from yields_fun.runtime import Message
from yields_fun.services.liquidity.lulo_actions import (
    LuloActions, deposit_lulo_action, resolve_mint, withdraw_lulo_action
)
from yields_fun.services.liquidity.meteora_dlmm_actions import (
    DlmmStrategy, MeteoraDlmmActions, RiskProfile, StrategyType, calculate_bin_range,
    execute_meteora_command, removal_bps
)
from yields_fun.services.liquidity.orca_actions import OrcaActions, execute_orca_command, liquidity_payload
from yields_fun.services.liquidity.ox_actions import OxActions, execute_ox_command
from yields_fun.services.liquidity.raydium_actions import create_raydium_farm, create_raydium_farm_action
from yields_fun.services.liquidity.sidecar import SidecarClient, require_params

WALLET = 'AgentWallet1111111111111111111111111111111'


# ── Orca ────────────────────────────────────────────────────────────────────

def test_orca_command_validation():
    sidecar = MagicMock()
    actions = OrcaActions(sidecar)

    assert execute_orca_command(actions, Message({'command': 'openPosition'}), None) == "Missing required parameters"
    assert execute_orca_command(actions, Message({'command': 'swap'}), WALLET) == "Unknown command"
    message = Message({'command': 'openPosition', 'whirlpoolAddress': 'wp-1'})
    assert execute_orca_command(actions, message, WALLET) == "Missing parameters for openPosition"
    sidecar.post.assert_not_called()


def test_orca_open_position_payload():
    sidecar = MagicMock()
    sidecar.post.return_value = {'transaction': 'tx', 'quote': {'tokenMaxA': '10'}}
    message = Message({
        'command': 'openPosition',
        'whirlpoolAddress': 'wp-1',
        'liquidityParam': {'tokenA': 1.5},
        'priceRange': {'lowerPrice': 90, 'upperPrice': 110},
        'slippageTolerance': 50,
    })

    result = json.loads(execute_orca_command(OrcaActions(sidecar), message, WALLET))

    assert result['transaction'] == 'tx'
    path, payload = sidecar.post.call_args.args
    assert path == '/build/open-position'
    assert payload['liquidity'] == {'tokenA': '1.5'}
    assert payload['slippageBps'] == 50
    assert (payload['lowerPrice'], payload['upperPrice']) == (90.0, 110.0)


def test_orca_rejects_inverted_range():
    message = Message({
        'command': 'openPosition',
        'whirlpoolAddress': 'wp-1',
        'liquidityParam': {'tokenA': 1},
        'priceRange': {'lowerPrice': 110, 'upperPrice': 90},
    })
    result = json.loads(execute_orca_command(OrcaActions(MagicMock()), message, WALLET))
    assert result['success'] is False


def test_orca_liquidity_param_needs_exactly_one_amount():
    with pytest.raises(ActionError):
        liquidity_payload({'tokenA': 1, 'tokenB': 2})
    with pytest.raises(ActionError):
        liquidity_payload({})
    assert liquidity_payload({'liquidity': 42}) == {'liquidity': '42'}


def test_orca_harvest_collects_fees_and_rewards():
    sidecar = MagicMock()
    sidecar.post.side_effect = [{'transaction': 'fees-tx', 'quote': 1}, {'transaction': 'rewards-tx', 'quote': 2}]

    result = OrcaActions(sidecar).harvest_position('mint-1', WALLET)

    assert result['transactions'] == ['fees-tx', 'rewards-tx']
    assert [c.args[0] for c in sidecar.post.call_args_list] == ['/build/collect-fees', '/build/collect-rewards']


# ── Meteora ─────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("profile,bin_step,expected_bins", [
    (RiskProfile.HIGH, 10, 20),
    (RiskProfile.HIGH, 100, 10),
    (RiskProfile.MEDIUM, 25, 50),
    (RiskProfile.MEDIUM, 100, 30),
    (RiskProfile.LOW, 1, 69),
])
def test_bin_range_bounds(profile, bin_step, expected_bins):
    strategy = calculate_bin_range(1000, bin_step, profile)
    assert strategy.max_bin_id - strategy.min_bin_id + 1 == expected_bins
    assert strategy.min_bin_id <= 1000 <= strategy.max_bin_id


def test_bin_range_centres_on_active_bin():
    strategy = calculate_bin_range(1000, 10, RiskProfile.HIGH, StrategyType.CURVE)
    assert strategy.to_dict() == {'minBinId': 990, 'maxBinId': 1009, 'strategyType': 'Curve'}


def test_removal_bps():
    assert removal_bps([1, 2, 3], 25) == [2500, 2500, 2500]
    with pytest.raises(ActionError):
        removal_bps([1], 0)
    with pytest.raises(ActionError):
        removal_bps([1], 101)


def test_strategy_from_dict_validation():
    assert DlmmStrategy.from_dict({'minBinId': 1, 'maxBinId': 5}).strategy_type == StrategyType.SPOT_BALANCED
    with pytest.raises(ActionError):
        DlmmStrategy.from_dict({'minBinId': 5, 'maxBinId': 1})
    with pytest.raises(ActionError):
        DlmmStrategy.from_dict({'minBinId': 1, 'maxBinId': 5, 'strategyType': 'Wide'})


def test_meteora_create_position_from_risk_profile():
    sidecar = MagicMock()
    sidecar.get.return_value = {'pool': {'activeBinId': 1000, 'binStep': 10}}
    sidecar.post.return_value = {'positionPubkey': 'pos-1', 'transaction': 'tx'}
    message = Message({'command': 'createPosition', 'poolAddress': 'pool-1',
                       'amountX': '1', 'amountY': '150', 'riskProfile': 'high'})

    result = json.loads(execute_meteora_command(MeteoraDlmmActions(sidecar), message, WALLET))

    assert result == {'success': True, 'positionId': 'pos-1', 'transaction': 'tx'}
    payload = sidecar.post.call_args.args[1]
    assert payload['strategy'] == {'minBinId': 990, 'maxBinId': 1009, 'strategyType': 'SpotBalanced'}
    assert payload['userWallet'] == WALLET


def test_meteora_remove_liquidity_per_bin():
    sidecar = MagicMock()
    sidecar.get.return_value = {'position': {'positionBinData': [{'binId': 5}, {'binId': 6}]}}
    sidecar.post.return_value = {'transaction': 'tx'}

    result = MeteoraDlmmActions(sidecar).remove_liquidity('pool-1', 'pos-1', 25, True, WALLET)

    assert result['message'] == "Liquidity removed successfully and position closed"
    payload = sidecar.post.call_args.args[1]
    assert payload['binIds'] == [5, 6]
    assert payload['liquiditiesBpsToRemove'] == [2500, 2500]
    assert payload['shouldClaimAndClose'] is True


def test_meteora_missing_parameters():
    actions = MeteoraDlmmActions(MagicMock())
    assert execute_meteora_command(actions, Message({'command': 'createPosition'}), WALLET) == \
        "Missing required parameters"
    message = Message({'command': 'createPosition', 'poolAddress': 'pool-1', 'amountX': '1', 'amountY': '2'})
    assert execute_meteora_command(actions, message, WALLET) == "Missing parameters for createPosition"


# ── LuLo ────────────────────────────────────────────────────────────────────

def test_resolve_mint():
    assert resolve_mint('usdc') == USDC_MINT
    assert resolve_mint(USDC_MINT) == USDC_MINT
    assert resolve_mint('BONK') is None


def test_lulo_validators(runtime):
    assert deposit_lulo_action.is_valid(runtime, Message({'amount': '100', 'token': 'USDC'}))
    assert not deposit_lulo_action.is_valid(runtime, Message({'amount': '0', 'token': 'USDC'}))
    assert not deposit_lulo_action.is_valid(runtime, Message({'amount': '10', 'token': 'BONK'}))
    assert withdraw_lulo_action.is_valid(runtime, Message({'amount': 'all', 'token': 'SOL'}))
    assert not withdraw_lulo_action.is_valid(runtime, Message({'amount': '-5', 'token': 'SOL'}))


def test_lulo_withdraw_all_body():
    session = MagicMock()
    session.request.return_value = make_response({'data': {'transactionMeta': [
        {'transaction': 'b64tx', 'protocol': 'kamino', 'totalDeposit': 100},
    ]}})

    metas = LuloActions('key', session=session).generate_withdraw_transaction('Owner111', USDC_MINT, 'all')

    assert [m.to_dict() for m in metas] == [{'transaction': 'b64tx', 'protocol': 'kamino', 'totalDeposit': 100.0}]
    kwargs = session.request.call_args.kwargs
    assert kwargs['json'] == {'owner': 'Owner111', 'mintAddress': USDC_MINT, 'withdrawAmount': "0", 'withdrawAll': True}
    assert kwargs['headers'] == {'x-wallet-pubkey': 'Owner111', 'x-api-key': 'key'}
    assert 'priorityFee' in kwargs['params']


def test_lulo_deposit_rejects_invalid_amount(runtime):
    result = deposit_lulo_action(runtime, Message({'amount': '-1', 'token': 'USDC'}))
    assert result.startswith("Invalid deposit parameters")


# ── OX ──────────────────────────────────────────────────────────────────────

def _ox(positions=None, max_leverage=20):
    client = MagicMock()
    client.get_positions.return_value = {'data': [{'positions': positions or []}]}
    client.get_max_leverage.return_value = max_leverage
    client.validate_position.return_value = (True, "")
    client.place_orders.return_value = {'success': True}
    return OxActions(client, clock=lambda: 1.0), client


def test_ox_leverage_is_capped():
    actions, client = _ox(max_leverage=20)

    actions.open_position('SOL-USD-SWAP-LIN', 'buy', 2, leverage=50)
    client.validate_position.assert_called_with('SOL-USD-SWAP-LIN', 2.0, 10)

    actions.open_position('SOL-USD-SWAP-LIN', 'buy', 2)
    client.validate_position.assert_called_with('SOL-USD-SWAP-LIN', 2.0, 3)

    actions, client = _ox(max_leverage=5)
    actions.open_position('SOL-USD-SWAP-LIN', 'sell', 2, leverage=8)
    client.validate_position.assert_called_with('SOL-USD-SWAP-LIN', 2.0, 5)
    [order] = client.place_orders.call_args.args[0]
    assert order['side'] == 'SELL'
    assert order['clientOrderId'] == '1000'


def test_ox_open_rejected_by_validation():
    actions, client = _ox()
    client.validate_position.return_value = (False, "No collateral available")
    with pytest.raises(ActionError):
        actions.open_position('SOL-USD-SWAP-LIN', 'buy', 2)
    client.place_orders.assert_not_called()


def test_ox_close_without_position():
    actions, client = _ox()
    message = Message({'command': 'closePosition', 'marketCode': 'SOL-USD-SWAP-LIN'})

    assert execute_ox_command(actions, message) == "No open position found for SOL-USD-SWAP-LIN"
    client.place_orders.assert_not_called()


def test_ox_close_and_modify_trade_the_difference():
    actions, client = _ox(positions=[{'marketCode': 'SOL-USD-SWAP-LIN', 'position': '-4'}])

    actions.close_position('SOL-USD-SWAP-LIN')
    [order] = client.place_orders.call_args.args[0]
    assert (order['side'], order['quantity']) == ('BUY', '4.0')

    assert actions.modify_position('SOL-USD-SWAP-LIN', -4) is None
    actions.modify_position('SOL-USD-SWAP-LIN', -6)
    [order] = client.place_orders.call_args.args[0]
    assert (order['side'], order['quantity']) == ('SELL', '2.0')


# ── Raydium farm ────────────────────────────────────────────────────────────

def test_create_farm_runs_seven_days():
    sidecar = MagicMock()
    sidecar.post.return_value = {'farmId': 'farm-1', 'txId': 'sig'}

    result = create_raydium_farm(sidecar, 'pool-1', 'mint-1', 1000, WALLET, clock=lambda: 100.0)

    assert result == {'success': True, 'farmId': 'farm-1', 'txId': 'sig'}
    [reward] = sidecar.post.call_args.args[1]['rewardInfos']
    assert reward['openTime'] == 100
    assert reward['endTime'] == 100 + 7 * 24 * 3600
    assert reward['perSecond'] == '1000'


def test_create_farm_failure_and_validation(runtime):
    sidecar = MagicMock()
    sidecar.post.side_effect = ActionError("Raydium sidecar request failed")
    assert create_raydium_farm(sidecar, 'pool-1', 'mint-1', 1000)['success'] is False

    assert not create_raydium_farm_action.is_valid(runtime, Message({'poolId': 'pool-1'}))
    assert json.loads(create_raydium_farm_action(runtime, Message({'poolId': 'pool-1'})))['success'] is False


def test_require_params_names_missing_keys():
    require_params({'marketCode': 'SOL-USD-SWAP-LIN', 'newQuantity': 0}, 'modifyPosition', 'marketCode', 'newQuantity')

    with pytest.raises(MissingParameterError) as exc_info:
        require_params(Message({'marketCode': ''}), 'closePosition', 'marketCode', 'side')
    assert str(exc_info.value) == "Missing parameters for closePosition"
    assert exc_info.value.missing == ['marketCode', 'side']


def test_sidecar_unwraps_rejections_and_reports_health():
    session = MagicMock()
    session.post.return_value = make_response({'success': False, 'error': "pool paused"})
    session.get.return_value = make_response({'status': 'ok'})
    sidecar = SidecarClient('http://localhost:5003/', 'Orca', session=session)

    with pytest.raises(ActionError, match="pool paused"):
        sidecar.post('/build/open-position', {})
    assert sidecar.check_health()
    assert session.get.call_args.args[0] == 'http://localhost:5003/health'

    session.get.side_effect = requests.ConnectionError("refused")
    assert not sidecar.check_health()
