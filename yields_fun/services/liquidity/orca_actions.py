#!/usr/bin/env python3
"""
Orca Whirlpool position actions.

Every command is built by the Orca sidecar (port 5003), which returns the
quote and unsigned transaction for the agent wallet.
"""
import json
import logging
from typing import Any, Dict, Optional

from yields_fun.config import ORCA_SIDECAR_URL
from yields_fun.errors import ActionError, MissingParameterError
from yields_fun.plugin_registry import PluginEntry
from yields_fun.runtime import resolve_wallet
from .sidecar import SidecarClient, failure, require_params

logger = logging.getLogger("yields_fun.actions")

DEFAULT_SLIPPAGE_BPS = 100


def liquidity_payload(liquidity_param: Dict[str, Any]) -> Dict[str, str]:
    """Normalise {tokenA|tokenB|liquidity} amounts to strings for the sidecar."""
    if not isinstance(liquidity_param, dict):
        raise ActionError("liquidityParam must be an object")
    payload = {k: str(v) for k, v in liquidity_param.items()
               if k in ('tokenA', 'tokenB', 'liquidity') and v is not None}
    if len(payload) != 1:
        raise ActionError("liquidityParam needs exactly one of tokenA, tokenB or liquidity")
    return payload


class OrcaActions:
    def __init__(self, sidecar: Optional[SidecarClient] = None):
        self.sidecar = sidecar or SidecarClient(ORCA_SIDECAR_URL, 'Orca')

    def open_position(self, whirlpool: str, liquidity_param: Dict[str, Any], price_range: Dict[str, Any],
                      slippage_bps: int, wallet: str) -> Dict[str, Any]:
        lower = float(price_range.get('lowerPrice', 0))
        upper = float(price_range.get('upperPrice', 0))
        if lower <= 0 or upper <= lower:
            raise ActionError("priceRange requires 0 < lowerPrice < upperPrice")
        return self.sidecar.post('/build/open-position', {
            'whirlpool': whirlpool,
            'wallet': wallet,
            'liquidity': liquidity_payload(liquidity_param),
            'lowerPrice': lower,
            'upperPrice': upper,
            'slippageBps': slippage_bps,
        })

    def open_full_range_position(self, whirlpool: str, liquidity_param: Dict[str, Any],
                                 slippage_bps: int, wallet: str) -> Dict[str, Any]:
        return self.sidecar.post('/build/open-position', {
            'whirlpool': whirlpool,
            'wallet': wallet,
            'liquidity': liquidity_payload(liquidity_param),
            'fullRange': True,
            'slippageBps': slippage_bps,
        })

    def increase_liquidity(self, position_mint: str, liquidity_param: Dict[str, Any],
                           slippage_bps: int, wallet: str) -> Dict[str, Any]:
        return self.sidecar.post('/build/increase-liquidity', {
            'positionMint': position_mint,
            'wallet': wallet,
            'liquidity': liquidity_payload(liquidity_param),
            'slippageBps': slippage_bps,
        })

    def decrease_liquidity(self, position_mint: str, liquidity_param: Dict[str, Any],
                           slippage_bps: int, wallet: str) -> Dict[str, Any]:
        return self.sidecar.post('/build/decrease-liquidity', {
            'positionMint': position_mint,
            'wallet': wallet,
            'liquidity': liquidity_payload(liquidity_param),
            'slippageBps': slippage_bps,
        })

    def harvest_position(self, position_mint: str, wallet: str) -> Dict[str, Any]:
        fees = self.sidecar.post('/build/collect-fees', {'positionMint': position_mint, 'wallet': wallet})
        rewards = self.sidecar.post('/build/collect-rewards', {'positionMint': position_mint, 'wallet': wallet})
        return {
            'feesQuote': fees.get('quote'),
            'rewardsQuote': rewards.get('quote'),
            'transactions': [fees.get('transaction'), rewards.get('transaction')],
        }

    def close_position(self, position_mint: str, slippage_bps: int, wallet: str) -> Dict[str, Any]:
        return self.sidecar.post('/build/close-position', {
            'positionMint': position_mint,
            'wallet': wallet,
            'slippageBps': slippage_bps,
        })


# command -> (required message fields, callable(actions, message, slippage, wallet))
COMMANDS = {
    'openPosition': (
        ('whirlpoolAddress', 'liquidityParam', 'priceRange'),
        lambda a, m, s, w: a.open_position(m.get('whirlpoolAddress'), m.get('liquidityParam'),
                                           m.get('priceRange'), s, w),
    ),
    'openFullRangePosition': (
        ('whirlpoolAddress', 'liquidityParam'),
        lambda a, m, s, w: a.open_full_range_position(m.get('whirlpoolAddress'), m.get('liquidityParam'), s, w),
    ),
    'increaseLiquidity': (
        ('positionMint', 'liquidityParam'),
        lambda a, m, s, w: a.increase_liquidity(m.get('positionMint'), m.get('liquidityParam'), s, w),
    ),
    'decreaseLiquidity': (
        ('positionMint', 'liquidityParam'),
        lambda a, m, s, w: a.decrease_liquidity(m.get('positionMint'), m.get('liquidityParam'), s, w),
    ),
    'harvestPosition': (
        ('positionMint',),
        lambda a, m, s, w: a.harvest_position(m.get('positionMint'), w),
    ),
    'closePosition': (
        ('positionMint',),
        lambda a, m, s, w: a.close_position(m.get('positionMint'), s, w),
    ),
}


def execute_orca_command(actions: OrcaActions, message, wallet: Optional[str]) -> str:
    command = message.get("command")
    if not command or not wallet:
        return "Missing required parameters"
    if command not in COMMANDS:
        return "Unknown command"

    required, run = COMMANDS[command]
    try:
        require_params(message, command, *required)
    except MissingParameterError as e:
        return str(e)

    slippage = int(message.get("slippageTolerance") or DEFAULT_SLIPPAGE_BPS)
    try:
        result = run(actions, message, slippage, wallet)
    except ActionError as e:
        logger.error(f"[Orca] Error executing {command}: {e}")
        return json.dumps(failure(e))
    logger.info(f"[Orca] {command} built for {wallet}")
    return json.dumps(result)


def _execute_orca(runtime, message, state=None) -> str:
    try:
        sidecar = SidecarClient(runtime.get_setting("ORCA_SIDECAR_URL") or ORCA_SIDECAR_URL, 'Orca')
        return execute_orca_command(OrcaActions(sidecar), message, resolve_wallet(runtime, state))
    except Exception as e:
        logger.error(f"[Orca] Error executing Orca action: {e}")
        return json.dumps(failure(e))


orca_actions = PluginEntry(
    name='ORCA_WHIRLPOOL',
    kind='action',
    description='Open, resize, harvest and close Orca Whirlpool positions',
    handler=_execute_orca,
    similes=('ORCA_LIQUIDITY', 'ORCA_POSITION'),
)
