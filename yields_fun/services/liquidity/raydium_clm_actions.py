#!/usr/bin/env python3
"""
Raydium CLMM position actions.

Pools are resolved through the Raydium API; transactions are built by the
Raydium sidecar. adjust_position runs as a two-phase saga with compensation.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from yields_fun.config import RAYDIUM_SIDECAR_URL
from yields_fun.errors import ActionError, FetchError, MissingParameterError, ProviderError
from yields_fun.plugin_registry import PluginEntry
from yields_fun.runtime import resolve_wallet
from yields_fun.services.types import safe_float, safe_int
from yields_fun.services.yield_hunter.raydium import RaydiumPoolState, RaydiumProvider
from .saga import RebalanceSaga, SagaState
from .sidecar import SidecarClient, failure, require_params

logger = logging.getLogger("yields_fun.actions")

RANGE_PARAMS = ("lowerTick", "upperTick", "amountUsd")


def calculate_token_amounts(price: float, amount_usd: float) -> Tuple[float, float]:
    """Split a USD amount evenly: base = usd / (2 * price), quote = usd / 2."""
    if price <= 0:
        raise ActionError("Pool price unavailable")
    return amount_usd / (2 * price), amount_usd / 2


class RaydiumClmActions:
    def __init__(self, provider: RaydiumProvider, sidecar: Optional[SidecarClient] = None):
        self.provider = provider
        self.sidecar = sidecar or SidecarClient(RAYDIUM_SIDECAR_URL, 'Raydium')

    def get_pool(self, base_address: str, quote_address: str) -> RaydiumPoolState:
        try:
            raw = self.provider.find_pool_by_mints(base_address, quote_address)
        except (FetchError, ProviderError, requests.RequestException) as e:
            raise ActionError(f"Pool lookup failed: {e}") from e
        if not raw:
            raise ActionError("Pool not found")
        return RaydiumProvider.pool_state_from_raw(raw)

    def _open_position(self, pool: RaydiumPoolState, lower_tick: int, upper_tick: int,
                       base_amount: float, quote_amount: float, wallet: str) -> Dict[str, Any]:
        return self.sidecar.post('/build/open-position', {
            'poolId': pool.id,
            'wallet': wallet,
            'tickLower': lower_tick,
            'tickUpper': upper_tick,
            'baseAmount': base_amount,
            'quoteAmount': quote_amount,
            'otherAmountThreshold': 0,
        })

    def add_liquidity(self, base_address: str, quote_address: str, lower_tick: int, upper_tick: int,
                      amount_usd: float, wallet: Optional[str]) -> Dict[str, Any]:
        try:
            if not wallet:
                raise ActionError("Agent wallet not found in state")
            if lower_tick >= upper_tick:
                raise ActionError("lowerTick must be below upperTick")
            pool = self.get_pool(base_address, quote_address)
            base_amount, quote_amount = calculate_token_amounts(pool.price, amount_usd)
            result = self._open_position(pool, lower_tick, upper_tick, base_amount, quote_amount, wallet)
            logger.info(f"[Raydium] Open position built for {pool.id} [{lower_tick}, {upper_tick}]")
            return {
                'success': True,
                'message': "Liquidity position opened successfully",
                'transaction': result.get('transaction'),
                'baseAmount': base_amount,
                'quoteAmount': quote_amount,
            }
        except ActionError as e:
            logger.error(f"[Raydium] Error adding liquidity: {e}")
            return failure(e)

    def _owner_positions(self, pool: RaydiumPoolState, wallet: str) -> List[Dict[str, Any]]:
        data = self.sidecar.get(f"/positions/{wallet}", params={'poolId': pool.id})
        return [p for p in data.get('positions', []) if p.get('poolId', pool.id) == pool.id]

    def remove_liquidity(self, base_address: str, quote_address: str, percentage: float,
                         wallet: Optional[str]) -> Dict[str, Any]:
        try:
            if not wallet:
                raise ActionError("Agent wallet not found in state")
            if not 0 < percentage <= 100:
                raise ActionError("percentage must be in (0, 100]")
            pool = self.get_pool(base_address, quote_address)

            transactions = []
            removed = {'baseAmount': 0.0, 'quoteAmount': 0.0}
            old_range = None
            for position in self._owner_positions(pool, wallet):
                result = self.sidecar.post('/build/decrease-liquidity', {
                    'poolId': pool.id,
                    'wallet': wallet,
                    'positionId': position.get('nftMint') or position.get('positionId'),
                    'percentage': percentage,
                    'amountMinA': 0,
                    'amountMinB': 0,
                })
                transactions.append(result.get('transaction'))
                removed['baseAmount'] += safe_float(result.get('amountA'))
                removed['quoteAmount'] += safe_float(result.get('amountB'))
                if old_range is None and 'tickLower' in position:
                    old_range = (safe_int(position.get('tickLower')), safe_int(position.get('tickUpper')))

            logger.info(f"[Raydium] Decrease built for {len(transactions)} position(s) in {pool.id}")
            return {
                'success': True,
                'message': "Liquidity removed successfully",
                'transactions': transactions,
                'removedAmounts': removed,
                'oldRange': list(old_range) if old_range else None,
            }
        except ActionError as e:
            logger.error(f"[Raydium] Error removing liquidity: {e}")
            return failure(e)

    def _compensate(self, saga: RebalanceSaga, wallet: str) -> None:
        if not saga.has_funds_to_restore or saga.old_range is None:
            saga.transition(SagaState.COMPENSATED, note="nothing to restore")
            return
        try:
            pool = self.get_pool(saga.base_address, saga.quote_address)
            self._open_position(
                pool, saga.old_range[0], saga.old_range[1],
                saga.removed_amounts.get('baseAmount', 0.0),
                saga.removed_amounts.get('quoteAmount', 0.0),
                wallet,
            )
            saga.transition(SagaState.COMPENSATED, restoredRange=list(saga.old_range))
        except ActionError as e:
            logger.error(f"[Raydium] Compensation failed: {e}")
            saga.transition(SagaState.FAILED, error=f"compensation failed: {e}")

    def adjust_position(self, base_address: str, quote_address: str, new_lower_tick: int,
                        new_upper_tick: int, target_amount_usd: float,
                        wallet: Optional[str]) -> Dict[str, Any]:
        """
        Move liquidity to a new range.

        Phase 1 removes 100% and records what came out; phase 2 opens the new
        range. When phase 2 fails the removed amounts are re-deposited at the
        old range and the saga ends COMPENSATED (or FAILED if that fails too).
        """
        saga = RebalanceSaga(base_address, quote_address, (new_lower_tick, new_upper_tick), target_amount_usd)

        removed = self.remove_liquidity(base_address, quote_address, 100, wallet)
        if not removed['success']:
            saga.transition(SagaState.FAILED, error=removed['error'])
            return {'success': False, 'error': removed['error'], 'saga': saga.to_dict()}
        old_range = tuple(removed['oldRange']) if removed.get('oldRange') else None
        saga.mark_removed(old_range, removed['removedAmounts'])

        added = self.add_liquidity(base_address, quote_address, new_lower_tick, new_upper_tick,
                                   target_amount_usd, wallet)
        if added['success']:
            saga.transition(SagaState.COMPLETED)
            return {'success': True, 'message': "Position adjusted successfully", 'saga': saga.to_dict()}

        saga.error = added['error']
        self._compensate(saga, wallet)
        return {'success': False, 'error': added['error'], 'saga': saga.to_dict()}


def _execute_clm(runtime, message, state=None) -> str:
    try:
        command = message.get("command")
        base_address = message.get("baseTokenAddress")
        quote_address = message.get("quoteTokenAddress")
        if not command or not base_address or not quote_address:
            return "Missing required parameters"

        actions = RaydiumClmActions(RaydiumProvider(runtime.cache_manager))
        wallet = resolve_wallet(runtime, state)

        if command == "addLiquidity":
            require_params(message, command, *RANGE_PARAMS)
            result = actions.add_liquidity(
                base_address, quote_address,
                int(message.get("lowerTick")), int(message.get("upperTick")),
                float(message.get("amountUsd")), wallet,
            )
        elif command == "removeLiquidity":
            percentage = float(message.get("percentage") or 100)
            result = actions.remove_liquidity(base_address, quote_address, percentage, wallet)
        elif command == "adjustPosition":
            require_params(message, command, *RANGE_PARAMS)
            result = actions.adjust_position(
                base_address, quote_address,
                int(message.get("lowerTick")), int(message.get("upperTick")),
                float(message.get("amountUsd")), wallet,
            )
        else:
            return "Unknown command"
        return json.dumps(result)
    except MissingParameterError as e:
        return str(e)
    except Exception as e:
        logger.error(f"[Raydium] Error in Raydium CLM actions: {e}")
        return "Failed to execute CLM action"


raydium_clm_actions = PluginEntry(
    name='RAYDIUM_CLM',
    kind='action',
    description='Open, close and rebalance Raydium concentrated liquidity positions',
    handler=_execute_clm,
    similes=('RAYDIUM_LIQUIDITY', 'ADJUST_RAYDIUM_POSITION'),
)
