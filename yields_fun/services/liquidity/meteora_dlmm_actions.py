#!/usr/bin/env python3
"""
Meteora DLMM position actions.

Bin ranges are derived from a risk profile around the pool's active bin;
transactions are built by the Meteora sidecar (port 5002).
"""
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from yields_fun.config import METEORA_SIDECAR_URL
from yields_fun.errors import ActionError, MissingParameterError
from yields_fun.plugin_registry import PluginEntry
from yields_fun.runtime import resolve_wallet
from yields_fun.services.types import safe_int
from .sidecar import SidecarClient, failure, require_params

logger = logging.getLogger("yields_fun.actions")

MAX_BINS_PER_POSITION = 69


class StrategyType(Enum):
    """Liquidity distribution across the bin range."""
    SPOT_BALANCED = "SpotBalanced"   # uniform
    CURVE = "Curve"                  # concentrated at the active bin
    BID_ASK = "BidAsk"               # edge-heavy


class RiskProfile(Enum):
    HIGH = "high"       # tight range
    MEDIUM = "medium"
    LOW = "low"         # wide range


@dataclass(frozen=True)
class RiskConfig:
    range_pct: float    # 0.075 = 7.5% total width
    min_bins: int
    max_bins: int


RISK_CONFIGS: Dict[RiskProfile, RiskConfig] = {
    RiskProfile.HIGH: RiskConfig(range_pct=0.075, min_bins=10, max_bins=20),
    RiskProfile.MEDIUM: RiskConfig(range_pct=0.20, min_bins=30, max_bins=50),
    RiskProfile.LOW: RiskConfig(range_pct=0.50, min_bins=60, max_bins=69),
}


@dataclass
class DlmmStrategy:
    min_bin_id: int
    max_bin_id: int
    strategy_type: StrategyType = StrategyType.SPOT_BALANCED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'minBinId': self.min_bin_id,
            'maxBinId': self.max_bin_id,
            'strategyType': self.strategy_type.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DlmmStrategy':
        try:
            strategy_type = StrategyType(data.get('strategyType', StrategyType.SPOT_BALANCED.value))
        except ValueError as e:
            raise ActionError(f"Unknown strategy type: {data.get('strategyType')}") from e
        if 'minBinId' not in data or 'maxBinId' not in data:
            raise ActionError("strategy requires minBinId and maxBinId")
        strategy = cls(int(data['minBinId']), int(data['maxBinId']), strategy_type)
        if strategy.min_bin_id > strategy.max_bin_id:
            raise ActionError("minBinId must not exceed maxBinId")
        return strategy


def calculate_bin_range(active_bin_id: int, bin_step: int, risk_profile: RiskProfile,
                        strategy_type: StrategyType = StrategyType.SPOT_BALANCED) -> DlmmStrategy:
    """
    Bin range centred on the active bin for a risk profile.

    Each bin is ``bin_step`` basis points wide; the count is clamped to the
    profile's bounds and to the per-position maximum.
    """
    if bin_step <= 0:
        raise ActionError("binStep must be positive")
    config = RISK_CONFIGS[risk_profile]
    bins_for_range = int((config.range_pct * 10000) / bin_step)
    num_bins = max(config.min_bins, min(bins_for_range, config.max_bins))
    num_bins = min(num_bins, MAX_BINS_PER_POSITION)

    half_bins = num_bins // 2
    return DlmmStrategy(
        min_bin_id=active_bin_id - half_bins,
        max_bin_id=active_bin_id + (num_bins - half_bins - 1),
        strategy_type=strategy_type,
    )


def removal_bps(bin_ids: List[int], percentage: float) -> List[int]:
    """Per-bin liquidity to remove in basis points (percentage * 100)."""
    if not 0 < percentage <= 100:
        raise ActionError("percentage must be in (0, 100]")
    return [int(percentage * 100)] * len(bin_ids)


class MeteoraDlmmActions:
    def __init__(self, sidecar: Optional[SidecarClient] = None):
        self.sidecar = sidecar or SidecarClient(METEORA_SIDECAR_URL, 'Meteora')

    def resolve_strategy(self, pool_address: str, strategy: Optional[Dict[str, Any]] = None,
                         risk_profile: Optional[str] = None) -> DlmmStrategy:
        """Explicit strategy wins; otherwise derive one from the risk profile."""
        if strategy:
            return DlmmStrategy.from_dict(strategy)
        try:
            profile = RiskProfile(risk_profile or RiskProfile.MEDIUM.value)
        except ValueError as e:
            raise ActionError(f"Unknown risk profile: {risk_profile}") from e
        pool = self.sidecar.get(f"/pool/{pool_address}").get('pool') or {}
        return calculate_bin_range(safe_int(pool.get('activeBinId')), safe_int(pool.get('binStep')), profile)

    def create_position(self, pool_address: str, strategy: DlmmStrategy, amount_x: Any, amount_y: Any,
                        wallet: Optional[str]) -> Dict[str, Any]:
        try:
            if not wallet:
                raise ActionError("Agent wallet not found in state")
            result = self.sidecar.post('/build/create-position', {
                'poolAddress': pool_address,
                'userWallet': wallet,
                'totalXAmount': str(amount_x),
                'totalYAmount': str(amount_y),
                'strategy': strategy.to_dict(),
            })
        except ActionError as e:
            logger.error(f"[Meteora] Error creating DLMM position: {e}")
            return failure(e)
        logger.info(f"[Meteora] Position built on {pool_address} bins [{strategy.min_bin_id}, {strategy.max_bin_id}]")
        return {
            'success': True,
            'positionId': result.get('positionPubkey') or result.get('positionId'),
            'transaction': result.get('transaction'),
        }

    def add_liquidity(self, pool_address: str, position_address: str, strategy: DlmmStrategy,
                      amount_x: Any, amount_y: Any, wallet: Optional[str]) -> Dict[str, Any]:
        try:
            if not wallet:
                raise ActionError("Agent wallet not found in state")
            result = self.sidecar.post('/build/add-liquidity', {
                'poolAddress': pool_address,
                'positionPubkey': position_address,
                'userWallet': wallet,
                'totalXAmount': str(amount_x),
                'totalYAmount': str(amount_y),
                'strategy': strategy.to_dict(),
            })
        except ActionError as e:
            logger.error(f"[Meteora] Error adding liquidity to DLMM position: {e}")
            return failure(e)
        return {'success': True, 'transaction': result.get('transaction')}

    def position_bin_ids(self, pool_address: str, position_address: str) -> List[int]:
        position = self.sidecar.get(f"/position/{pool_address}/{position_address}").get('position')
        if not position:
            raise ActionError("Position not found")
        return [safe_int(b.get('binId')) for b in position.get('positionBinData', [])]

    def remove_liquidity(self, pool_address: str, position_address: str, percentage: float,
                         should_claim_and_close: bool, wallet: Optional[str]) -> Dict[str, Any]:
        try:
            if not wallet:
                raise ActionError("Agent wallet not found in state")
            bin_ids = self.position_bin_ids(pool_address, position_address)
            result = self.sidecar.post('/build/remove-liquidity', {
                'poolAddress': pool_address,
                'positionPubkey': position_address,
                'userWallet': wallet,
                'binIds': bin_ids,
                'liquiditiesBpsToRemove': removal_bps(bin_ids, percentage),
                'shouldClaimAndClose': should_claim_and_close,
            })
        except ActionError as e:
            logger.error(f"[Meteora] Error removing liquidity from DLMM position: {e}")
            return failure(e)
        closed = " and position closed" if should_claim_and_close else ""
        return {
            'success': True,
            'message': f"Liquidity removed successfully{closed}",
            'transactions': result.get('transactions') or [result.get('transaction')],
        }

    def claim_rewards(self, pool_address: str, position_address: str, wallet: Optional[str]) -> Dict[str, Any]:
        try:
            if not wallet:
                raise ActionError("Agent wallet not found in state")
            result = self.sidecar.post('/build/claim-fees', {
                'poolAddress': pool_address,
                'positionPubkey': position_address,
                'userWallet': wallet,
                'includeRewards': True,
            })
        except ActionError as e:
            logger.error(f"[Meteora] Error claiming DLMM rewards: {e}")
            return failure(e)
        return {'success': True, 'message': "Rewards claimed successfully", 'transaction': result.get('transaction')}


def execute_meteora_command(actions: MeteoraDlmmActions, message, wallet: Optional[str]) -> str:
    command = message.get("command")
    pool_address = message.get("poolAddress")
    if not command or not pool_address:
        return "Missing required parameters"

    try:
        if command == "createPosition":
            require_params(message, command, "amountX", "amountY")
            if not (message.get("strategy") or message.get("riskProfile")):
                raise MissingParameterError("Missing parameters for createPosition", ["strategy", "riskProfile"])
            amount_x, amount_y = message.get("amountX"), message.get("amountY")
            strategy = actions.resolve_strategy(pool_address, message.get("strategy"), message.get("riskProfile"))
            result = actions.create_position(pool_address, strategy, amount_x, amount_y, wallet)

        elif command == "addLiquidity":
            require_params(message, command, "positionAddress", "strategy", "amountX", "amountY")
            position_address = message.get("positionAddress")
            amount_x, amount_y = message.get("amountX"), message.get("amountY")
            strategy = DlmmStrategy.from_dict(message.get("strategy"))
            result = actions.add_liquidity(pool_address, position_address, strategy, amount_x, amount_y, wallet)

        elif command == "removeLiquidity":
            require_params(message, command, "positionAddress")
            position_address = message.get("positionAddress")
            percentage = float(message.get("percentage") or 100)
            result = actions.remove_liquidity(pool_address, position_address, percentage,
                                              bool(message.get("shouldClose")), wallet)

        elif command == "claimRewards":
            require_params(message, command, "positionAddress")
            position_address = message.get("positionAddress")
            result = actions.claim_rewards(pool_address, position_address, wallet)

        else:
            return "Unknown command"
    except MissingParameterError as e:
        return str(e)
    except ActionError as e:
        logger.error(f"[Meteora] Error executing {command}: {e}")
        result = failure(e)
    return json.dumps(result)


def _execute_meteora(runtime, message, state=None) -> str:
    try:
        sidecar = SidecarClient(runtime.get_setting("METEORA_SIDECAR_URL") or METEORA_SIDECAR_URL, 'Meteora')
        return execute_meteora_command(MeteoraDlmmActions(sidecar), message, resolve_wallet(runtime, state))
    except Exception as e:
        logger.error(f"[Meteora] Error executing Meteora DLMM action: {e}")
        return json.dumps(failure(e))


meteora_dlmm_actions = PluginEntry(
    name='METEORA_DLMM',
    kind='action',
    description='Create, fund, withdraw and claim Meteora DLMM positions',
    handler=_execute_meteora,
    similes=('METEORA_LIQUIDITY', 'DLMM_POSITION'),
)
