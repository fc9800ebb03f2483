#!/usr/bin/env python3
"""Position actions: sidecar-built transactions for each venue."""

from .sidecar import SidecarClient
from .saga import RebalanceSaga, SagaState

from .raydium_clm_actions import RaydiumClmActions, raydium_clm_actions
from .raydium_actions import create_raydium_farm, create_raydium_farm_action
from .orca_actions import OrcaActions, orca_actions

from .meteora_dlmm_actions import (
    MeteoraDlmmActions,
    StrategyType,
    RiskProfile,
    calculate_bin_range,
    meteora_dlmm_actions
)

from .lulo_actions import LuloActions, deposit_lulo_action, withdraw_lulo_action
from .ox_actions import OxActions, ox_actions

__all__ = [
    'SidecarClient',
    'RebalanceSaga',
    'SagaState',
    'RaydiumClmActions',
    'raydium_clm_actions',
    'create_raydium_farm',
    'create_raydium_farm_action',
    'OrcaActions',
    'orca_actions',
    'MeteoraDlmmActions',
    'StrategyType',
    'RiskProfile',
    'calculate_bin_range',
    'meteora_dlmm_actions',
    'LuloActions',
    'deposit_lulo_action',
    'withdraw_lulo_action',
    'OxActions',
    'ox_actions'
]
