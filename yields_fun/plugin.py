#!/usr/bin/env python3
"""The yields-fun plugin: every provider, action, evaluator and job it exposes."""
from yields_fun.plugin_registry import PluginRegistry
from yields_fun.services.yield_hunter import (
    raydium_provider,
    orca_provider,
    meteora_provider,
    marinade_provider,
    lido_provider,
    jpool_provider,
    lulo_provider,
    yield_provider
)
from yields_fun.services.market import agent_wallet_provider
from yields_fun.services.evaluators import (
    token_pair_evaluator,
    clm_opportunity_evaluator,
    yield_opportunity_evaluator
)
from yields_fun.services.liquidity import (
    raydium_clm_actions,
    create_raydium_farm_action,
    orca_actions,
    meteora_dlmm_actions,
    deposit_lulo_action,
    withdraw_lulo_action,
    ox_actions
)
from yields_fun.services.monitor import pool_monitor_job

PROVIDERS = (
    raydium_provider,
    orca_provider,
    meteora_provider,
    marinade_provider,
    lido_provider,
    jpool_provider,
    lulo_provider,
    yield_provider,
    agent_wallet_provider,
)

ACTIONS = (
    deposit_lulo_action,
    withdraw_lulo_action,
    raydium_clm_actions,
    create_raydium_farm_action,
    orca_actions,
    meteora_dlmm_actions,
    ox_actions,
)

EVALUATORS = (
    token_pair_evaluator,
    clm_opportunity_evaluator,
    yield_opportunity_evaluator,
)

JOBS = (
    pool_monitor_job,
)


def build_plugin() -> PluginRegistry:
    registry = PluginRegistry("yields-fun", "Solana yield discovery, evaluation and position management")
    for entry in PROVIDERS + ACTIONS + EVALUATORS + JOBS:
        registry.register(entry)
    return registry


yields_fun_plugin = build_plugin()
