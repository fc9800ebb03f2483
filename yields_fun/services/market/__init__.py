#!/usr/bin/env python3
"""Market data clients: Birdeye, DexScreener, OX and the agent wallet."""

from .birdeye import (
    BirdeyeClient,
    calculate_security_score,
    calculate_volatility,
    determine_risk_level,
    generate_recommendation
)

from .dexscreener import DexScreenerClient, BestDexWeights
from .ox import OxClient
from .wallet import AgentWalletProvider, load_agent_keypair, agent_wallet_provider

__all__ = [
    'BirdeyeClient',
    'calculate_security_score',
    'calculate_volatility',
    'determine_risk_level',
    'generate_recommendation',
    'DexScreenerClient',
    'BestDexWeights',
    'OxClient',
    'AgentWalletProvider',
    'load_agent_keypair',
    'agent_wallet_provider'
]
