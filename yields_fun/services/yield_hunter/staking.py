#!/usr/bin/env python3
"""
Liquid staking providers: Marinade, Lido and JPool.

No public stake-state feed is wired in yet, so each protocol serves the
illustrative stake and validator figures below. Opportunities built from
them are flagged with a warning the first time they are produced.
"""
import logging
from typing import Any, Dict, List, Tuple

from yields_fun.plugin_registry import PluginEntry
from yields_fun.services.risk import (
    JPOOL_POOL_RISK, JPOOL_VALIDATOR_RISK,
    LIDO_POOL_RISK, LIDO_VALIDATOR_RISK,
    MARINADE_POOL_RISK, MARINADE_VALIDATOR_RISK,
    RiskTable, staking_pool_metrics,
)
from yields_fun.services.types import OpportunityType, YieldOpportunity, safe_float
from .base_provider import YieldProvider, format_opportunities, rpc_url_from

logger = logging.getLogger("yields_fun.staking")

PLACEHOLDER_VOTE_ACCOUNT = "vote111111111111111111111111111111111111111"

MARINADE_STATE_ID = "8szGkuLTAux9XMgZ2vtY39jVSowEcpBfFfD8hXSEqdGC"
LIDO_STATE_ID = "49Yi1TKkNyYjPAFdR9LBvoHcUjuPX4Df5T5yv39w2XTn"
JPOOL_STATE_ID = "JPooLSTAkxqzGvW8tWrJkPRGLB6w8HifFvqUPdYnNPk"

MARINADE_DEFAULT_STAKE_DATA = {
    'totalStaked': 1_000_000,
    'apy': 6.5,
    'validatorCount': 100,
    'totalValidators': 150,
}
MARINADE_DEFAULT_VALIDATORS = [
    {'voteAccount': PLACEHOLDER_VOTE_ACCOUNT, 'score': 90, 'activeStake': 100_000,
     'commission': 5, 'apy': 7.0},
]

LIDO_DEFAULT_STAKE_DATA = {
    'totalStaked': 1_000_000,
    'apy': 7.2,
    'validatorCount': 80,
    'totalValidators': 100,
    'stSOLSupply': 950_000,
    'exchangeRate': 1.05,
}
LIDO_DEFAULT_VALIDATORS = [
    {'voteAccount': PLACEHOLDER_VOTE_ACCOUNT, 'score': 95, 'activeStake': 150_000,
     'commission': 3, 'apy': 7.5, 'performance': 99.9},
]

JPOOL_DEFAULT_STAKE_DATA = {
    'totalStaked': 800_000,
    'apy': 7.8,
    'validatorCount': 50,
    'totalValidators': 70,
    'jSOLSupply': 750_000,
    'exchangeRate': 1.06,
    'rewardsPerEpoch': 1000,
}
JPOOL_DEFAULT_VALIDATORS = [
    {'voteAccount': PLACEHOLDER_VOTE_ACCOUNT, 'score': 92, 'activeStake': 120_000,
     'commission': 4, 'apy': 8.1, 'performance': 99.5, 'uptime': 99.8, 'epochsActive': 100},
]


class StakingProvider(YieldProvider):
    """Shared pool + validator opportunity logic for liquid staking protocols."""

    state_address = ''
    tokens: Tuple[str, ...] = ('SOL',)
    pool_risk: RiskTable
    validator_risk: RiskTable
    default_stake_data: Dict[str, Any] = {}
    default_validators: List[Dict[str, Any]] = []

    _placeholder_warned = set()

    @property
    def opportunities_cache_key(self) -> str:
        return f"{self.protocol_name.lower()}_staking_opportunities"

    def fetch_stake_data(self) -> Dict[str, Any]:
        self._warn_placeholder()
        return dict(self.default_stake_data)

    def fetch_validators(self) -> List[Dict[str, Any]]:
        self._warn_placeholder()
        return [dict(v) for v in self.default_validators]

    def _warn_placeholder(self):
        if self.protocol_name not in StakingProvider._placeholder_warned:
            StakingProvider._placeholder_warned.add(self.protocol_name)
            logger.warning(f"[{self.protocol_name}] Using placeholder stake data, figures are illustrative")

    def calculate_pool_risk(self, stake_data: Dict[str, Any], validators: List[Dict[str, Any]]) -> float:
        return self.pool_risk.score(staking_pool_metrics(stake_data, validators))

    def calculate_validator_risk(self, validator: Dict[str, Any]) -> float:
        return self.validator_risk.score(validator)

    def get_validator_metrics(self) -> List[Dict[str, Any]]:
        return [
            {**validator, 'risk': self.calculate_validator_risk(validator)}
            for validator in self.fetch_validators()
        ]

    def get_yield_opportunities(self) -> List[YieldOpportunity]:
        cached = self.get_cached_opportunities(self.opportunities_cache_key)
        if cached is not None:
            return cached

        stake_data = self.fetch_stake_data()
        validators = self.fetch_validators()
        pool_apy = safe_float(stake_data.get('apy'))

        opportunities = [YieldOpportunity.create(
            protocol=self.protocol_name,
            type=OpportunityType.STAKING,
            apy=pool_apy,
            tvl=safe_float(stake_data.get('totalStaked')),
            risk=self.calculate_pool_risk(stake_data, validators),
            tokens=list(self.tokens),
            address=self.state_address,
            description=(f"{self.protocol_name} liquid staking with "
                         f"{stake_data.get('validatorCount', 0)} active validators"),
        )]

        for validator in validators:
            if safe_float(validator.get('apy')) <= pool_apy:
                continue
            opportunities.append(YieldOpportunity.create(
                protocol=self.protocol_name,
                type=OpportunityType.STAKING,
                apy=safe_float(validator.get('apy')),
                tvl=safe_float(validator.get('activeStake')),
                risk=self.calculate_validator_risk(validator),
                tokens=['SOL'],
                address=validator.get('voteAccount', ''),
                description=(f"{self.protocol_name} validator staking with "
                             f"{validator.get('commission', 0)}% commission"),
            ))

        self.cache_opportunities(self.opportunities_cache_key, opportunities)
        return opportunities

    def get_formatted_staking_report(self) -> str:
        return format_opportunities(f"🌊 {self.protocol_name} Staking Opportunities",
                                    self.get_yield_opportunities())


class MarinadeProvider(StakingProvider):
    protocol_name = 'Marinade'
    state_address = MARINADE_STATE_ID
    tokens = ('SOL', 'mSOL')
    pool_risk = MARINADE_POOL_RISK
    validator_risk = MARINADE_VALIDATOR_RISK
    default_stake_data = MARINADE_DEFAULT_STAKE_DATA
    default_validators = MARINADE_DEFAULT_VALIDATORS


class LidoProvider(StakingProvider):
    protocol_name = 'Lido'
    state_address = LIDO_STATE_ID
    tokens = ('SOL', 'stSOL')
    pool_risk = LIDO_POOL_RISK
    validator_risk = LIDO_VALIDATOR_RISK
    default_stake_data = LIDO_DEFAULT_STAKE_DATA
    default_validators = LIDO_DEFAULT_VALIDATORS


class JPoolProvider(StakingProvider):
    protocol_name = 'JPool'
    state_address = JPOOL_STATE_ID
    tokens = ('SOL', 'jSOL')
    pool_risk = JPOOL_POOL_RISK
    validator_risk = JPOOL_VALIDATOR_RISK
    default_stake_data = JPOOL_DEFAULT_STAKE_DATA
    default_validators = JPOOL_DEFAULT_VALIDATORS


def _staking_entry(provider_cls) -> PluginEntry:
    name = provider_cls.protocol_name

    def handler(runtime, message, state=None) -> str:
        try:
            provider = provider_cls(runtime.cache_manager, rpc_url=rpc_url_from(runtime))
            return provider.get_formatted_staking_report()
        except Exception as e:
            logger.error(f"[{name}] Error in {name} provider: {e}")
            return f"Unable to fetch {name} opportunities. Please try again later."

    return PluginEntry(
        name=name.lower(),
        kind='provider',
        description=f'{name} liquid staking opportunities',
        handler=handler,
    )


marinade_provider = _staking_entry(MarinadeProvider)
lido_provider = _staking_entry(LidoProvider)
jpool_provider = _staking_entry(JPoolProvider)
