"""Protocol providers, risk tables and aggregation."""
from unittest.mock import MagicMock

import pytest

from conftest import make_response
from yields_fun.errors import ProviderError
from yields_fun.services.cache import TwoTierCache
from yields_fun.services.risk import (
    LIDO_POOL_RISK, LULO_RISK, MARINADE_VALIDATOR_RISK, LPRiskWeights, lp_risk_metrics
)
from yields_fun.services.types import OpportunityType, PoolData, RiskMetrics, YieldOpportunity
from yields_fun.services.yield_hunter import (
    LuloProvider, MarinadeProvider, MeteoraProvider, OrcaProvider, RaydiumProvider, YieldProvider,
    calculate_pool_apy,
    get_all_opportunities
)
from yields_fun.services.yield_hunter.raydium import price_to_tick, tick_to_price

RAYDIUM_POOL = {
    'id': 'pool-sol-usdc',
    'mintA': {'address': 'So11111111111111111111111111111111111111112', 'symbol': 'SOL'},
    'mintB': {'address': 'EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v', 'symbol': 'USDC'},
    'price': 150.0,
    'tvl': 1_000_000,
    'feeRate': 0.0025,
    'config': {'tickSpacing': 60},
    'day': {'volume': 120_000, 'volumeFee': 300},
}


def _opportunity(apy, risk=5.0, protocol='Test'):
    return YieldOpportunity.create(protocol, OpportunityType.LP, apy, 1000, risk, ['A', 'B'], f"addr-{apy}", 'd')


def test_raydium_apy_from_fees_and_tvl():
    pool = PoolData(address='p', token0='a', token1='b', fee=0.25, liquidity=1e6,
                    tvl_usd=1_000_000, fees_usd_24h=300)
    assert calculate_pool_apy(pool) == pytest.approx(10.95)


def test_raydium_apy_zero_without_tvl():
    pool = PoolData(address='p', token0='a', token1='b', fee=0.25, liquidity=0, fees_usd_24h=300)
    assert calculate_pool_apy(pool) == 0.0


def test_raydium_opportunities_are_cached(cache, no_sleep):
    session = MagicMock()
    session.request.return_value = make_response({'success': True, 'data': {'data': [RAYDIUM_POOL]}})
    provider = RaydiumProvider(cache, session=session, sleep=no_sleep)

    first = provider.get_yield_opportunities()
    second = provider.get_yield_opportunities()

    assert session.request.call_count == 1
    assert first == second
    assert first[0].apy == pytest.approx(10.95)
    assert first[0].tokens == ['SOL', 'USDC']
    assert 0 <= first[0].risk <= 10


def test_raydium_fetch_failure_gives_empty_list(cache, no_sleep):
    session = MagicMock()
    session.request.return_value = make_response(status_code=500)
    provider = RaydiumProvider(cache, session=session, sleep=no_sleep)

    assert provider.get_yield_opportunities() == []


def test_raydium_non_object_payload_gives_empty_list(cache, no_sleep):
    session = MagicMock()
    session.request.return_value = make_response([RAYDIUM_POOL])
    provider = RaydiumProvider(cache, session=session, sleep=no_sleep)

    assert provider.get_yield_opportunities() == []
    with pytest.raises(ProviderError):
        provider.find_pool_by_mints('SOL', 'USDC')


def test_raydium_pool_state_tick_from_price():
    state = RaydiumProvider.pool_state_from_raw(RAYDIUM_POOL)
    assert state.tick_spacing == 60
    assert state.current_tick == price_to_tick(150.0)
    assert tick_to_price(state.current_tick) <= 150.0 < tick_to_price(state.current_tick + 1)


def test_meteora_apy_and_unsuccessful_response(cache, no_sleep):
    session = MagicMock()
    session.request.return_value = make_response({'success': True, 'data': [{
        'address': 'met-1', 'token0Symbol': 'JUP', 'token1Symbol': 'SOL', 'fee': 0.3,
        'tvlUSD': 200_000, 'volumeUSD24h': 50_000, 'feesUSD24h': 150,
    }]})
    opportunities = MeteoraProvider(cache, session=session, sleep=no_sleep).get_yield_opportunities()
    assert opportunities[0].apy == pytest.approx(150 / 200_000 * 365 * 100)
    assert opportunities[0].description == "Meteora LP pool for JUP/SOL with 0.3% fee"

    failing = MagicMock()
    failing.request.return_value = make_response({'success': False})
    other = MeteoraProvider(TwoTierCache(), session=failing, sleep=no_sleep)
    assert other.get_yield_opportunities() == []


def test_lp_risk_metrics_formula():
    metrics = lp_risk_metrics(100_000, 1_000_000, LPRiskWeights(protocol_risk=2.0))
    assert metrics.volatility == pytest.approx(1.0)
    assert metrics.impermanent_loss == pytest.approx(1.5)
    assert metrics.liquidity_depth == pytest.approx(1.0)
    assert metrics.score == pytest.approx((1.0 + 1.5 + 9.0 + 2.0) / 4)


@pytest.mark.parametrize("volume,tvl", [(10_000_000, 1), (0, 0), (1e12, 1e3)])
def test_lp_risk_score_stays_in_range(volume, tvl):
    assert 0 <= lp_risk_metrics(volume, tvl).score <= 10


def test_opportunity_clamps_risk_and_apy():
    high = YieldOpportunity.create('X', OpportunityType.LP, -5, 100, 42, ['A'], 'a', 'd')
    low = YieldOpportunity.create('X', OpportunityType.LP, 12, 100, -3, ['A'], 'a', 'd')
    assert high.apy == 0.0 and high.risk == 10.0
    assert low.risk == 0.0
    assert RiskMetrics(score=11).score == 10.0
    assert RiskMetrics(score=float('nan')).score == 0.0


def test_risk_tables():
    # base 4, commission > 10 (+1), score < 70 (+3), stake < 100k (+2) -> capped at 10
    assert MARINADE_VALIDATOR_RISK.score({'commission': 12, 'score': 60, 'activeStake': 50_000}) == 10
    # first matching bracket only: validatorRatio 0.2 hits the < 0.3 step (+2) not both
    assert LIDO_POOL_RISK.score({'validatorRatio': 0.2, 'avgPerformance': 99.9, 'exchangeRateDeviation': 0}) == 4
    # base 3, one protocol (+3), minimum rate 6 (+1), 50k value (+1)
    assert LULO_RISK.score({'protocolCount': 1, 'minimumRate': 6, 'totalValue': 50_000}) == 8


def test_staking_provider_adds_validators_above_pool_apy(cache):
    opportunities = MarinadeProvider(cache).get_yield_opportunities()
    assert opportunities[0].type == OpportunityType.STAKING
    assert opportunities[0].tokens == ['SOL', 'mSOL']
    assert all(o.apy > opportunities[0].apy for o in opportunities[1:])


def test_lulo_opportunity_from_account(cache, no_sleep):
    session = MagicMock()
    session.request.return_value = make_response({'data': {
        'totalValue': 25_000, 'interestEarned': 120, 'realtimeApy': 9.4,
        'settings': {'allowedProtocols': 'kamino,marginfi', 'minimumRate': 4},
    }})
    provider = LuloProvider(cache, session=session, sleep=no_sleep,
                            wallet_public_key='Wallet111', api_key='key')

    [opportunity] = provider.get_yield_opportunities()

    assert opportunity.type == OpportunityType.LENDING
    assert opportunity.apy == 9.4
    # base 3, two protocols (+2), value below 100k (+1)
    assert opportunity.risk == 6
    headers = session.request.call_args.kwargs['headers']
    assert headers == {'x-wallet-pubkey': 'Wallet111', 'x-api-key': 'key'}


def test_aggregate_sorts_and_filters():
    good = MagicMock(protocol_name='A')
    good.get_yield_opportunities.return_value = [_opportunity(5, risk=2), _opportunity(30, risk=8)]
    broken = MagicMock(protocol_name='B')
    broken.get_yield_opportunities.side_effect = RuntimeError("down")
    other = MagicMock(protocol_name='C')
    other.get_yield_opportunities.return_value = [_opportunity(12, risk=4)]

    result = get_all_opportunities([good, broken, other])
    assert [o.apy for o in result] == [30, 12, 5]

    filtered = get_all_opportunities([good, other], risk_max=5, min_apy=10)
    assert [o.apy for o in filtered] == [12]


ORCA_POOL = {
    'address': 'whirl-1',
    'tokenA': {'mint': 'MintA', 'symbol': 'SOL'},
    'tokenB': {'mint': 'MintB', 'symbol': 'USDC'},
    'tickSpacing': 64,
    'lpFeeRate': 0.003,
    'price': 150.0,
    'tvl': 1_000_000,
    'volume': {'day': 100_000},
}


def _orca(cache, no_sleep, pools=(ORCA_POOL,)):
    session = MagicMock()
    session.request.return_value = make_response({'whirlpools': list(pools)})
    return OrcaProvider(cache, session=session, sleep=no_sleep), session


def test_orca_fee_based_apy(cache, no_sleep):
    provider, _ = _orca(cache, no_sleep)

    [opportunity] = provider.get_yield_opportunities()

    assert opportunity.apy == pytest.approx(10.95)
    assert opportunity.address == 'whirl-1'
    assert "0.3% fee" in opportunity.description


def test_orca_pool_lookup_by_pair_and_tick_spacing(cache, no_sleep):
    splash = dict(ORCA_POOL, address='splash-1', tickSpacing=32896)
    provider, session = _orca(cache, no_sleep, pools=(ORCA_POOL, splash))

    assert {p.address for p in provider.fetch_all_pools_by_token_pair('MintB', 'MintA')} == {'whirl-1', 'splash-1'}
    assert provider.fetch_concentrated_pool('MintA', 'MintB', 64).address == 'whirl-1'
    assert provider.fetch_splash_pool('MintA', 'MintB').address == 'splash-1'
    assert provider.fetch_concentrated_pool('MintA', 'MintB', 8) is None
    assert session.request.call_count == 1


def test_orca_pair_lookup_failure_raises_provider_error(cache, no_sleep):
    session = MagicMock()
    session.request.return_value = make_response(status_code=503)
    provider = OrcaProvider(cache, session=session, sleep=no_sleep)

    with pytest.raises(ProviderError):
        provider.fetch_all_pools_by_token_pair('MintA', 'MintB')


def test_orca_positions_from_sidecar(cache, no_sleep):
    provider, session = _orca(cache, no_sleep)
    session.get.return_value = make_response({'positions': [{'positionMint': 'pos-1'}]})

    assert provider.fetch_positions_for_owner('Owner1') == [{'positionMint': 'pos-1'}]
    assert session.get.call_args.args[0].endswith('/positions/Owner1')

    session.get.return_value = make_response(status_code=500)
    with pytest.raises(ProviderError):
        provider.fetch_positions_in_whirlpool('whirl-1')


def test_yield_stats_and_report(cache):
    cache.set('all_opportunities', [_opportunity(10.0).to_dict(), _opportunity(20.0).to_dict()])
    provider = YieldProvider(cache, session=MagicMock())

    stats = provider.get_yield_stats()
    assert stats.total_value_locked == 2000
    assert stats.average_apy == pytest.approx(15.0)
    assert stats.number_of_positions == 2

    report = provider.get_formatted_report()
    assert "Average APY: 15.00%" in report
    assert "Active Positions: 2" in report
    assert report.index("APY: 20.00%") < report.index("APY: 10.00%")


def test_report_falls_back_on_error(cache):
    provider = YieldProvider(cache, session=MagicMock())
    provider.get_yield_opportunities = MagicMock(side_effect=RuntimeError("boom"))

    assert provider.get_formatted_report() == "Unable to fetch yield information. Please try again later."


def test_raydium_optimal_range_spans_tick_spacing(cache, no_sleep):
    session = MagicMock()
    session.request.return_value = make_response({'success': True, 'data': [RAYDIUM_POOL]})
    provider = RaydiumProvider(cache, session=session, sleep=no_sleep)

    optimal = provider.calculate_optimal_range('pool-sol-usdc', range_width=5)

    current = price_to_tick(150.0)
    assert optimal == {
        'lowerTick': current - 300, 'upperTick': current + 300,
        'currentTick': current, 'tickSpacing': 60,
    }


def test_meteora_pool_data(cache, no_sleep):
    session = MagicMock()
    session.request.return_value = make_response({'success': True, 'data': [{
        'address': 'met-1', 'token0Address': 'MintJup', 'token1Address': 'MintSol', 'fee': 0.3,
        'tvlUSD': 200_000, 'volumeUSD24h': 50_000, 'feesUSD24h': 150,
    }]})
    provider = MeteoraProvider(cache, session=session, sleep=no_sleep)

    pool = provider.get_pool_data('met-1')

    assert (pool.token0, pool.token1) == ('MintJup', 'MintSol')
    assert pool.tvl_usd == 200_000
    assert pool.fees_usd_24h == 150
    assert provider.get_pool_data('missing') is None


def test_staking_validator_metrics_carry_risk(cache):
    validators = MarinadeProvider(cache).get_validator_metrics()

    assert validators
    assert all(0 <= v['risk'] <= 10 for v in validators)
