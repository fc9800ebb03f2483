"""Birdeye and DexScreener clients, OX client and wallet key handling."""
import base64
import hashlib
import hmac
from unittest.mock import MagicMock

import pytest

from conftest import FakeClock, make_response
from yields_fun.errors import ConfigError, FetchError
from yields_fun.services.cache import TwoTierCache
from yields_fun.services.market.birdeye import BirdeyeClient, calculate_contract_risk, calculate_security_score
from yields_fun.services.market.dexscreener import DexScreenerClient, matches_pair
from yields_fun.services.market.ox import OxClient
from yields_fun.services.market.wallet import derive_seed, load_agent_keypair

BASE = 'BaseMint111'
QUOTE = 'So11111111111111111111111111111111111111112'


def _pair(dex_id, volume, liquidity, base=BASE, quote=QUOTE, chain='solana'):
    return {
        'chainId': chain,
        'dexId': dex_id,
        'pairAddress': f"{dex_id}-pair",
        'baseToken': {'address': base, 'symbol': 'BASE'},
        'quoteToken': {'address': quote, 'symbol': 'SOL'},
        'volume': {'h24': volume},
        'liquidity': {'usd': liquidity},
        'priceUsd': '1.25',
    }


def _client(pairs):
    session = MagicMock()
    session.request.return_value = make_response({'pairs': pairs})
    return DexScreenerClient(session=session, cache=TwoTierCache(), sleep=MagicMock()), session


def test_best_dex_weights_volume_over_liquidity():
    client, _ = _client([_pair('orca', 80_000, 90_000), _pair('raydium', 100_000, 50_000)])

    best = client.get_best_dex_for_pair(BASE, QUOTE)

    assert best['dexId'] == 'raydium'
    assert best['score'] == pytest.approx(85_000)
    assert client.get_dex_scores(BASE, QUOTE) == {
        'orca': pytest.approx(83_000),
        'raydium': pytest.approx(85_000),
    }


def test_best_dex_first_wins_ties_and_none_when_unmatched():
    client, _ = _client([_pair('orca', 1000, 1000), _pair('meteora', 1000, 1000)])
    assert client.get_best_dex_for_pair(BASE, QUOTE)['dexId'] == 'orca'
    assert client.get_best_dex_for_pair(BASE, 'OtherMint')['dexId'] == 'none'


def test_active_pair_is_deepest_liquidity():
    client, _ = _client([_pair('orca', 80_000, 90_000), _pair('raydium', 100_000, 50_000)])
    assert client.get_active_pair(BASE, QUOTE)['dexId'] == 'orca'
    assert client.get_active_pair(BASE, 'OtherMint') is None


def test_pairs_are_filtered_to_solana_and_cached():
    client, session = _client([_pair('raydium', 1, 1), _pair('uniswap', 1, 1, chain='ethereum')])

    assert len(client.get_pairs_by_token_address(BASE)) == 1
    client.get_pairs_by_token_address(BASE)
    assert session.request.call_count == 1


def test_fetch_failure_returns_empty():
    session = MagicMock()
    session.request.return_value = make_response(status_code=502)
    client = DexScreenerClient(session=session, cache=TwoTierCache(), sleep=MagicMock())
    assert client.get_pairs_by_token_address(BASE) == []


def test_matches_pair_either_order_case_insensitive():
    pair = _pair('orca', 1, 1)
    assert matches_pair(pair, QUOTE.lower(), BASE.upper())


def test_trending_pairs_filter_and_sort():
    client, _ = _client([
        _pair('raydium', 500, 60_000),
        _pair('raydium', 900, 70_000),
        _pair('raydium', 1000, 10_000),
    ])
    trending = client.get_trending_solana_pairs(min_liquidity=50_000)
    volumes = [p['volume']['h24'] for p in trending]
    assert volumes == sorted(volumes, reverse=True)
    assert all(p['liquidity']['usd'] >= 50_000 for p in trending)


def test_ox_signature_is_hmac_sha256_base64():
    client = OxClient('key', 'secret', clock=FakeClock())
    message = "ts\nnonce\nGET\napi.ox.fun\n/v3/account\n"
    expected = base64.b64encode(hmac.new(b'secret', message.encode(), hashlib.sha256).digest()).decode()
    assert client.sign('ts', 'nonce', 'GET', '/v3/account') == expected


def test_ox_sign_without_secret_raises():
    with pytest.raises(ConfigError):
        OxClient('key', '').sign('ts', 'n', 'GET', '/v3/account')


def test_ox_max_leverage_from_tiers():
    client = OxClient('key', 'secret')
    client.get_leverage_tiers = MagicMock(return_value={'data': [{'tiers': [
        {'positionFloor': 0, 'positionCap': 1000, 'leverage': 10},
        {'positionFloor': 1000, 'positionCap': 10_000, 'leverage': 5},
    ]}]})
    assert client.get_max_leverage('SOL-USD-SWAP-LIN', 500) == 10
    assert client.get_max_leverage('SOL-USD-SWAP-LIN', 5000) == 5
    assert client.get_max_leverage('SOL-USD-SWAP-LIN', 50_000) == 3.0


def test_ox_validate_position():
    client = OxClient('key', 'secret')
    client.get_max_leverage = MagicMock(return_value=5)
    assert client.validate_position('SOL', 100, 3, collateral=1000) == (True, "")
    ok, reason = client.validate_position('SOL', 100, 6, collateral=1000)
    assert not ok and "exceeds maximum" in reason
    ok, reason = client.validate_position('SOL', 10_000, 5, collateral=1000)
    assert not ok and "collateral" in reason


def test_derived_seed_is_deterministic_per_agent():
    seed = derive_seed('salt', 'agent-a')
    assert len(seed) == 32
    assert seed == derive_seed('salt', 'agent-a')
    assert seed != derive_seed('salt', 'agent-b')


def test_load_keypair_from_salt_and_mismatch():
    settings = {'WALLET_SECRET_SALT': 'salt', 'AGENT_ID': 'agent-a'}
    keypair = load_agent_keypair(settings.get)

    settings['WALLET_PUBLIC_KEY'] = str(keypair.pubkey())
    assert load_agent_keypair(settings.get).pubkey() == keypair.pubkey()

    settings['WALLET_PUBLIC_KEY'] = '11111111111111111111111111111111'
    with pytest.raises(ConfigError):
        load_agent_keypair(settings.get)


def test_load_keypair_requires_material():
    with pytest.raises(ConfigError):
        load_agent_keypair({}.get)


# ── Birdeye ─────────────────────────────────────────────────────────────────

BIRDEYE_ROUTES = {
    'token_security': {'data': {'isToken2022': True}},
    'price-volume': {'data': {'volume24h': 500_000, 'liquidity': 1_000_000, 'feeAPY': 25}},
    'token/holder': {'data': {'totalHolders': 1000}},
    'trades/pair': {'data': {'items': [{'side': 'buy'}] * 3 + [{'side': 'sell'}]}},
    'history_price': {'data': {'items': [{'value': 1.0}, {'value': 1.0}]}},
}


def _birdeye_session():
    def route(method, url, **kwargs):
        for fragment, payload in BIRDEYE_ROUTES.items():
            if fragment in url:
                return make_response(payload)
        return make_response(status_code=404)

    session = MagicMock()
    session.request.side_effect = route
    return session


def test_birdeye_requires_api_key():
    with pytest.raises(ConfigError):
        BirdeyeClient(api_key='', session=MagicMock())


def test_birdeye_caches_per_endpoint(cache):
    session = _birdeye_session()
    client = BirdeyeClient(api_key='key', session=session, cache=cache)

    first = client.get_token_security(BASE)
    second = client.get_token_security(BASE)

    assert first == second == BIRDEYE_ROUTES['token_security']
    assert session.request.call_count == 1
    assert session.request.call_args.kwargs['params'] == {'address': BASE}


def test_birdeye_rejects_unknown_time_scope(cache):
    client = BirdeyeClient(api_key='key', session=MagicMock(), cache=cache)
    with pytest.raises(ValueError):
        client.get_historical_prices(BASE, type='2D')


def test_birdeye_security_and_contract_risk():
    assert calculate_security_score({'data': {'isToken2022': True}}) == 100
    risky = {'mutableMetadata': True, 'freezeable': True, 'top10HolderPercent': 0.9}
    assert calculate_security_score(risky) == 55
    assert calculate_contract_risk(risky, {}) == 'high'
    assert calculate_contract_risk({}, {}) == 'low'


def test_birdeye_evaluate_pair(cache, no_sleep):
    client = BirdeyeClient(api_key='key', session=_birdeye_session(), cache=cache, sleep=no_sleep)

    evaluation = client.evaluate_pair(BASE, QUOTE)

    assert evaluation['riskLevel'] == 'low'
    assert evaluation['recommendation'] == 'provide'
    assert evaluation['marketHealth']['buyPressure'] == pytest.approx(0.75)
    assert evaluation['volatilityMetrics']['pairVolatility'] == 0
    assert evaluation['confidenceScore'] == pytest.approx(87.5)


def test_birdeye_evaluate_pair_fails_as_a_whole(cache, no_sleep):
    session = _birdeye_session()
    route = session.request.side_effect
    session.request.side_effect = lambda method, url, **kw: (
        make_response(status_code=500) if 'token/holder' in url else route(method, url, **kw)
    )
    client = BirdeyeClient(api_key='key', session=session, cache=cache, sleep=no_sleep)

    with pytest.raises(FetchError):
        client.evaluate_pair(BASE, QUOTE)
