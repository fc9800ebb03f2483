"""Shared fixtures: fake clock, in-memory cache, runtime and HTTP fakes."""
from unittest.mock import MagicMock

import pytest
import requests

from yields_fun.runtime import EnvRuntime, SessionState
from yields_fun.services.cache import MemoryCacheStore, TwoTierCache


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_response(payload=None, status_code=200):
    """A requests.Response-like mock returning ``payload`` from .json()."""
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error", response=response)
    else:
        response.raise_for_status.return_value = None
    return response


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TwoTierCache(MemoryCacheStore(clock), clock=clock)


@pytest.fixture
def runtime(cache):
    return EnvRuntime(
        settings={
            'WALLET_PUBLIC_KEY': 'AgentWallet1111111111111111111111111111111',
            'BIRDEYE_API_KEY': 'test-birdeye',
            'FLEXLEND_API_KEY': 'test-flexlend',
        },
        cache=cache,
    )


@pytest.fixture
def session_state():
    return SessionState()


@pytest.fixture
def no_sleep():
    return MagicMock()
