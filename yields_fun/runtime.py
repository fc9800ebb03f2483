#!/usr/bin/env python3
"""
Agent runtime surface used by every entry point.

The host agent supplies an object satisfying AgentRuntime. EnvRuntime is the
standalone implementation used by the CLI: settings come from config / env,
and the cache is a TwoTierCache over the SQL store.
"""
import os
from typing import Any, Dict, Iterator, Optional, Protocol, runtime_checkable

from yields_fun.config import get_settings
from yields_fun.services.cache import SqlCacheStore, TwoTierCache


@runtime_checkable
class AgentRuntime(Protocol):
    cache_manager: TwoTierCache

    def get_setting(self, key: str) -> Optional[str]: ...


class EnvRuntime:
    """Runtime backed by process configuration."""

    def __init__(self, settings: Optional[Dict[str, Any]] = None,
                 cache: Optional[TwoTierCache] = None):
        self._settings: Dict[str, Any] = dict(get_settings())
        if settings:
            self._settings.update(settings)
        self._cache = cache

    def get_setting(self, key: str) -> Optional[str]:
        value = self._settings.get(key)
        if value in (None, ''):
            value = os.getenv(key)
        return value or None

    @property
    def cache_manager(self) -> TwoTierCache:
        if self._cache is None:
            self._cache = TwoTierCache(SqlCacheStore(self.get_setting('YIELDS_CACHE_URL')))
        return self._cache


class Message:
    """Incoming message: free text plus structured content fields."""

    def __init__(self, content: Optional[Dict[str, Any]] = None, text: str = ''):
        self.content = dict(content or {})
        self.text = text or self.content.get('text', '')

    def get(self, key: str, default: Any = None) -> Any:
        return self.content.get(key, default)

    def __repr__(self):
        return f"Message({self.content!r})"


class SessionState:
    """Mutable per-conversation state shared between entry points."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._data)


def resolve_wallet(runtime, state=None) -> Optional[str]:
    """Agent wallet address from session state, else WALLET_PUBLIC_KEY."""
    wallet = state.get('agentWallet') if state is not None else None
    if isinstance(wallet, dict):
        wallet = wallet.get('publicKey')
    return wallet or runtime.get_setting("WALLET_PUBLIC_KEY")
