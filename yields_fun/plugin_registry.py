#!/usr/bin/env python3
"""Registry for the providers, actions, evaluators and jobs the plugin exposes.

Every entry point is a PluginEntry wrapping a handler with the runtime
signature ``handler(runtime, message, state=None) -> str``.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, runtime_checkable

logger = logging.getLogger("yields_fun.registry")

ENTRY_KINDS = ('provider', 'action', 'evaluator', 'job')


@runtime_checkable
class EntryHandler(Protocol):
    """Callable satisfied by every entry-point handler."""
    def __call__(self, runtime: Any, message: Any, state: Any = None) -> str: ...


@dataclass
class PluginEntry:
    """Metadata and handler for one exposed entry point."""
    name: str                         # "RAYDIUM_CLM"
    kind: str                         # provider | action | evaluator | job
    description: str
    handler: EntryHandler
    similes: Tuple[str, ...] = ()
    validate: Optional[Callable[..., bool]] = None
    examples: List[Dict[str, Any]] = field(default_factory=list)

    def __call__(self, runtime, message=None, state=None) -> str:
        return self.handler(runtime, message, state)

    # runtime-facing verbs, one per entry kind
    get = __call__
    execute = __call__
    evaluate = __call__
    run = __call__

    def is_valid(self, runtime, message=None, state=None) -> bool:
        if self.validate is None:
            return True
        return bool(self.validate(runtime, message, state))


class PluginRegistry:
    """Name-keyed registry of plugin entry points."""

    def __init__(self, name: str, description: str = ''):
        self.name = name
        self.description = description
        self._entries: Dict[str, PluginEntry] = {}

    def register(self, entry: PluginEntry) -> PluginEntry:
        """Register an entry. Re-registering a name overwrites it."""
        if entry.kind not in ENTRY_KINDS:
            raise ValueError(f"Unknown entry kind '{entry.kind}' for {entry.name}")
        if entry.name in self._entries:
            logger.warning(f"Entry '{entry.name}' already registered, overwriting")
        self._entries[entry.name] = entry
        logger.debug(f"Registered {entry.kind}: {entry.name}")
        return entry

    def get(self, name: str) -> Optional[PluginEntry]:
        """Lookup an entry by name. Returns None if not registered."""
        return self._entries.get(name)

    def names(self, kind: Optional[str] = None) -> List[str]:
        return [e.name for e in self.entries(kind)]

    def entries(self, kind: Optional[str] = None) -> List[PluginEntry]:
        return [e for e in self._entries.values() if kind is None or e.kind == kind]

    def describe(self) -> Dict[str, Any]:
        """Summary dict grouped by entry kind."""
        return {
            'name': self.name,
            'description': self.description,
            **{f"{kind}s": [
                {'name': e.name, 'description': e.description}
                for e in self.entries(kind)
            ] for kind in ENTRY_KINDS},
        }
