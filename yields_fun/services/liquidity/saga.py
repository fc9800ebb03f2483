#!/usr/bin/env python3
"""
Two-phase rebalance record.

adjust_position removes the old position (phase 1), then opens the new range
(phase 2). If phase 2 fails, the removed amounts are re-deposited at the old
range. Every transition is appended to the history.
"""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger("yields_fun.actions")


class SagaState(Enum):
    STARTED = "started"
    REMOVED = "removed"
    COMPLETED = "completed"
    COMPENSATED = "compensated"
    FAILED = "failed"


TERMINAL_STATES = (SagaState.COMPLETED, SagaState.COMPENSATED, SagaState.FAILED)


@dataclass
class RebalanceSaga:
    base_address: str
    quote_address: str
    new_range: Tuple[int, int]
    target_amount_usd: float
    state: SagaState = SagaState.STARTED
    old_range: Optional[Tuple[int, int]] = None
    removed_amounts: Dict[str, float] = field(default_factory=dict)
    error: Optional[str] = None
    history: List[Dict[str, Any]] = field(default_factory=list)
    clock: Callable[[], float] = field(default=time.time, repr=False, compare=False)

    def __post_init__(self):
        self._record(self.state, {})

    def _record(self, state: SagaState, details: Dict[str, Any]):
        self.history.append({'state': state.value, 'at': self.clock(), **details})

    def transition(self, state: SagaState, **details) -> None:
        if self.state in TERMINAL_STATES:
            raise ValueError(f"Saga already finished in state {self.state.value}")
        logger.info(
            f"[Saga] {self.base_address}/{self.quote_address}: "
            f"{self.state.value} -> {state.value}"
        )
        self.state = state
        if 'error' in details:
            self.error = details['error']
        self._record(state, details)

    def mark_removed(self, old_range: Optional[Tuple[int, int]], amounts: Dict[str, float]) -> None:
        self.old_range = old_range
        self.removed_amounts = dict(amounts)
        self.transition(SagaState.REMOVED, removedAmounts=dict(amounts))

    @property
    def has_funds_to_restore(self) -> bool:
        return any(v > 0 for v in self.removed_amounts.values())

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def to_dict(self) -> Dict[str, Any]:
        return {
            'baseAddress': self.base_address,
            'quoteAddress': self.quote_address,
            'state': self.state.value,
            'oldRange': list(self.old_range) if self.old_range else None,
            'newRange': list(self.new_range),
            'targetAmountUsd': self.target_amount_usd,
            'removedAmounts': dict(self.removed_amounts),
            'error': self.error,
            'history': list(self.history),
        }
