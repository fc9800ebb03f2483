#!/usr/bin/env python3
"""
Pool Monitor Job
Re-evaluates monitored token pairs and moves Raydium liquidity when the
preferred AMM or the pair's market profile changes.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, Iterator, List, Optional

from yields_fun.config import POOL_CHECK_INTERVAL_SECONDS
from yields_fun.plugin_registry import PluginEntry
from yields_fun.runtime import resolve_wallet
from yields_fun.services.evaluators.token_pair import TokenPairEvaluator, build_token_pair_evaluator
from yields_fun.services.liquidity.raydium_clm_actions import RaydiumClmActions
from yields_fun.services.market.dexscreener import NO_DEX
from yields_fun.services.types import MonitoredPool, safe_float
from yields_fun.services.yield_hunter.raydium import RaydiumProvider, price_to_tick

logger = logging.getLogger("yields_fun.monitor")

VOLATILITY_CHANGE_THRESHOLD = 20
VOLUME_CHANGE_THRESHOLD = 30
AMM_SCORE_CHANGE_THRESHOLD = 0.2
STATE_KEY = 'monitoredPools'


def pool_key(base_address: str, quote_address: str) -> str:
    return f"{base_address.lower()}-{quote_address.lower()}"


class MonitorState:
    """Monitored pools by key, shared between the job loop and callers."""

    def __init__(self, pools: Optional[Dict[str, MonitoredPool]] = None):
        self._lock = threading.RLock()
        self._pools: Dict[str, MonitoredPool] = dict(pools or {})

    def get(self, key: str) -> Optional[MonitoredPool]:
        with self._lock:
            return self._pools.get(key)

    def put(self, pool: MonitoredPool) -> str:
        key = pool_key(pool.base_address, pool.quote_address)
        with self._lock:
            self._pools[key] = pool
        return key

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._pools)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._pools

    def __len__(self) -> int:
        with self._lock:
            return len(self._pools)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {key: pool.to_dict() for key, pool in self._pools.items()}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Dict[str, Any]]]) -> 'MonitorState':
        pools = {}
        for key, raw in (data or {}).items():
            if isinstance(raw, MonitoredPool):
                pools[key] = raw
            else:
                pools[key] = MonitoredPool.from_dict(raw)
        return cls(pools)


def amm_scores_changed(old_scores: Dict[str, float], new_scores: Dict[str, float]) -> bool:
    """True when any AMM score moved more than 20% relative to its old value."""
    for amm, old_score in (old_scores or {}).items():
        old_score = safe_float(old_score)
        new_score = safe_float((new_scores or {}).get(amm))
        if old_score == 0:
            if new_score != 0:
                return True
            continue
        if abs(old_score - new_score) / old_score > AMM_SCORE_CHANGE_THRESHOLD:
            return True
    return False


def should_adjust(old_analysis: Dict[str, Any], new_analysis: Dict[str, Any]) -> bool:
    old_metrics = old_analysis.get('metrics') or {}
    new_metrics = new_analysis.get('metrics') or {}
    volatility_change = abs(
        safe_float(old_metrics.get('priceVolatility')) - safe_float(new_metrics.get('priceVolatility'))
    )
    volume_change = abs(
        safe_float(old_metrics.get('volumeHealth')) - safe_float(new_metrics.get('volumeHealth'))
    )
    score_change = amm_scores_changed(
        (old_analysis.get('recommendation') or {}).get('ammScores') or {},
        (new_analysis.get('recommendation') or {}).get('ammScores') or {},
    )
    return (
        volatility_change > VOLATILITY_CHANGE_THRESHOLD
        or volume_change > VOLUME_CHANGE_THRESHOLD
        or score_change
    )


class PoolMonitorJob:
    """
    Periodic re-evaluation of monitored pairs.

    Only Raydium has remove/adjust actions; decisions for other venues are
    logged and left to the operator.
    """

    def __init__(
        self,
        evaluator: TokenPairEvaluator,
        actions: RaydiumClmActions,
        state: Optional[MonitorState] = None,
        check_interval: float = POOL_CHECK_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
        wallet: Optional[str] = None
    ):
        self.evaluator = evaluator
        self.actions = actions
        self.state = state if state is not None else MonitorState()
        self.check_interval = check_interval
        self._clock = clock
        self.wallet = wallet

        self._running = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def add_pool_to_monitor(self, base_address: str, quote_address: str) -> MonitoredPool:
        key = pool_key(base_address, quote_address)
        existing = self.state.get(key)
        if existing is not None:
            return existing

        analysis = self.evaluator.evaluate_pair(base_address, quote_address)
        recommendation = analysis['recommendation']
        pool = MonitoredPool(
            base_address=base_address,
            quote_address=quote_address,
            last_check=self._clock(),
            last_analysis=analysis,
            current_amm=recommendation['preferredAmm'],
        )
        self.state.put(pool)
        logger.info(f"[Monitor] Added {key} with initial AMM: {pool.current_amm}")
        logger.info(f"[Monitor] AMM scores: {recommendation.get('ammScores')}")
        return pool

    def _remove_all(self, pool: MonitoredPool, venue: str) -> None:
        if venue != 'raydium':
            logger.warning(f"[Monitor] No remove action for {venue}; leaving {pool.base_address}/{pool.quote_address}")
            return
        result = self.actions.remove_liquidity(pool.base_address, pool.quote_address, 100, self.wallet)
        if not result.get('success'):
            logger.error(f"[Monitor] Remove on raydium failed: {result.get('error')}")

    def check_pool(self, key: str) -> Optional[Dict[str, Any]]:
        """Re-evaluate one pool if its interval elapsed. Returns the new analysis."""
        pool = self.state.get(key)
        if pool is None:
            return None

        now = self._clock()
        if now - pool.last_check < self.check_interval:
            return None

        old_analysis = pool.last_analysis
        analysis = self.evaluator.evaluate_pair(pool.base_address, pool.quote_address)
        recommendation = analysis['recommendation']
        preferred = recommendation['preferredAmm']

        if preferred == NO_DEX['dexId']:
            logger.warning(f"[Monitor] No DEX data for {key}; keeping {pool.current_amm} until the next check")
            return None

        if preferred != pool.current_amm:
            logger.info(f"[Monitor] AMM switch for {key}: {pool.current_amm} -> {preferred}")
            logger.info(f"[Monitor] New AMM scores: {recommendation.get('ammScores')}")
            self._remove_all(pool, pool.current_amm)

        adjust = should_adjust(old_analysis, analysis)

        pool.last_check = now
        pool.last_analysis = analysis
        pool.current_amm = preferred
        self.state.put(pool)

        if adjust:
            self.adjust_position(pool, analysis)
        return analysis

    def adjust_position(self, pool: MonitoredPool, analysis: Dict[str, Any]) -> None:
        recommendation = analysis['recommendation']
        preferred = recommendation['preferredAmm']
        logger.info(f"[Monitor] Adjusting position for {pool.base_address}/{pool.quote_address} using {preferred}")

        if not recommendation.get('shouldProvide'):
            logger.info("[Monitor] Analysis suggests removing liquidity")
            self._remove_all(pool, pool.current_amm)
            return

        if preferred != 'raydium':
            logger.info(f"[Monitor] Would provide on {preferred}; no position action for this venue")
            return

        price_range = recommendation.get('suggestedTickRange')
        if not price_range:
            logger.warning("[Monitor] No suggested range available, skipping adjustment")
            return

        result = self.actions.adjust_position(
            pool.base_address,
            pool.quote_address,
            price_to_tick(safe_float(price_range.get('lower'))),
            price_to_tick(safe_float(price_range.get('upper'))),
            safe_float(recommendation.get('maxLiquidityUsd')),
            self.wallet,
        )
        saga_state = (result.get('saga') or {}).get('state')
        if result.get('success'):
            logger.info(f"[Monitor] Position adjusted ({saga_state})")
        else:
            logger.error(f"[Monitor] Adjustment failed ({saga_state}): {result.get('error')}")

    def check_all(self) -> None:
        for key in self.state.keys():
            self.check_pool(key)

    def start(self):
        """Start the monitoring loop in a daemon thread."""
        if self._running:
            logger.warning("[Monitor] Already running")
            return

        self._running = True
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._monitoring_loop, daemon=True)
        self._thread.start()
        logger.info(f"[Monitor] Started with {self.check_interval}s interval")

    def stop(self):
        self._running = False
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("[Monitor] Stopped")

    def is_running(self) -> bool:
        return self._running

    def _monitoring_loop(self):
        while self._running:
            try:
                self.check_all()
            except Exception as e:
                logger.error(f"[Monitor] Error in monitoring loop: {e}")
            self._stop_event.wait(self.check_interval)


def _store(state, key: str, value: Any) -> None:
    if hasattr(state, 'set'):
        state.set(key, value)
    else:
        state[key] = value


def build_pool_monitor(runtime, state=None) -> PoolMonitorJob:
    monitor_state = MonitorState.from_dict(state.get(STATE_KEY) if state is not None else None)
    return PoolMonitorJob(
        build_token_pair_evaluator(runtime),
        RaydiumClmActions(RaydiumProvider(runtime.cache_manager)),
        monitor_state,
        wallet=resolve_wallet(runtime, state),
    )


def _run_pool_monitor(runtime, message, state=None) -> str:
    try:
        monitor = build_pool_monitor(runtime, state)
        monitor.check_all()

        base_address = message.get("baseTokenAddress") if message else None
        quote_address = message.get("quoteTokenAddress") if message else None
        if base_address and quote_address:
            monitor.add_pool_to_monitor(base_address, quote_address)

        if state is not None:
            _store(state, STATE_KEY, monitor.state.to_dict())
        return "Pool monitoring completed successfully"
    except Exception as e:
        logger.error(f"[Monitor] Error in pool monitor job: {e}")
        return "Failed to monitor pools"


pool_monitor_job = PluginEntry(
    name='POOL_MONITOR',
    kind='job',
    description='Re-evaluates monitored token pairs and rebalances Raydium liquidity',
    handler=_run_pool_monitor,
)
