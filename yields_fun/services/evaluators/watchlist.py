#!/usr/bin/env python3
"""
Token watchlist persisted with SQLAlchemy Core.

Each entry carries per-token alert thresholds (percent). check_alerts()
compares current 24h changes against them and stamps last_checked.
"""
import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import sqlalchemy as sa

from yields_fun.db_engine import get_engine, upsert
from yields_fun.models import create_all, watchlist_entries
from yields_fun.services.types import safe_float

logger = logging.getLogger("yields_fun.watchlist")

DEFAULT_THRESHOLDS = {
    'priceChangePercent': 5.0,
    'volumeChangePercent': 20.0,
    'liquidityChangePercent': 10.0,
}

# metric key from the price source -> (threshold key, alert label)
ALERT_CHECKS = (
    ('priceChange24h', 'priceChangePercent', 'Price'),
    ('volumeChange24h', 'volumeChangePercent', 'Volume'),
    ('liquidityChange', 'liquidityChangePercent', 'Liquidity'),
)


def _row_to_entry(row) -> Dict[str, Any]:
    return {
        'tokenAddress': row['token_address'],
        'addedAt': row['added_at'],
        'lastChecked': row['last_checked'],
        'alertThresholds': json.loads(row['thresholds_json']),
        'isActive': bool(row['is_active']),
    }


class Watchlist:
    def __init__(self, url: Optional[str] = None, engine: Optional[sa.Engine] = None,
                 clock: Callable[[], float] = time.time):
        self.engine = engine if engine is not None else get_engine(url)
        self._clock = clock
        create_all(self.engine)

    def add(self, token_address: str, thresholds: Optional[Dict[str, float]] = None) -> Dict[str, Any]:
        merged = dict(DEFAULT_THRESHOLDS)
        merged.update({k: v for k, v in (thresholds or {}).items() if v})
        now = self._clock()
        upsert(
            self.engine,
            watchlist_entries,
            {
                'token_address': token_address,
                'added_at': now,
                'last_checked': now,
                'thresholds_json': json.dumps(merged),
                'is_active': True,
            },
            index_elements=['token_address'],
            update_columns=['thresholds_json', 'is_active'],
        )
        logger.info(f"[Watchlist] Added {token_address}")
        return self.get(token_address)

    def remove(self, token_address: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                sa.delete(watchlist_entries).where(watchlist_entries.c.token_address == token_address)
            )
        return bool(result.rowcount)

    def get(self, token_address: str) -> Optional[Dict[str, Any]]:
        with self.engine.connect() as conn:
            row = conn.execute(
                sa.select(watchlist_entries).where(watchlist_entries.c.token_address == token_address)
            ).mappings().fetchone()
        return _row_to_entry(row) if row else None

    def list(self, active_only: bool = False) -> List[Dict[str, Any]]:
        query = sa.select(watchlist_entries).order_by(watchlist_entries.c.added_at)
        if active_only:
            query = query.where(watchlist_entries.c.is_active.is_(True))
        with self.engine.connect() as conn:
            rows = conn.execute(query).mappings().fetchall()
        return [_row_to_entry(r) for r in rows]

    def set_active(self, token_address: str, active: bool) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                sa.update(watchlist_entries)
                .where(watchlist_entries.c.token_address == token_address)
                .values(is_active=active)
            )

    def check_alerts(self, price_source: Callable[[str], Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Check every active entry against its thresholds.

        Args:
            price_source: token address -> {priceChange24h, volumeChange24h,
                liquidityChange}, all in percent

        Returns:
            [{tokenAddress, alerts}] for entries with at least one alert
        """
        results = []
        for entry in self.list(active_only=True):
            token = entry['tokenAddress']
            data = price_source(token) or {}
            alerts = []
            for metric, threshold_key, label in ALERT_CHECKS:
                change = safe_float(data.get(metric))
                if abs(change) > entry['alertThresholds'][threshold_key]:
                    alerts.append(f"{label} change of {change}% exceeded threshold")
            if alerts:
                results.append({'tokenAddress': token, 'alerts': alerts})
            self._touch(token)
        return results

    def _touch(self, token_address: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                sa.update(watchlist_entries)
                .where(watchlist_entries.c.token_address == token_address)
                .values(last_checked=self._clock())
            )
