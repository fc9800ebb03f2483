#!/usr/bin/env python3
"""Pool monitor job."""

from .pool_monitor import (
    MonitorState,
    PoolMonitorJob,
    pool_key,
    should_adjust,
    pool_monitor_job
)

__all__ = [
    'MonitorState',
    'PoolMonitorJob',
    'pool_key',
    'should_adjust',
    'pool_monitor_job'
]
