#!/usr/bin/env python3
"""CREATE_RAYDIUM_FARM: reward farm creation through the Raydium sidecar."""
import json
import logging
import time
from typing import Any, Callable, Dict, Optional

from yields_fun.config import RAYDIUM_SIDECAR_URL
from yields_fun.errors import ActionError
from yields_fun.plugin_registry import PluginEntry
from yields_fun.runtime import resolve_wallet
from .sidecar import SidecarClient, failure

logger = logging.getLogger("yields_fun.actions")

FARM_DURATION_SECONDS = 60 * 60 * 24 * 7
REQUIRED_FARM_FIELDS = ('poolId', 'rewardMint', 'rewardAmount')


def create_raydium_farm(
    sidecar: SidecarClient,
    pool_id: str,
    reward_mint: str,
    reward_amount: Any,
    wallet: Optional[str] = None,
    clock: Callable[[], float] = time.time
) -> Dict[str, Any]:
    """Build a farm paying ``reward_amount`` per second for 7 days."""
    open_time = int(clock())
    try:
        result = sidecar.post('/farm/create', {
            'poolId': pool_id,
            'wallet': wallet,
            'rewardInfos': [{
                'mint': reward_mint,
                'perSecond': str(reward_amount),
                'openTime': open_time,
                'endTime': open_time + FARM_DURATION_SECONDS,
                'rewardType': 'Standard SPL',
            }],
        })
    except ActionError as e:
        logger.error(f"[Raydium] Error creating Raydium farm: {e}")
        return failure(e)

    logger.info(f"[Raydium] Farm created for pool {pool_id}: {result.get('farmId')}")
    return {'success': True, 'farmId': result.get('farmId'), 'txId': result.get('txId')}


def _validate_farm(runtime, message, state=None) -> bool:
    return bool(message) and all(message.get(k) for k in REQUIRED_FARM_FIELDS)


def _create_farm(runtime, message, state=None) -> str:
    if not _validate_farm(runtime, message):
        return json.dumps(failure("Missing required parameters: poolId, rewardMint, rewardAmount"))
    sidecar = SidecarClient(runtime.get_setting("RAYDIUM_SIDECAR_URL") or RAYDIUM_SIDECAR_URL, 'Raydium')
    result = create_raydium_farm(
        sidecar,
        message.get('poolId'),
        message.get('rewardMint'),
        message.get('rewardAmount'),
        wallet=resolve_wallet(runtime, state),
    )
    return json.dumps(result)


create_raydium_farm_action = PluginEntry(
    name='CREATE_RAYDIUM_FARM',
    kind='action',
    description='Creates a new Raydium farm with specified pool and reward parameters',
    handler=_create_farm,
    similes=('CREATE_FARM', 'SETUP_FARM', 'INITIALIZE_FARM'),
    validate=_validate_farm,
    examples=[
        {
            'user': '{{user1}}',
            'content': {
                'text': 'Create a Raydium farm',
                'poolId': 'pool123',
                'rewardMint': 'mint456',
                'rewardAmount': '1000000',
                'action': 'CREATE_RAYDIUM_FARM',
            },
        },
    ],
)
