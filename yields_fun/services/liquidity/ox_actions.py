#!/usr/bin/env python3
"""OX.FUN perpetual position actions: open, close and resize hedges."""
import json
import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from yields_fun.errors import ActionError, ConfigError, MissingParameterError
from yields_fun.plugin_registry import PluginEntry
from yields_fun.services.market.ox import OxClient
from yields_fun.services.types import safe_float
from .sidecar import failure, require_params

logger = logging.getLogger("yields_fun.ox")

MAX_LEVERAGE = 10
DEFAULT_LEVERAGE = 3
ORDER_SIDES = ('BUY', 'SELL')


class OxActions:
    def __init__(self, client: OxClient, clock: Callable[[], float] = time.time):
        self.client = client
        self._clock = clock

    def _order(self, market_code: str, side: str, quantity: float, order_type: str = "MARKET",
               time_in_force: str = "IOC", **extra) -> Dict[str, Any]:
        order = {
            'clientOrderId': str(int(self._clock() * 1000)),
            'marketCode': market_code,
            'side': side,
            'quantity': str(quantity),
            'orderType': order_type,
            'timeInForce': time_in_force,
        }
        order.update({k: v for k, v in extra.items() if v is not None})
        return order

    def find_position(self, market_code: str) -> Optional[Dict[str, Any]]:
        data = (self.client.get_positions(market_code) or {}).get('data') or []
        positions = (data[0] or {}).get('positions') or [] if data else []
        for position in positions:
            if position.get('marketCode') == market_code:
                return position
        return None

    def open_position(self, market_code: str, side: str, quantity: Any, leverage: Optional[float] = None,
                      order_type: str = "MARKET", price: Optional[str] = None,
                      stop_price: Optional[str] = None, time_in_force: str = "GTC") -> Dict[str, Any]:
        side = str(side).upper()
        if side not in ORDER_SIDES:
            raise ActionError(f"side must be one of {', '.join(ORDER_SIDES)}")
        size = safe_float(quantity)
        if size <= 0:
            raise ActionError("quantity must be positive")

        max_allowed = self.client.get_max_leverage(market_code, size)
        leverage = min(leverage or DEFAULT_LEVERAGE, max_allowed, MAX_LEVERAGE)
        ok, reason = self.client.validate_position(market_code, size, leverage)
        if not ok:
            raise ActionError(f"Invalid position parameters - {reason}")

        order = self._order(market_code, side, quantity, order_type, time_in_force,
                            price=price, stopPrice=stop_price)
        logger.info(f"[OX] Opening {side} {quantity} {market_code} at {leverage}x")
        return self.client.place_orders([order])

    def close_position(self, market_code: str) -> Dict[str, Any]:
        position = self.find_position(market_code)
        size = safe_float(position.get('position')) if position else 0.0
        if size == 0:
            raise ActionError(f"No open position found for {market_code}")
        order = self._order(market_code, 'SELL' if size > 0 else 'BUY', abs(size))
        logger.info(f"[OX] Closing {market_code} position of {size}")
        return self.client.place_orders([order])

    def modify_position(self, market_code: str, new_quantity: Any) -> Optional[Dict[str, Any]]:
        """Trade the difference to reach ``new_quantity``; None when already there."""
        position = self.find_position(market_code)
        if position is None:
            raise ActionError(f"No position found to modify for {market_code}")
        diff = safe_float(new_quantity) - safe_float(position.get('position'))
        if diff == 0:
            return None
        order = self._order(market_code, 'BUY' if diff > 0 else 'SELL', abs(diff))
        logger.info(f"[OX] Resizing {market_code} by {diff}")
        return self.client.place_orders([order])


def execute_ox_command(actions: OxActions, message) -> str:
    command = message.get("command")
    try:
        if command == "openPosition":
            params = message.get("params") or {}
            require_params(params, command, "marketCode", "side", "quantity")
            result = actions.open_position(
                params['marketCode'], params['side'], params['quantity'],
                leverage=params.get('leverage'),
                order_type=params.get('orderType') or "MARKET",
                price=params.get('price'),
                stop_price=params.get('stopPrice'),
                time_in_force=params.get('timeInForce') or "GTC",
            )
        elif command == "closePosition":
            require_params(message, command, "marketCode")
            market_code = message.get("marketCode")
            result = actions.close_position(market_code)
        elif command == "modifyPosition":
            require_params(message, command, "marketCode", "newQuantity")
            market_code = message.get("marketCode")
            result = actions.modify_position(market_code, message.get("newQuantity"))
        else:
            return "Unknown command"
    except MissingParameterError as e:
        return str(e)
    except ActionError as e:
        if str(e).startswith("No open position found"):
            return str(e)
        logger.error(f"[OX] Error executing {command}: {e}")
        return json.dumps(failure(e))
    return json.dumps(result)


def _execute_ox(runtime, message, state=None) -> str:
    try:
        client = OxClient(
            api_key=runtime.get_setting("OX_API_KEY") or '',
            api_secret=runtime.get_setting("OX_API_SECRET") or '',
            testnet=str(runtime.get_setting("OX_TESTNET")).lower() == 'true',
        )
        return execute_ox_command(OxActions(client), message)
    except (ConfigError, requests.RequestException) as e:
        logger.error(f"[OX] Error executing Ox action: {e}")
        return json.dumps(failure(e))


ox_actions = PluginEntry(
    name='OX_PERPS',
    kind='action',
    description='Open, close and resize OX.FUN perpetual positions for hedging',
    handler=_execute_ox,
    similes=('OPEN_HEDGE', 'CLOSE_HEDGE', 'PERP_POSITION'),
)
