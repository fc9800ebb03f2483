#!/usr/bin/env python3
"""
OX.FUN perpetuals REST client.

Private endpoints are signed with HMAC-SHA256 over
timestamp, nonce, verb, host, path and body, base64-encoded.
"""
import base64
import hashlib
import hmac
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from yields_fun.config import OX_API_BASE, OX_TESTNET_API_BASE, REQUEST_TIMEOUT
from yields_fun.errors import ConfigError
from yields_fun.services.types import safe_float

logger = logging.getLogger("yields_fun.ox")

DEFAULT_MAX_LEVERAGE = 3.0


class OxClient:
    """Thin client for the OX v3 API."""

    def __init__(
        self,
        api_key: str = '',
        api_secret: str = '',
        testnet: bool = False,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time
    ):
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = OX_TESTNET_API_BASE if testnet else OX_API_BASE
        self.session = session or requests.Session()
        self._clock = clock

    @property
    def host(self) -> str:
        return self.base_url.replace("https://", "")

    def sign(self, timestamp: str, nonce: str, verb: str, path: str, body: str = "") -> str:
        if not self.api_secret:
            raise ConfigError("OX_API_SECRET is not configured")
        message = f"{timestamp}\n{nonce}\n{verb}\n{self.host}\n{path}\n{body}"
        digest = hmac.new(self.api_secret.encode(), message.encode(), hashlib.sha256).digest()
        return base64.b64encode(digest).decode()

    def _signed_headers(self, verb: str, path: str, body: str) -> Dict[str, str]:
        now = self._clock()
        timestamp = datetime.fromtimestamp(now, tz=timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'
        nonce = str(int(now * 1000))
        return {
            'Content-Type': 'application/json',
            'AccessKey': self.api_key,
            'Timestamp': timestamp,
            'Signature': self.sign(timestamp, nonce, verb, path, body),
            'Nonce': nonce,
        }

    def request(self, method: str, path: str, data: Optional[Dict] = None, signed: bool = True) -> Dict[str, Any]:
        """Send a request and return the decoded JSON; errors are logged and re-raised."""
        method = method.upper()
        body = json.dumps(data) if data is not None else ""
        headers = self._signed_headers(method, path, body) if signed else {'Content-Type': 'application/json'}
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                data=body or None,
                headers=headers,
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            logger.error(f"[OX] {method} {path} failed: {e}")
            raise

    # Public market data
    def get_markets(self, market_code: Optional[str] = None) -> Dict[str, Any]:
        path = f"/v3/markets?marketCode={market_code}" if market_code else "/v3/markets"
        return self.request('GET', path, signed=False)

    def get_tickers(self, market_code: Optional[str] = None) -> Dict[str, Any]:
        path = f"/v3/tickers?marketCode={market_code}" if market_code else "/v3/tickers"
        return self.request('GET', path, signed=False)

    def get_leverage_tiers(self, market_code: str) -> Dict[str, Any]:
        return self.request('GET', f"/v3/leverage/tiers?marketCode={market_code}", signed=False)

    # Account
    def get_account(self) -> Dict[str, Any]:
        return self.request('GET', "/v3/account")

    def get_positions(self, market_code: Optional[str] = None) -> Dict[str, Any]:
        path = f"/v3/positions?marketCode={market_code}" if market_code else "/v3/positions"
        return self.request('GET', path)

    def get_funding_rates(self, market_code: str) -> Dict[str, Any]:
        return self.request('GET', f"/v3/funding/rates?marketCode={market_code}")

    def place_orders(self, orders: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self.request('POST', "/v3/orders/place", {
            'recvWindow': 20000,
            'timestamp': int(self._clock() * 1000),
            'responseType': 'FULL',
            'orders': orders,
        })

    # Risk
    def get_max_leverage(self, market_code: str, position_size: float) -> float:
        """Leverage of the tier containing ``position_size``, else 3."""
        tiers_response = self.get_leverage_tiers(market_code) or {}
        data = tiers_response.get('data') or []
        tiers = (data[0] or {}).get('tiers') if data else None
        if not tiers:
            return DEFAULT_MAX_LEVERAGE

        size = safe_float(position_size)
        for tier in tiers:
            if safe_float(tier.get('positionFloor')) <= size <= safe_float(tier.get('positionCap')):
                return safe_float(tier.get('leverage'), DEFAULT_MAX_LEVERAGE)
        return DEFAULT_MAX_LEVERAGE

    def get_collateral(self) -> float:
        data = (self.get_account() or {}).get('data') or []
        if not data:
            return 0.0
        return safe_float((data[0] or {}).get('collateral'))

    def validate_position(
        self,
        market_code: str,
        size: float,
        leverage: float,
        collateral: Optional[float] = None
    ) -> Tuple[bool, str]:
        """
        Check a prospective position against the market's leverage tiers.

        Returns:
            (ok, reason) where reason is empty when ok
        """
        if collateral is None:
            collateral = self.get_collateral()
        if collateral <= 0:
            return False, "No collateral available"

        size = safe_float(size)
        max_leverage = self.get_max_leverage(market_code, size)
        if leverage > max_leverage:
            return False, f"Leverage {leverage} exceeds maximum {max_leverage}"
        if size * leverage > collateral * max_leverage:
            return False, "Position size exceeds available collateral"
        return True, ""
