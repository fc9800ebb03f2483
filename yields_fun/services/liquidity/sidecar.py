#!/usr/bin/env python3
"""
HTTP client for the Node.js transaction-building sidecars.

Each sidecar wraps a protocol SDK and returns unsigned transactions; signing
and broadcast stay on the sidecar side.
"""
import logging
from typing import Any, Dict, Optional

import requests

from yields_fun.config import REQUEST_TIMEOUT
from yields_fun.errors import ActionError, MissingParameterError

logger = logging.getLogger("yields_fun.actions")

BUILD_TIMEOUT = 30


class SidecarClient:
    """GET/POST helpers that raise ActionError on transport or sidecar failure."""

    def __init__(self, base_url: str, name: str, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.name = name
        self.session = session or requests.Session()

    def _unwrap(self, data: Any, path: str) -> Dict[str, Any]:
        if isinstance(data, dict) and data.get('success') is False:
            raise ActionError(data.get('error') or f"{self.name} sidecar rejected {path}")
        return data if isinstance(data, dict) else {'data': data}

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = self.session.get(f"{self.base_url}{path}", params=params, timeout=REQUEST_TIMEOUT)
            response.raise_for_status()
            return self._unwrap(response.json(), path)
        except (requests.RequestException, ValueError) as e:
            logger.error(f"[{self.name}] Sidecar GET {path} error: {e}")
            raise ActionError(f"{self.name} sidecar request failed: {e}") from e

    def post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.post(f"{self.base_url}{path}", json=payload, timeout=BUILD_TIMEOUT)
            response.raise_for_status()
            return self._unwrap(response.json(), path)
        except (requests.RequestException, ValueError) as e:
            logger.error(f"[{self.name}] Sidecar POST {path} error: {e}")
            raise ActionError(f"{self.name} sidecar request failed: {e}") from e

    def check_health(self) -> bool:
        try:
            response = self.session.get(f"{self.base_url}/health", timeout=5)
            return response.status_code == 200
        except requests.RequestException:
            return False


def failure(error: Any) -> Dict[str, Any]:
    return {'success': False, 'error': str(error)}


def require_params(params: Any, command: str, *keys: str) -> None:
    """Raise MissingParameterError naming every key of ``keys`` absent from ``params``."""
    missing = [key for key in keys if params.get(key) in (None, '')]
    if missing:
        raise MissingParameterError(f"Missing parameters for {command}", missing)
