#!/usr/bin/env python3
"""HTTP helpers: session factory and the capped exponential-backoff retry loop."""
import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from yields_fun.config import MAX_RETRIES, RETRY_DELAY_SECONDS, REQUEST_TIMEOUT
from yields_fun.errors import FetchError

logger = logging.getLogger("yields_fun.http")


def build_session(headers: Optional[Dict[str, str]] = None) -> requests.Session:
    """Create a session with JSON defaults plus ``headers``."""
    session = requests.Session()
    session.headers.update({'accept': 'application/json'})
    if headers:
        session.headers.update(headers)
    return session


def fetch_with_retry(
    session: requests.Session,
    method: str,
    url: str,
    *,
    max_retries: int = MAX_RETRIES,
    retry_delay: float = RETRY_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
    timeout: int = REQUEST_TIMEOUT,
    **kwargs
) -> Any:
    """
    Issue a request and return its decoded JSON body.

    Attempt i (0-based) that fails sleeps retry_delay * 2**i before the next
    attempt. After max_retries failures the last error is raised as FetchError.
    """
    last_error: Optional[Exception] = None
    status_code = None
    attempts = max(1, max_retries)

    for i in range(attempts):
        try:
            response = session.request(method, url, timeout=timeout, **kwargs)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            last_error = e
            resp = getattr(e, 'response', None)
            status_code = getattr(resp, 'status_code', None)
            logger.error(f"[HTTP] Attempt {i + 1} failed for {url}: {e}")
            if i < attempts - 1:
                sleep(retry_delay * (2 ** i))

    raise FetchError(
        url=url,
        attempts=attempts,
        status_code=status_code,
        reason=str(last_error),
    ) from last_error
