"""Retry loop of fetch_with_retry."""
from unittest.mock import MagicMock, call

import pytest
import requests

from conftest import make_response
from yields_fun.errors import FetchError
from yields_fun.services.http_client import fetch_with_retry


def test_success_after_failures_below_cap(no_sleep):
    session = MagicMock()
    session.request.side_effect = [
        requests.ConnectionError("reset"),
        requests.Timeout("slow"),
        make_response({'ok': True}),
    ]

    result = fetch_with_retry(session, 'GET', 'https://api.example/pools',
                              max_retries=3, retry_delay=2.0, sleep=no_sleep)

    assert result == {'ok': True}
    assert session.request.call_count == 3
    assert no_sleep.call_args_list == [call(2.0), call(4.0)]


def test_raises_fetch_error_when_cap_reached(no_sleep):
    session = MagicMock()
    session.request.return_value = make_response(status_code=503)

    with pytest.raises(FetchError) as exc_info:
        fetch_with_retry(session, 'GET', 'https://api.example/pools',
                         max_retries=3, retry_delay=1.0, sleep=no_sleep)

    assert session.request.call_count == 3
    assert exc_info.value.attempts == 3
    assert exc_info.value.status_code == 503
    # no sleep after the final attempt
    assert no_sleep.call_args_list == [call(1.0), call(2.0)]


def test_invalid_json_counts_as_failure(no_sleep):
    bad = make_response()
    bad.json.side_effect = ValueError("not json")
    session = MagicMock()
    session.request.side_effect = [bad, make_response([1])]

    assert fetch_with_retry(session, 'GET', 'https://x', max_retries=2, sleep=no_sleep) == [1]
