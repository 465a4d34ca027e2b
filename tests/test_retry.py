import logging

from urllib3.response import HTTPResponse
from urllib3.util.retry import RequestHistory

from storelift.models.migration import RetrySettings
from storelift.services.retry import RETRY_STATUSES, RetryPolicy, create_session


def _with_history(policy: RetryPolicy, errors: int) -> RetryPolicy:
    history = tuple(RequestHistory("GET", "/products", None, 503, None) for _ in range(errors))
    return policy.new(history=history)


def test_backoff_doubles_from_base_delay():
    policy = RetryPolicy.from_settings(RetrySettings(attempts=5, base_delay=1.0, max_delay=30.0))
    assert _with_history(policy, 0).get_backoff_time() == 0
    assert _with_history(policy, 1).get_backoff_time() == 1.0
    assert _with_history(policy, 2).get_backoff_time() == 2.0
    assert _with_history(policy, 3).get_backoff_time() == 4.0


def test_backoff_is_capped_at_max_delay():
    policy = RetryPolicy.from_settings(RetrySettings(attempts=10, base_delay=2.0, max_delay=5.0))
    assert _with_history(policy, 6).get_backoff_time() == 5.0


def test_retry_after_header_is_honoured_and_capped():
    policy = RetryPolicy.from_settings(RetrySettings(attempts=3, base_delay=1.0, max_delay=10.0))
    short = HTTPResponse(body=b"", headers={"Retry-After": "3"}, status=429)
    long = HTTPResponse(body=b"", headers={"Retry-After": "120"}, status=429)
    assert policy.get_retry_after(short) == 3
    assert policy.get_retry_after(long) == 10.0


def test_increment_logs_each_retry(caplog):
    policy = RetryPolicy.from_settings(RetrySettings(attempts=3, base_delay=1.0, max_delay=10.0))
    response = HTTPResponse(body=b"", headers={}, status=503, reason="Service Unavailable")
    with caplog.at_level(logging.WARNING, logger="storelift.services.retry"):
        new_policy = policy.increment(method="GET", url="/wp-json/wc/store/v1/products", response=response)
    assert new_policy.total == 2
    assert "attempt 1" in caplog.text
    assert "HTTP 503" in caplog.text


def test_session_mounts_retry_policy():
    session = create_session(RetrySettings(attempts=4, base_delay=0.5, max_delay=8.0))
    retries = session.get_adapter("https://shop.example.com").max_retries
    assert isinstance(retries, RetryPolicy)
    assert retries.total == 4
    assert set(retries.status_forcelist) == set(RETRY_STATUSES)
    assert retries.raise_on_status is False


def test_disabled_retries_mount_plain_adapter():
    session = create_session(RetrySettings(enabled=False))
    retries = session.get_adapter("https://shop.example.com").max_retries
    assert not isinstance(retries, RetryPolicy)
    assert retries.total == 0
