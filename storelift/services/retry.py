"""HTTP retry policy shared by every fetcher."""

import logging
from itertools import takewhile
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..models.migration import RetrySettings

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "storelift/0.1 (+https://github.com/storelift/storelift)"

# Statuses retried by the policy; both honor Retry-After.
RETRY_STATUSES = (429, 503)


class RetryPolicy(Retry):
    """
    Bounded exponential backoff for individual HTTP calls.

    The delay before retry ``n`` is ``backoff_factor * 2 ** (n - 1)`` capped at
    ``backoff_max``; a ``Retry-After`` header on 429/503 replaces the computed
    delay (also capped). Every retry is logged at WARNING.

    urllib3 rebuilds the policy through ``Retry.new`` on each increment, so
    all state must live in the base constructor arguments.
    """

    def get_backoff_time(self) -> float:
        consecutive_errors = len(
            list(takewhile(lambda x: x.redirect_location is None, reversed(self.history)))
        )
        if consecutive_errors < 1:
            return 0
        delay = self.backoff_factor * (2 ** (consecutive_errors - 1))
        return float(max(0, min(self.backoff_max, delay)))

    def get_retry_after(self, response) -> Optional[float]:
        retry_after = super().get_retry_after(response)
        if retry_after is None:
            return None
        return min(retry_after, self.backoff_max)

    def increment(
        self,
        method=None,
        url=None,
        response=None,
        error=None,
        _pool=None,
        _stacktrace=None,
    ):
        new_retry = super().increment(
            method=method,
            url=url,
            response=response,
            error=error,
            _pool=_pool,
            _stacktrace=_stacktrace,
        )

        if response is not None and response.status:
            reason = f"HTTP {response.status} {response.reason or ''}".rstrip()
            delay = new_retry.get_retry_after(response) if self.respect_retry_after_header else None
        else:
            reason = str(error) if error else "unknown error"
            delay = None
        if delay is None:
            delay = new_retry.get_backoff_time()

        logger.warning(
            f"Retrying {method or 'GET'} {url or ''} (attempt {len(new_retry.history)}) "
            f"in {delay:.1f}s: {reason}"
        )
        return new_retry

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryPolicy":
        """Build a policy from run retry settings."""
        attempts = max(0, settings.effective_attempts)
        return cls(
            total=attempts,
            connect=attempts,
            read=attempts,
            status=attempts,
            backoff_factor=settings.base_delay,
            backoff_max=settings.max_delay,
            status_forcelist=RETRY_STATUSES,
            respect_retry_after_header=True,
            raise_on_status=False,
        )


def create_session(
    settings: Optional[RetrySettings] = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> requests.Session:
    """Create a requests session with the retry policy mounted."""
    settings = settings or RetrySettings()
    session = requests.Session()
    session.headers["User-Agent"] = user_agent

    if settings.effective_attempts <= 0:
        adapter = HTTPAdapter(max_retries=0)
    else:
        adapter = HTTPAdapter(max_retries=RetryPolicy.from_settings(settings))

    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session
