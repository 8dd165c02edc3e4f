"""
HTTP session for outbound API calls.

Rate limiting (429), gateway errors (502/503/504) and dropped connections are
retried by urllib3 with exponential backoff, honouring ``Retry-After``. Once
the retries run out the last response is returned rather than raised, so the
caller decides what a final 429 means. Every request gets a default timeout
unless the caller passes one.

Usage::

    from bee_atlas.services.http import session

    resp = session.get("https://api.inaturalist.org/v1/places/10")
"""

from __future__ import annotations

from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from bee_atlas import __version__

RETRY_STATUSES = (429, 502, 503, 504)

DEFAULT_TIMEOUT = 30  # seconds

USER_AGENT = f"bee-atlas-pipeline/{__version__}"


def retry_policy(
    total: int = 4,
    backoff_factor: float = 2,
    backoff_max: float = Retry.DEFAULT_BACKOFF_MAX,
) -> Retry:
    """Retry strategy for idempotent requests.

    urllib3 waits ``backoff_factor * 2 ** (n - 1)`` seconds before retry
    ``n`` (none before the first), capped at ``backoff_max``.
    """
    return Retry(
        total=total,
        backoff_factor=backoff_factor,
        backoff_max=backoff_max,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=["GET", "HEAD", "OPTIONS"],
        raise_on_status=False,
    )


#: 0s, 4s, 8s, 16s between retries
DEFAULT_RETRY = retry_policy()


class TimeoutHTTPAdapter(HTTPAdapter):
    """Retrying adapter that fills in a timeout when the request has none."""

    def __init__(self, *args: Any, timeout: float = DEFAULT_TIMEOUT, **kwargs: Any) -> None:
        self.timeout = timeout
        super().__init__(*args, **kwargs)

    def send(self, request: requests.PreparedRequest, **kwargs: Any) -> requests.Response:  # type: ignore[override]
        if kwargs.get("timeout") is None:
            kwargs["timeout"] = self.timeout
        return super().send(request, **kwargs)


def create_session(
    retry: Retry | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    user_agent: str = USER_AGENT,
) -> requests.Session:
    s = requests.Session()
    adapter = TimeoutHTTPAdapter(max_retries=retry or DEFAULT_RETRY, timeout=timeout)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    s.headers["User-Agent"] = user_agent
    return s


#: Shared session for callers without their own retry settings.
session: requests.Session = create_session()
