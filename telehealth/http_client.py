"""HTTP client utilities with retry and connection pooling.

Purpose: Centralize HTTP configuration for the mail API.

Pattern: requests.Session with urllib3 status retries, tenacity retries for
connection-level failures, and a timeout on every request.
"""
import logging

import requests
from requests.adapters import HTTPAdapter
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

RETRYABLE_EXCEPTIONS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.HTTPError,
)


def create_http_session(
    max_retries: int = 1,
    backoff_factor: float = 0.5,
    timeout: float = 15
) -> requests.Session:
    """
    Create HTTP session with retry and connection pooling.

    Args:
        max_retries: Retries after the first attempt (default: 1)
        backoff_factor: Backoff multiplier between attempts
        timeout: Request timeout in seconds (default: 15)

    Returns:
        requests.Session whose post() retries and raises on HTTP errors
    """
    session = requests.Session()

    retry_strategy = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["POST"],
    )
    adapter = HTTPAdapter(
        max_retries=retry_strategy,
        pool_connections=10,
        pool_maxsize=10,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    original_post = session.post

    @retry(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=backoff_factor, min=0, max=4),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    def post_with_retry(*args, **kwargs):
        kwargs.setdefault("timeout", timeout)
        response = original_post(*args, **kwargs)
        response.raise_for_status()
        return response

    session.post = post_with_retry
    return session
