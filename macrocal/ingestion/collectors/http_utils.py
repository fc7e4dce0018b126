"""Shared HTTP utilities for the agency collectors.

Provides session creation, response status mapping, explicit retry
classification and the exponential-backoff loop used by every collector.

Retries are decided here rather than in urllib3 so that attempt counts are
exact and every decision goes through ``classify``:

- network failures and HTTP >= 500 -> ``TransientSourceError`` (retried)
- HTTP 4xx -> ``SourceHTTPError`` (terminal)
- response shape problems -> ``ValidationError`` (terminal)
"""

import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Any, TypeVar

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from macrocal.shared.errors import (
    ExhaustedRetriesError,
    SourceHTTPError,
    TransientSourceError,
    ValidationError,
)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0  # seconds; doubles per attempt (1s, 2s, 4s …)

_logger = logging.getLogger(__name__)


class RetryDecision(Enum):
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


def classify(error: BaseException) -> RetryDecision:
    """Decide whether *error* may be retried."""
    if isinstance(error, TransientSourceError):
        return RetryDecision.RETRYABLE
    if isinstance(error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return RetryDecision.RETRYABLE
    if isinstance(error, requests.exceptions.HTTPError):
        response = error.response
        if response is None or response.status_code >= 500:
            return RetryDecision.RETRYABLE
    return RetryDecision.TERMINAL


def create_session(pool_size: int = 10) -> requests.Session:
    """Create a :class:`requests.Session` with pooling and no transport retries.

    Retries are driven by :func:`request_with_retry`; the adapter is told not
    to retry so each attempt maps to exactly one request.
    """
    session = requests.Session()
    retry = Retry(total=0, raise_on_status=False)
    adapter = HTTPAdapter(max_retries=retry, pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"Accept": "application/json"})
    return session


def check_response(response: requests.Response, source: str) -> requests.Response:
    """Map an HTTP status onto the error taxonomy.

    Raises:
        TransientSourceError: HTTP >= 500.
        SourceHTTPError: HTTP 4xx.
    """
    status = response.status_code
    if status >= 500:
        raise TransientSourceError(f"{source} API error: HTTP {status}", status_code=status)
    if status >= 400:
        body = (response.text or "")[:200]
        raise SourceHTTPError(f"{source} API error: HTTP {status} - {body}", status_code=status)
    return response


def send_request(
    session: requests.Session,
    method: str,
    url: str,
    source: str,
    timeout: int = 30,
    **kwargs: Any,
) -> requests.Response:
    """Issue one request, translating transport failures into ``TransientSourceError``."""
    try:
        response = session.request(method, url, timeout=timeout, **kwargs)
    except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as exc:
        raise TransientSourceError(f"{source} network error: {exc}") from exc
    return check_response(response, source)


def parse_json(response: requests.Response, source: str) -> Any:
    """Decode a JSON body; a malformed body is a shape failure."""
    try:
        return response.json()
    except ValueError as exc:
        raise ValidationError(f"{source} returned a non-JSON body") from exc


def request_with_retry(
    send: Callable[[], T],
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    sleep: Callable[[float], None] = time.sleep,
    logger: logging.Logger | None = None,
) -> T:
    """Call *send* until it succeeds, backing off exponentially on retryable errors.

    At most ``max_retries + 1`` attempts are made. Terminal errors propagate
    immediately.

    Args:
        send: Zero-argument callable performing one attempt.
        max_retries: Retries after the first attempt.
        base_delay: Delay before the first retry; doubled on each further retry.
        sleep: Injected for tests.
        logger: Logger for retry warnings (defaults to this module's).

    Raises:
        ExhaustedRetriesError: The last allowed attempt failed retryably.
    """
    log = logger or _logger
    attempts = max_retries + 1
    last_error: Exception | None = None

    for attempt in range(attempts):
        try:
            return send()
        except (TransientSourceError, SourceHTTPError, ValidationError, requests.exceptions.RequestException) as exc:
            if classify(exc) is RetryDecision.TERMINAL:
                raise
            last_error = exc
            if attempt < max_retries:
                delay = base_delay * (2**attempt)
                log.warning(
                    "Attempt %d/%d failed (%s), retrying in %.1fs", attempt + 1, attempts, exc, delay
                )
                sleep(delay)

    raise ExhaustedRetriesError(attempts, last_error)
