"""
Low-level HTTP client for the channel manager API.

Handles the Api-Key header, bounded timeouts, retries and request metrics.
Payload shapes are mapped in channel/adapter.py; nothing outside the channel
package sees raw API dictionaries.
"""

import time
from typing import Any, Optional
from urllib.parse import urljoin

import requests
import structlog

from resort_booking.config import (
    CHANNEL_API_KEY,
    CHANNEL_API_URL,
    CHANNEL_MAX_RETRIES,
    CHANNEL_TIMEOUT_SECONDS,
)
from resort_booking.errors import ChannelRemoteError, ChannelTransportError
from resort_booking.metrics import channel_latency, channel_requests

logger = structlog.get_logger(__name__)

RETRY_DELAY_SECONDS = 1.0
IDEMPOTENT_METHODS = frozenset({"GET", "PUT", "DELETE"})


def should_retry(
    method: str, res: Optional[requests.Response], err: Optional[Exception]
) -> bool:
    """
    Decide whether a failed call may be repeated.

    Rate limiting is retried for every method. Timeouts, connection errors and
    5xx responses are retried only for idempotent methods: a POST that timed
    out may already have created a reservation remotely.

    Args:
        method (str): HTTP method of the request.
        res (Optional[requests.Response]): Response object if available.
        err (Optional[Exception]): Exception raised by the request, if any.

    Returns:
        bool: True if the request should be retried, False otherwise.
    """
    if res is not None and res.status_code == 429:
        return True
    if method.upper() not in IDEMPOTENT_METHODS:
        return False
    if isinstance(err, (requests.Timeout, requests.ConnectionError)):
        return True
    if res is not None and 500 <= res.status_code < 600:
        return True
    return False


def extract_error_message(res: requests.Response) -> str:
    """Pull a human readable message out of an error response body."""
    try:
        body = res.json()
    except ValueError:
        return res.text or res.reason or f"HTTP {res.status_code}"

    if isinstance(body, dict):
        for key in ("error", "message", "detail", "title"):
            value = body.get(key)
            if value:
                return str(value)
    return res.reason or f"HTTP {res.status_code}"


class ChannelClient:
    """
    Thin requests wrapper bound to one channel manager account.

    Example:
        >>> client = ChannelClient(api_key="secret")
        >>> client.request("GET", "apartments")
        {'apartments': [...]}
    """

    def __init__(
        self,
        api_key: str = CHANNEL_API_KEY,
        base_url: str = CHANNEL_API_URL,
        timeout: float = CHANNEL_TIMEOUT_SECONDS,
        max_retries: int = CHANNEL_MAX_RETRIES,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = session or requests.Session()

    def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Any] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> Any:
        """
        Perform one API call with retries.

        Args:
            method (str): HTTP method.
            endpoint (str): Path relative to the base URL (e.g. 'reservations/42').
            params: Query string parameters (dict or list of pairs).
            json: JSON request body.

        Returns:
            Any: Decoded JSON body, or None for an empty body.

        Raises:
            ChannelRemoteError: The API rejected the request (4xx) or answered with non-JSON.
            ChannelTransportError: Timeout, connection error or 5xx after retries.
        """
        url = urljoin(self.base_url, endpoint)
        headers = {
            "Api-Key": self.api_key,
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
        }
        metric_endpoint = endpoint.split("/")[0]
        retries = 0

        while True:
            res: Optional[requests.Response] = None
            start_time = time.time()
            try:
                logger.debug("channel_request", method=method, endpoint=endpoint)
                res = self.session.request(
                    method, url, headers=headers, params=params, json=json, timeout=self.timeout
                )
            except requests.RequestException as err:
                channel_requests.labels(
                    endpoint=metric_endpoint, method=method, status_code="error"
                ).inc()
                retries += 1
                if retries > self.max_retries or not should_retry(method, None, err):
                    logger.warning(
                        "channel_request_failed", method=method, endpoint=endpoint, error=str(err)
                    )
                    raise ChannelTransportError(f"{method} {endpoint} failed: {err}") from err
                logger.warning(
                    "channel_request_retry", method=method, endpoint=endpoint, error=str(err)
                )
                time.sleep(RETRY_DELAY_SECONDS * retries)
                continue
            finally:
                channel_latency.labels(endpoint=metric_endpoint).observe(time.time() - start_time)

            channel_requests.labels(
                endpoint=metric_endpoint, method=method, status_code=str(res.status_code)
            ).inc()

            if res.ok:
                if not res.content:
                    return None
                try:
                    return res.json()
                except ValueError as err:
                    logger.warning(
                        "channel_response_not_json",
                        method=method,
                        endpoint=endpoint,
                        status_code=res.status_code,
                    )
                    raise ChannelRemoteError(
                        res.status_code, "response body is not valid JSON", endpoint=endpoint
                    ) from err

            if should_retry(method, res, None) and retries < self.max_retries:
                retries += 1
                delay = RETRY_DELAY_SECONDS * (2 if res.status_code == 429 else retries)
                logger.warning(
                    "channel_request_retry",
                    method=method,
                    endpoint=endpoint,
                    status_code=res.status_code,
                    sleep_seconds=delay,
                )
                time.sleep(delay)
                continue

            message = extract_error_message(res)
            if res.status_code >= 500:
                raise ChannelTransportError(
                    f"{method} {endpoint} failed with {res.status_code}: {message}"
                )
            raise ChannelRemoteError(res.status_code, message, endpoint=endpoint)
