"""Error classifiers for outbound HTTP provider calls.

Converts ``requests`` responses and exceptions into standardized
OperationResult objects. Centralizes the retryable/fatal split so every
channel adapter applies the same rules before layering its own
provider-specific error codes on top.

Key Functions:
- classify_http_response(): non-2xx ``requests.Response`` -> OperationResult
- classify_request_exception(): ``requests`` exceptions -> OperationResult

Usage:
    from infrastructure.operations.classifiers import (
        classify_http_response,
        classify_request_exception,
    )

    try:
        response = session.post(url, json=payload, timeout=timeout)
    except requests.RequestException as exc:
        return classify_request_exception(exc, provider="whatsapp")
    if not response.ok:
        return classify_http_response(response, provider="whatsapp")
"""

from typing import Any, Optional

import requests

from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus

DEFAULT_RETRY_AFTER_SECONDS = 60


def _parse_retry_after(response: requests.Response) -> float:
    header_value = response.headers.get("Retry-After")
    if header_value:
        try:
            return float(header_value)
        except (TypeError, ValueError):
            pass  # HTTP-date form or garbage, use default
    return float(DEFAULT_RETRY_AFTER_SECONDS)


def _response_body(response: requests.Response) -> Optional[Any]:
    try:
        return response.json()
    except ValueError:
        return response.text or None


def classify_http_response(
    response: requests.Response, provider: str = "provider"
) -> OperationResult:
    """Classify a non-successful HTTP response into OperationResult.

    Status Code Mapping:
    - 429: Rate limiting -> RATE_LIMITED with retry_after
    - 408, 425: Request timeout / too early -> TRANSIENT_ERROR
    - 401, 403: Credentials rejected -> UNAUTHORIZED (never retried)
    - 404: Not found -> NOT_FOUND
    - 5xx: Server error -> TRANSIENT_ERROR
    - Other 4xx: Client error -> PERMANENT_ERROR

    Args:
        response: Response returned by ``requests``
        provider: Provider name used in messages

    Returns:
        OperationResult with the raw response body in ``data``
    """
    status_code = response.status_code
    body = _response_body(response)

    if 200 <= status_code < 300:
        return OperationResult.success(data=body, message=f"{provider} accepted request")

    if status_code == 429:
        return OperationResult.error(
            OperationStatus.RATE_LIMITED,
            f"{provider} rate limited the request",
            error_code="RATE_LIMITED",
            retry_after=_parse_retry_after(response),
            data=body,
        )

    if status_code in (408, 425):
        return OperationResult.transient_error(
            f"{provider} request timed out ({status_code})",
            error_code="TIMEOUT",
            data=body,
        )

    if status_code in (401, 403):
        return OperationResult.error(
            OperationStatus.UNAUTHORIZED,
            f"{provider} rejected credentials ({status_code})",
            error_code="AUTH_FAILED",
            data=body,
        )

    if status_code == 404:
        return OperationResult.error(
            OperationStatus.NOT_FOUND,
            f"{provider} resource not found",
            error_code="NOT_FOUND",
            data=body,
        )

    if 500 <= status_code < 600:
        return OperationResult.transient_error(
            f"{provider} server error ({status_code})",
            error_code="PROVIDER_UNAVAILABLE",
            data=body,
        )

    return OperationResult.permanent_error(
        f"{provider} client error ({status_code})",
        error_code=f"HTTP_{status_code}",
        data=body,
    )


def classify_request_exception(
    exc: Exception, provider: str = "provider"
) -> OperationResult:
    """Classify an exception raised while calling a provider.

    - ``requests.Timeout`` -> TRANSIENT_ERROR (``TIMEOUT``)
    - ``requests.ConnectionError`` -> TRANSIENT_ERROR (``CONNECTION_ERROR``)
    - other ``requests.RequestException`` -> TRANSIENT_ERROR (``REQUEST_ERROR``)
    - anything else -> PERMANENT_ERROR (``INTERNAL_ERROR``); a bug on our
      side will not fix itself on retry

    Args:
        exc: Exception raised by the HTTP call
        provider: Provider name used in messages

    Returns:
        OperationResult describing the failure
    """
    if isinstance(exc, requests.Timeout):
        return OperationResult.transient_error(
            f"{provider} request timed out: {exc}",
            error_code="TIMEOUT",
        )

    if isinstance(exc, requests.ConnectionError):
        return OperationResult.transient_error(
            f"{provider} connection error: {exc}",
            error_code="CONNECTION_ERROR",
        )

    if isinstance(exc, requests.RequestException):
        return OperationResult.transient_error(
            f"{provider} request failed: {type(exc).__name__}: {exc}",
            error_code="REQUEST_ERROR",
        )

    return OperationResult.permanent_error(
        f"Unexpected error calling {provider}: {type(exc).__name__}: {exc}",
        error_code="INTERNAL_ERROR",
    )
