"""HMAC-SHA256 signing for webhook payloads.

Signature scheme (outbound and inbound):

    X-Signature-Timestamp: <unix seconds>
    X-Signature-256: sha256=<hex(HMAC_SHA256(secret, "<timestamp>.<raw body>"))>

The timestamp is part of the signed material, so a captured request cannot
be replayed outside the tolerance window. Comparison is constant-time.

Meta's ``X-Hub-Signature-256`` (HMAC over the raw body only, no timestamp)
is verified by ``verify_hub_signature`` for WhatsApp webhooks.
"""

import hashlib
import hmac
import time
from typing import Callable, Dict, Mapping, Optional, Union

from infrastructure.communications.errors import SignatureVerificationError

SIGNATURE_HEADER = "X-Signature-256"
TIMESTAMP_HEADER = "X-Signature-Timestamp"
HUB_SIGNATURE_HEADER = "X-Hub-Signature-256"
SIGNATURE_PREFIX = "sha256="
DEFAULT_TOLERANCE_SECONDS = 300


def _as_bytes(value: Union[str, bytes]) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def _digest_matches(expected: str, provided: str) -> bool:
    # Header values are latin-1 decoded and may hold non-ASCII characters
    return hmac.compare_digest(
        expected.encode("ascii"), provided.encode("utf-8", "surrogateescape")
    )


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    # Header mappings from requests/starlette are case-insensitive; plain dicts are not
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


def compute_signature(
    secret: Union[str, bytes], timestamp: Union[int, str], body: Union[str, bytes]
) -> str:
    """Hex HMAC-SHA256 of ``"{timestamp}.{body}"``."""
    message = _as_bytes(str(timestamp)) + b"." + _as_bytes(body)
    return hmac.new(_as_bytes(secret), message, hashlib.sha256).hexdigest()


def sign_payload(
    secret: Union[str, bytes],
    body: Union[str, bytes],
    timestamp: Optional[int] = None,
) -> Dict[str, str]:
    """Headers to attach to an outbound signed request.

    Args:
        secret: Shared signing secret
        body: Exact bytes that will be sent as the request body
        timestamp: Unix seconds; current time if omitted

    Returns:
        Dict with the timestamp and signature headers
    """
    ts = int(time.time()) if timestamp is None else int(timestamp)
    return {
        TIMESTAMP_HEADER: str(ts),
        SIGNATURE_HEADER: SIGNATURE_PREFIX + compute_signature(secret, ts, body),
    }


def verify_signature(
    secret: Union[str, bytes],
    body: Union[str, bytes],
    headers: Mapping[str, str],
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    clock: Callable[[], float] = time.time,
) -> None:
    """Verify a signed inbound payload.

    Raises:
        SignatureVerificationError: Missing headers, stale timestamp or bad signature
    """
    timestamp = _header(headers, TIMESTAMP_HEADER)
    signature = _header(headers, SIGNATURE_HEADER)
    if not timestamp or not signature:
        raise SignatureVerificationError("Missing signature headers")

    try:
        ts = int(timestamp)
    except ValueError as e:
        raise SignatureVerificationError("Malformed signature timestamp") from e

    if abs(clock() - ts) > tolerance_seconds:
        raise SignatureVerificationError("Signature timestamp outside tolerance")

    if not signature.startswith(SIGNATURE_PREFIX):
        raise SignatureVerificationError("Unsupported signature scheme")

    expected = compute_signature(secret, ts, body)
    if not _digest_matches(expected, signature[len(SIGNATURE_PREFIX) :]):
        raise SignatureVerificationError("Signature mismatch")


def verify_hub_signature(
    app_secret: Union[str, bytes],
    body: Union[str, bytes],
    headers: Mapping[str, str],
) -> None:
    """Verify Meta's ``X-Hub-Signature-256`` over the raw request body.

    Raises:
        SignatureVerificationError: Missing or mismatched signature
    """
    signature = _header(headers, HUB_SIGNATURE_HEADER)
    if not signature or not signature.startswith(SIGNATURE_PREFIX):
        raise SignatureVerificationError("Missing X-Hub-Signature-256 header")

    expected = hmac.new(
        _as_bytes(app_secret), _as_bytes(body), hashlib.sha256
    ).hexdigest()
    if not _digest_matches(expected, signature[len(SIGNATURE_PREFIX) :]):
        raise SignatureVerificationError("Signature mismatch")
