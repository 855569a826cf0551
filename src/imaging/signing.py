# src/imaging/signing.py — v1
"""HMAC-SHA256 request signing for the image backend's OpenAPI gateway."""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass, field
from datetime import datetime, timezone

from docweaver.imaging.credentials import Credentials

ALGORITHM = "HMAC-SHA256"
SIGNED_HEADERS = "content-type;host;x-content-sha256;x-date"
CONTENT_TYPE = "application/json"


@dataclass
class SignedRequest:
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hmac_sha256(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


def derive_signing_key(secret_key: str, date: str, region: str, service: str) -> bytes:
    """HMAC chain: secret -> date -> region -> service -> "request"."""
    k_date = hmac_sha256(secret_key.encode("utf-8"), date)
    k_region = hmac_sha256(k_date, region)
    k_service = hmac_sha256(k_region, service)
    return hmac_sha256(k_service, "request")


def format_x_date(now: datetime) -> str:
    """Compact UTC timestamp, e.g. ``20240102T030405Z``."""
    return now.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def sign_request(
    action: str,
    body: str,
    credentials: Credentials,
    host: str,
    region: str,
    service: str,
    version: str = "2022-08-31",
    now: datetime | None = None,
) -> SignedRequest:
    """Build the URL and signed headers for one POST call.

    Args:
        action: Gateway action (``CVSync2AsyncSubmitTask``...).
        body: JSON request body, signed byte-for-byte.
        credentials: Resolved key pair (optional session token).
        host: Gateway host, also signed.
        region: Signing region.
        service: Signing service.
        version: API version sent as query parameter.
        now: Signing time; current UTC time when omitted.
    """
    x_date = format_x_date(now or datetime.now(timezone.utc))
    short_date = x_date[:8]
    payload = body.encode("utf-8")
    body_hash = sha256_hex(payload)
    query = f"Action={action}&Version={version}"

    canonical_headers = (
        f"content-type:{CONTENT_TYPE}\n"
        f"host:{host}\n"
        f"x-content-sha256:{body_hash}\n"
        f"x-date:{x_date}\n"
    )
    canonical_request = "\n".join(
        ["POST", "/", query, canonical_headers, SIGNED_HEADERS, body_hash]
    )
    scope = f"{short_date}/{region}/{service}/request"
    string_to_sign = "\n".join(
        [ALGORITHM, x_date, scope, sha256_hex(canonical_request.encode("utf-8"))]
    )
    signing_key = derive_signing_key(credentials.secret_key, short_date, region, service)
    signature = hmac.new(signing_key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

    headers = {
        "Content-Type": CONTENT_TYPE,
        "Host": host,
        "X-Date": x_date,
        "X-Content-Sha256": body_hash,
        "Authorization": (
            f"{ALGORITHM} Credential={credentials.access_key}/{scope}, "
            f"SignedHeaders={SIGNED_HEADERS}, Signature={signature}"
        ),
    }
    if credentials.session_token:
        headers["X-Security-Token"] = credentials.session_token

    return SignedRequest(url=f"https://{host}/?{query}", headers=headers, body=payload)
