# src/imaging/credentials.py — v1
"""Access/secret key resolution for the signed image backend.

Keys may be configured directly, pasted into the generic ``api_key`` field
in one of several historically observed encodings (plain text, JSON,
``key=value`` fragments, up to two rounds of base64 around any of those),
or supplied through the environment. Each encoding is handled by a pure
``str -> str | None`` rule; rules run in order and the first hit wins.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass
from typing import Callable

from docweaver.config.app_config import ProviderConfig
from docweaver.config.settings import Settings

logger = logging.getLogger(__name__)

Rule = Callable[[str], "str | None"]

_NON_PRINTABLE = re.compile(r"[^\x20-\x7E]+")
_B64_CHARS = re.compile(r"^[A-Za-z0-9+/=_-]+$")

_AK_PREFIX = re.compile(r"(AKL[T0-9A-Za-z][0-9A-Za-z\-_=]{10,64})")
_AK_FRAGMENT = re.compile(
    r"(?:^|[;&,\s{])[\"']?(?:ak|access[_-]?key(?:[_-]?id)?)[\"']?\s*[:=]\s*[\"']?([A-Za-z0-9\-_=]{8,128})",
    re.IGNORECASE,
)
_AK_TOKEN = re.compile(r"^[A-Za-z0-9\-_=]{12,128}$")
_AK_JSON_KEYS = ("ak", "accessKeyId", "access_key_id", "accessKey", "AccessKeyId", "AK")

_SK_FRAGMENT = re.compile(
    r"(?:^|[;&,\s{])[\"']?(?:sk|secret(?:[_-]?access)?[_-]?key)[\"']?\s*[:=]\s*[\"']?([A-Za-z0-9._+\-/=]{20,128})",
    re.IGNORECASE,
)
_SK_HEX = re.compile(r"^[0-9a-f]{32,64}$", re.IGNORECASE)
_SK_TOKEN = re.compile(r"^[A-Za-z0-9._+\-/=]{20,128}$")
_SK_JSON_KEYS = (
    "sk", "secret", "secretKey", "secretAccessKey", "secret_access_key",
    "SecretAccessKey", "SECRET_ACCESS_KEY", "SK",
)


@dataclass(frozen=True)
class Credentials:
    access_key: str
    secret_key: str
    session_token: str | None = None
    source: str = "config"

    def __repr__(self) -> str:
        return f"Credentials(access_key={self.access_key[:4]}…, source={self.source!r})"


# --- helpers ---


def printable(text: str) -> str:
    return _NON_PRINTABLE.sub("", text)


def b64_decode_once(text: str) -> str | None:
    """Lenient base64 (standard or URL-safe) decode to UTF-8; None if not base64."""
    compact = re.sub(r"\s+", "", text)
    if not compact or not _B64_CHARS.match(compact):
        return None
    padded = compact.rstrip("=")
    padded += "=" * (-len(padded) % 4)
    altchars = b"-_" if ("-" in padded or "_" in padded) else None
    try:
        raw = base64.b64decode(padded, altchars=altchars, validate=True)
        return raw.decode("utf-8")
    except (binascii.Error, ValueError):
        return None


def b64_unwrap(text: str, rounds: int = 2) -> str:
    """Peel up to ``rounds`` layers of base64; stops at the first non-decodable layer."""
    current = text
    for _ in range(rounds):
        decoded = b64_decode_once(current)
        if not decoded or decoded == current:
            break
        current = decoded
    return current


# --- rules ---


def _regex_rule(pattern: re.Pattern[str]) -> Rule:
    def rule(text: str) -> str | None:
        match = pattern.search(text)
        return match.group(1).strip() if match else None

    return rule


def _fullmatch_rule(*patterns: re.Pattern[str]) -> Rule:
    def rule(text: str) -> str | None:
        candidate = text.strip()
        if any(p.match(candidate) for p in patterns):
            return candidate
        return None

    return rule


def _json_rule(keys: tuple[str, ...]) -> Rule:
    def rule(text: str) -> str | None:
        try:
            obj = json.loads(text)
        except ValueError:
            return None
        if not isinstance(obj, dict):
            return None
        for key in keys:
            value = obj.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

    return rule


ACCESS_KEY_RULES: list[Rule] = [
    _regex_rule(_AK_PREFIX),
    _regex_rule(_AK_FRAGMENT),
    _json_rule(_AK_JSON_KEYS),
]
SECRET_KEY_RULES: list[Rule] = [
    _json_rule(_SK_JSON_KEYS),
    _regex_rule(_SK_FRAGMENT),
]
# Last resort when the value is the bare key itself.
ACCESS_KEY_BARE = _fullmatch_rule(_AK_TOKEN)
SECRET_KEY_BARE = _fullmatch_rule(_SK_HEX, _SK_TOKEN)


def apply_rules(text: str, rules: list[Rule]) -> str | None:
    for rule in rules:
        found = rule(text)
        if found:
            return found
    return None


def extract_key(raw: str | None, rules: list[Rule], bare: Rule | None = None) -> str | None:
    """Run ``rules`` on the raw value, then on its base64-unwrapped form, then ``bare``.

    The raw value is inspected first so a key that merely looks like base64
    is never mangled by decoding.
    """
    original = printable((raw or "").strip())
    if not original:
        return None
    found = apply_rules(original, rules)
    if found:
        return found
    decoded = printable(b64_unwrap(original))
    if decoded != original:
        found = apply_rules(decoded, rules)
        if found:
            return found
    if bare is not None:
        return bare(original) or (bare(decoded) if decoded != original else None)
    return None


def extract_access_key(ak_field: str | None, api_key_field: str | None) -> str | None:
    # Bare-token fallback only for the dedicated field: a bare api_key is a secret.
    return extract_key(ak_field, ACCESS_KEY_RULES, ACCESS_KEY_BARE) or extract_key(
        api_key_field, ACCESS_KEY_RULES
    )


def extract_secret_key(sk_field: str | None, api_key_field: str | None) -> str | None:
    return extract_key(sk_field, SECRET_KEY_RULES, SECRET_KEY_BARE) or extract_key(
        api_key_field, SECRET_KEY_RULES, SECRET_KEY_BARE
    )


def resolve_credentials(
    provider_config: ProviderConfig | None, settings: Settings
) -> Credentials | None:
    """Resolve a complete key pair: configuration first, environment last.

    Returns None when either half is missing.
    """
    pcfg = provider_config or ProviderConfig()
    ak = extract_access_key(pcfg.ak, pcfg.api_key)
    sk = extract_secret_key(pcfg.sk, pcfg.api_key)
    from_config = bool(ak and sk)
    ak = ak or settings.image_access_key.strip() or None
    sk = sk or settings.image_secret_key.strip() or None
    if not ak or not sk:
        logger.info("Image backend credentials incomplete (ak=%s, sk=%s)", bool(ak), bool(sk))
        return None
    return Credentials(
        access_key=ak,
        secret_key=sk,
        session_token=settings.image_session_token.strip() or None,
        source="config" if from_config else "environment",
    )
