# src/ephemera/utils/hash.py
"""Keyed hashing helpers for device fingerprints."""

from __future__ import annotations

import hashlib
import hmac
import json
import re
from collections.abc import Mapping

_WHITESPACE = re.compile(r"\s+")

# Signals folded into the fingerprint; the client IP is deliberately absent
# because it changes between networks for the same browser.
FINGERPRINT_FIELDS = ("user_agent", "language", "platform", "client_token")


def canonicalize_signal(value: object) -> str:
    """Return a case and whitespace insensitive form of a single signal."""
    if value is None:
        return ""
    text = value if isinstance(value, str) else str(value)
    return _WHITESPACE.sub(" ", text).strip().lower()


def canonical_payload(signals: Mapping[str, object]) -> bytes:
    """Serialize the fingerprint signals into stable JSON bytes.

    Missing or malformed signals collapse to empty strings, so a sparse
    bundle still yields a (low-entropy) fingerprint instead of an error.
    """
    normalized = {field: canonicalize_signal(signals.get(field)) for field in FINGERPRINT_FIELDS}
    return json.dumps(normalized, sort_keys=True, separators=(",", ":")).encode("utf-8")


def fingerprint_hexdigest(signals: Mapping[str, object], salt: str) -> str:
    """Return the HMAC-SHA256 hex digest of the canonical signal payload."""
    return hmac.new(salt.encode("utf-8"), canonical_payload(signals), hashlib.sha256).hexdigest()
