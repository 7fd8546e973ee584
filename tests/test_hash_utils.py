"""Tests for fingerprint hashing helpers."""

from ephemera.utils.hash import canonical_payload, canonicalize_signal, fingerprint_hexdigest

SALT = "unit-test-salt"


def test_canonicalize_signal_folds_case_and_whitespace() -> None:
    assert canonicalize_signal("  Mozilla/5.0   (X11)  ") == "mozilla/5.0 (x11)"
    assert canonicalize_signal(None) == ""
    assert canonicalize_signal(42) == "42"


def test_payload_ignores_ip_and_unknown_fields() -> None:
    base = {"user_agent": "UA", "language": "en"}
    noisy = {**base, "ip": "10.0.0.1", "screen": "1920x1080"}
    assert canonical_payload(base) == canonical_payload(noisy)


def test_fingerprint_is_stable_and_salted() -> None:
    signals = {"user_agent": "UA", "language": "en-US", "platform": "Linux"}
    digest = fingerprint_hexdigest(signals, SALT)
    assert digest == fingerprint_hexdigest(dict(signals), SALT)
    assert len(digest) == 64
    assert digest != fingerprint_hexdigest(signals, "another-salt")


def test_fingerprint_insensitive_to_signal_formatting() -> None:
    a = fingerprint_hexdigest({"user_agent": "Mozilla  Firefox", "language": "EN"}, SALT)
    b = fingerprint_hexdigest({"user_agent": " mozilla firefox", "language": "en"}, SALT)
    assert a == b


def test_sparse_signals_still_hash() -> None:
    assert len(fingerprint_hexdigest({}, SALT)) == 64
