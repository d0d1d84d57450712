"""PKCE helpers (RFC 7636, S256).

A verifier is drawn from the unreserved character set with the OS CSPRNG;
the challenge is the unpadded base64url SHA-256 digest of the verifier.

    pair = generate_pair()
    assert challenge(pair.code_verifier) == pair.code_challenge
"""

from __future__ import annotations

import base64
import hashlib
import os
import secrets
import string
from dataclasses import dataclass

from tokenkeeper.errors import CryptoUnavailable

__all__ = [
    "UNRESERVED_CHARS",
    "PKCEPair",
    "challenge",
    "generate_pair",
    "generate_verifier",
    "verify",
]

UNRESERVED_CHARS = string.ascii_letters + string.digits + "-._~"

MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128
CHALLENGE_METHOD = "S256"


@dataclass(frozen=True)
class PKCEPair:
    """Verifier/challenge pair for one authorization attempt."""

    code_verifier: str
    code_challenge: str
    method: str = CHALLENGE_METHOD


def _sha256(data: bytes) -> bytes:
    try:
        digest = hashlib.new("sha256")
    except ValueError as exc:
        raise CryptoUnavailable("SHA-256 is not available in this runtime") from exc
    digest.update(data)
    return digest.digest()


def _ensure_secure_random() -> None:
    try:
        os.urandom(1)
    except NotImplementedError as exc:
        raise CryptoUnavailable("No cryptographically secure random source available") from exc


def generate_verifier(length: int = 64) -> str:
    """Generate a code_verifier of ``length`` unreserved characters.

    RFC 7636 bounds the verifier to 43..128 characters.
    """
    if not (MIN_VERIFIER_LENGTH <= length <= MAX_VERIFIER_LENGTH):
        raise ValueError(
            f"length must be in [{MIN_VERIFIER_LENGTH}, {MAX_VERIFIER_LENGTH}], got {length}"
        )
    _ensure_secure_random()
    return "".join(secrets.choice(UNRESERVED_CHARS) for _ in range(length))


def challenge(verifier: str) -> str:
    """S256 code_challenge for ``verifier`` (base64url, no padding)."""
    return base64.urlsafe_b64encode(_sha256(verifier.encode("ascii"))).rstrip(b"=").decode("ascii")


def generate_pair(length: int = 64) -> PKCEPair:
    verifier = generate_verifier(length)
    return PKCEPair(code_verifier=verifier, code_challenge=challenge(verifier))


def verify(verifier: str, code_challenge: str) -> bool:
    """True if ``verifier`` derives to ``code_challenge``."""
    try:
        expected = challenge(verifier)
    except UnicodeEncodeError:
        return False
    return secrets.compare_digest(expected, code_challenge)
