"""
Security utilities for the proof core.

Randomness for setup and proving blinding, hashing into the scalar field, and
keyed request fingerprints.
"""

import hashlib
import hmac
import os
import secrets
from typing import Optional

from .config import DOMAIN_SEPARATORS, SCALAR_FIELD


# ============================================================================
# RANDOMNESS SOURCE (Fork-Safe)
# ============================================================================


class RandomnessSource:
    """
    Cryptographically secure randomness with fork detection.

    Prevents catastrophic randomness reuse if a worker process forks.

    Example:
        >>> rng = RandomnessSource()
        >>> r = rng.get_random_field_element()
    """

    def __init__(self):
        """Initialize randomness source with fork detection."""
        self._pid = os.getpid()
        self._rng = secrets.SystemRandom()

    def _check_fork(self) -> None:
        if os.getpid() != self._pid:
            self.__init__()

    def get_random_scalar(self, max_value: int) -> int:
        """
        Get random scalar in [0, max_value).

        Args:
            max_value: Upper bound (exclusive)
        """
        self._check_fork()
        return self._rng.randrange(0, max_value)

    def get_random_bytes(self, n: int) -> bytes:
        """Get n cryptographically secure random bytes."""
        self._check_fork()
        return secrets.token_bytes(n)

    def get_random_field_element(self) -> int:
        """Get a random nonzero element of the BN254 scalar field."""
        return 1 + self.get_random_scalar(SCALAR_FIELD - 1)


# ============================================================================
# HASH FUNCTIONS
# ============================================================================


def hash_to_field(data: bytes, domain_sep: bytes, counter: int = 0) -> int:
    """
    Hash data to an element of the scalar field with domain separation.

    Uses length-prefixed SHA-256 over (domain || counter || data) and reduces
    a 512-bit expansion so the modulo bias is negligible.

    Args:
        data: Data to hash
        domain_sep: Domain separator (must be non-empty)
        counter: Expansion counter, lets callers derive streams of elements

    Raises:
        TypeError: If inputs are not bytes
        ValueError: If domain separator is empty
    """
    if not isinstance(data, bytes):
        raise TypeError(f"data must be bytes, got {type(data)}")
    if not isinstance(domain_sep, bytes):
        raise TypeError(f"domain_sep must be bytes, got {type(domain_sep)}")
    if not domain_sep:
        raise ValueError("Domain separator cannot be empty")

    prefix = len(domain_sep).to_bytes(4, "big") + domain_sep
    prefix += counter.to_bytes(8, "big")
    wide = b"".join(
        hashlib.sha256(prefix + bytes([block]) + data).digest()
        for block in (0, 1)
    )
    return int.from_bytes(wide, "big") % SCALAR_FIELD


def keyed_fingerprint(key: bytes, payload: bytes) -> str:
    """
    Compute a keyed request fingerprint.

    Keyed with a process-local secret since the payload holds private
    inputs.

    Returns:
        Hex-encoded HMAC-SHA256 digest
    """
    if len(key) < 16:
        raise ValueError("fingerprint key must be at least 16 bytes")
    mac = hmac.new(key, DOMAIN_SEPARATORS["fingerprint"], hashlib.sha256)
    mac.update(payload)
    return mac.hexdigest()


def digest_hex(data: bytes, domain_sep: Optional[bytes] = None) -> str:
    """SHA-256 hex digest with optional domain separation."""
    h = hashlib.sha256()
    if domain_sep:
        h.update(len(domain_sep).to_bytes(4, "big"))
        h.update(domain_sep)
    h.update(data)
    return h.hexdigest()

