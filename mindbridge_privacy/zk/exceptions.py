"""
Custom exceptions for the zero-knowledge proof core.

A presented proof that fails verification is NOT an exception: verification
returns ``False``. Exceptions are reserved for bad inputs, unknown circuits and
internal faults.
"""

from typing import Optional


class PrivacyProtocolError(Exception):
    """Base exception for proof core errors."""

    pass


class ValidationError(PrivacyProtocolError, ValueError):
    """
    Witness input is malformed or outside its declared range.

    Attributes:
        field: Name of the offending signal (never its value)
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")


class UnknownCircuitError(PrivacyProtocolError, LookupError):
    """Circuit id is not part of the fixed circuit registry."""

    pass


class CircuitUnavailableError(UnknownCircuitError):
    """Circuit is known but its artifacts failed to load at startup."""

    def __init__(self, circuit_id: str, reason: Optional[str] = None) -> None:
        self.circuit_id = circuit_id
        self.reason = reason
        detail = f" ({reason})" if reason else ""
        super().__init__(f"circuit {circuit_id!r} is unavailable{detail}")


class ProofGenerationError(PrivacyProtocolError):
    """Unexpected failure inside the proving algorithm."""

    pass


class SelfVerificationFailure(PrivacyProtocolError):
    """
    A freshly generated proof failed its own verification.

    This is a system-integrity fault (proving/verification key mismatch),
    never a user error. It is logged at critical level and never retried.
    """

    def __init__(self, circuit_id: str) -> None:
        self.circuit_id = circuit_id
        super().__init__(
            f"generated proof for {circuit_id!r} failed self-verification; "
            "proving and verification keys are inconsistent"
        )


class ArtifactError(PrivacyProtocolError):
    """Circuit artifact is missing, corrupt or inconsistent."""

    pass


class CryptographicError(PrivacyProtocolError):
    """Cryptographic operation error."""

    pass


class ConstraintViolation(PrivacyProtocolError):
    """A circuit gadget or constraint was not satisfied by the witness."""

    def __init__(self, constraint: str, message: str = "constraint not satisfied") -> None:
        self.constraint = constraint
        super().__init__(f"{constraint}: {message}")
