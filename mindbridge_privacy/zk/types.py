"""
Proof-service value types.

This module provides:
1. ProofPoints - the three Groth16 group elements in affine coordinates
2. Proof - points plus the ordered public-signal vector, with the JSON wire
   format, Solidity calldata ordering and CBOR serialization
3. ProofRequest / BatchRequest / BatchResult - service inputs and outputs
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import cbor2

from .config import ARTIFACT_FORMAT_VERSION
from .exceptions import CryptographicError, ValidationError

G1Affine = Tuple[int, int]
G2Affine = Tuple[Tuple[int, int], Tuple[int, int]]


def _parse_int(value: Any, label: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(label, "expected decimal integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isascii() and value.isdigit():
        return int(value)
    raise ValidationError(label, "expected decimal integer")


def _parse_pair(raw: Any, label: str) -> Tuple[int, int]:
    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        raise ValidationError(label, "expected two coordinates")
    return _parse_int(raw[0], label), _parse_int(raw[1], label)


@dataclass(frozen=True)
class ProofPoints:
    """
    Groth16 proof elements.

    ``b`` coordinates are ((x_c0, x_c1), (y_c0, y_c1)) with c0 the real part,
    matching snarkjs JSON.
    """

    a: G1Affine
    b: G2Affine
    c: G1Affine

    def to_wire(self) -> Dict[str, Any]:
        return {
            "a": [str(v) for v in self.a],
            "b": [[str(v) for v in coord] for coord in self.b],
            "c": [str(v) for v in self.c],
        }

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "ProofPoints":
        if not isinstance(data, Mapping):
            raise ValidationError("proof", "expected an object")
        try:
            raw_b = data["b"]
            if not isinstance(raw_b, (list, tuple)) or len(raw_b) != 2:
                raise ValidationError("proof.b", "expected two FQ2 coordinates")
            return cls(
                a=_parse_pair(data["a"], "proof.a"),
                b=(
                    _parse_pair(raw_b[0], "proof.b"),
                    _parse_pair(raw_b[1], "proof.b"),
                ),
                c=_parse_pair(data["c"], "proof.c"),
            )
        except KeyError as e:
            raise ValidationError("proof", f"missing element {e}") from e


@dataclass(frozen=True)
class Proof:
    """
    A generated proof.

    Attributes:
        circuit_id: Circuit the proof is for
        points: Groth16 group elements
        public_signals: Outputs then public inputs, as field elements
        fingerprint: Keyed input fingerprint the proof is cached under;
            never part of the wire format
        created_at: Generation time (service clock)
    """

    circuit_id: str
    points: ProofPoints
    public_signals: Tuple[int, ...]
    fingerprint: str = field(default="", repr=False, compare=False)
    created_at: float = field(default=0.0, compare=False)

    def to_wire(self) -> Dict[str, Any]:
        """JSON wire format with decimal-string coordinates and signals."""
        return {
            "circuitId": self.circuit_id,
            "proof": self.points.to_wire(),
            "publicSignals": [str(s) for s in self.public_signals],
        }

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "Proof":
        """
        Parse the JSON wire format.

        Raises:
            ValidationError: If the document is structurally malformed.
                Range and curve checks are left to verification.
        """
        if not isinstance(data, Mapping):
            raise ValidationError("proof", "expected an object")
        circuit_id = data.get("circuitId")
        if not isinstance(circuit_id, str):
            raise ValidationError("circuitId", "expected a string")
        signals = data.get("publicSignals")
        if not isinstance(signals, (list, tuple)):
            raise ValidationError("publicSignals", "expected a list")
        return cls(
            circuit_id=circuit_id,
            points=ProofPoints.from_wire(data.get("proof")),
            public_signals=tuple(
                _parse_int(s, f"publicSignals[{i}]") for i, s in enumerate(signals)
            ),
        )

    def to_calldata(self) -> Tuple[Any, ...]:
        """
        Arguments for a Solidity ``verifyProof(a, b, c, input)`` call.

        The verifier contract expects each G2 coordinate as (c1, c0).
        """
        (x0, x1), (y0, y1) = self.points.b
        return (
            list(self.points.a),
            [[x1, x0], [y1, y0]],
            list(self.points.c),
            list(self.public_signals),
        )

    def serialize(self) -> bytes:
        try:
            return cbor2.dumps({
                "v": ARTIFACT_FORMAT_VERSION,
                "id": self.circuit_id,
                "a": list(self.points.a),
                "b": [list(c) for c in self.points.b],
                "c": list(self.points.c),
                "s": list(self.public_signals),
                "fp": self.fingerprint,
                "ts": self.created_at,
            })
        except Exception as e:
            raise CryptographicError(f"Failed to serialize proof: {e}") from e

    @classmethod
    def deserialize(cls, data: bytes) -> "Proof":
        try:
            obj = cbor2.loads(data)
        except Exception as e:
            raise CryptographicError(f"Failed to deserialize proof: {e}") from e
        if not isinstance(obj, dict):
            raise ValidationError("proof", "invalid proof format")
        if obj.get("v") != ARTIFACT_FORMAT_VERSION:
            raise ValidationError("proof", f"unsupported proof version: {obj.get('v')}")
        try:
            proof = cls(
                circuit_id=obj["id"],
                points=ProofPoints.from_wire({"a": obj["a"], "b": obj["b"], "c": obj["c"]}),
                public_signals=tuple(
                    _parse_int(s, "publicSignals") for s in obj["s"]
                ),
                fingerprint=str(obj.get("fp", "")),
                created_at=float(obj.get("ts", 0.0)),
            )
        except (KeyError, TypeError) as e:
            raise ValidationError("proof", f"invalid proof format: {e}") from e
        return proof


@dataclass(frozen=True)
class ProofRequest:
    """Transient proving request; private inputs never leave the service."""

    circuit_id: str
    private_inputs: Mapping[str, Any] = field(repr=False)
    public_inputs: Mapping[str, Any]


@dataclass(frozen=True)
class BatchRequest:
    """One batch item, tagged with the caller's correlation id."""

    correlation_id: str
    circuit_id: str
    private_inputs: Mapping[str, Any] = field(repr=False)
    public_inputs: Mapping[str, Any]

    @property
    def request(self) -> ProofRequest:
        return ProofRequest(self.circuit_id, self.private_inputs, self.public_inputs)


@dataclass(frozen=True)
class BatchResult:
    """
    Outcome of one batch item.

    ``fatal`` marks a self-verification failure: the item produced no proof
    and the prover itself is suspect.
    """

    correlation_id: str
    ok: bool
    proof: Optional[Proof] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    fatal: bool = False


def signals_from_strings(values: Sequence[Any]) -> Tuple[int, ...]:
    """Parse a decimal-string signal list (CLI and JSON callers)."""
    return tuple(_parse_int(v, f"publicSignals[{i}]") for i, v in enumerate(values))
