"""
Witness builder.

Validates typed application values against a circuit's signal schema and
packs them, together with the circuit's intermediates and outputs, into the
full witness. This is the only place plaintext secrets and plaintext scores
are held together; nothing here logs or prints values.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from .circuits.schema import CircuitDefinition, SignalSpec, SignalValue, encode_field
from .exceptions import ValidationError
from .r1cs import ConstraintSystem
from .security import hash_to_field

_SECRET_DOMAIN = b"MINDBRIDGE_ZK_V1_USER_SECRET"


@dataclass(frozen=True)
class Witness:
    """
    Complete signal assignment for one circuit.

    Attributes:
        circuit: Circuit the witness belongs to
        assignment: Every signal, field-encoded (private, public,
            intermediate and output)
        public_signals: Ordered public-signal vector (outputs, then inputs)
    """

    circuit: CircuitDefinition
    assignment: Mapping[str, SignalValue]
    public_signals: Tuple[int, ...]

    def __repr__(self) -> str:
        return (
            f"Witness(circuit_id={self.circuit.circuit_id!r}, "
            f"n_public={len(self.public_signals)})"
        )

    @property
    def outputs(self) -> Dict[str, int]:
        return {s.name: self.assignment[s.name] for s in self.circuit.output_signals}

    def constraint_system(self) -> ConstraintSystem:
        """Synthesize the circuit's R1CS over this witness."""
        return self.circuit.synthesize(self.assignment)

    def unsatisfied(self) -> List[str]:
        return self.circuit.unsatisfied(self.assignment)


def derive_secret(material: bytes) -> int:
    """Derive a user secret field element from high-entropy key material."""
    if not isinstance(material, bytes) or len(material) < 16:
        raise ValidationError("user_secret", "key material must be at least 16 bytes")
    return hash_to_field(material, _SECRET_DOMAIN)


def _check_scalar(spec: SignalSpec, value: Any, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(label, f"expected integer, got {type(value).__name__}")
    low, high = spec.bounds()
    if value < low or value > high:
        raise ValidationError(label, f"value out of range [{low}, {high}]")
    return encode_field(value)


def _check_signal(spec: SignalSpec, value: Any) -> SignalValue:
    if not spec.is_array:
        return _check_scalar(spec, value, spec.name)
    if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
        raise ValidationError(spec.name, f"expected sequence of {spec.length} integers")
    if len(value) != spec.length:
        raise ValidationError(
            spec.name, f"expected {spec.length} entries, got {len(value)}"
        )
    return tuple(
        _check_scalar(spec, item, f"{spec.name}[{i}]")
        for i, item in enumerate(value)
    )


def validate_inputs(
    specs: Iterable[SignalSpec], values: Mapping[str, Any], role: str
) -> Dict[str, SignalValue]:
    """
    Validate and field-encode one group of inputs.

    Args:
        specs: Declared signals for this group
        values: Application values keyed by signal name
        role: "private" or "public", used in error messages

    Raises:
        ValidationError: Naming the offending field; values are never
            truncated or coerced
    """
    if not isinstance(values, Mapping):
        raise ValidationError(role, f"{role} inputs must be a mapping")
    specs = tuple(specs)
    declared = {s.name for s in specs}
    for name in values:
        if name not in declared:
            raise ValidationError(str(name), f"not a {role} signal of this circuit")

    encoded: Dict[str, SignalValue] = {}
    for spec in specs:
        if spec.name not in values:
            raise ValidationError(spec.name, f"missing {role} input")
        encoded[spec.name] = _check_signal(spec, values[spec.name])
    return encoded


def build_witness(
    circuit: CircuitDefinition,
    private_inputs: Mapping[str, Any],
    public_inputs: Mapping[str, Any],
) -> Witness:
    """
    Build the full witness for ``circuit``.

    Raises:
        ValidationError: Input missing, unknown, mistyped or out of range,
            or no witness exists for these inputs
    """
    private = validate_inputs(circuit.private_signals, private_inputs, "private")
    public = validate_inputs(circuit.public_signals, public_inputs, "public")

    assignment: Dict[str, SignalValue] = {**private, **public}
    outputs, intermediates = circuit.evaluate(MappingProxyType(dict(assignment)))
    assignment.update(intermediates)
    assignment.update(outputs)

    vector = tuple(assignment[name] for name in circuit.public_signal_names)
    return Witness(
        circuit=circuit,
        assignment=MappingProxyType(assignment),
        public_signals=vector,
    )
