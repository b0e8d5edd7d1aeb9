"""Declarative circuit model: signal schemas, definitions and their R1CS synthesis."""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import cbor2

from ..config import DOMAIN_SEPARATORS, SCALAR_FIELD
from ..r1cs import ConstraintSystem, LinearCombination
from ..security import digest_hex

SignalValue = Any  # int, or tuple of ints for array signals
Evaluation = Tuple[Dict[str, int], Dict[str, SignalValue]]

# (constraint system, signal variables by name, full assignment for hints)
Synthesis = Callable[[ConstraintSystem, Mapping[str, Any], Mapping[str, SignalValue]], None]


@dataclass(frozen=True)
class SignalSpec:
    """
    One named signal of a circuit.

    Attributes:
        name: Signal name, unique within the circuit
        bits: Range-check width; None means any canonical field element
        length: Array length, or None for a scalar signal
        signed: Values are two's-complement style in [-2^(bits-1), 2^(bits-1))
        max_value: Optional tighter upper bound than the bit width allows
    """

    name: str
    bits: Optional[int] = None
    length: Optional[int] = None
    signed: bool = False
    max_value: Optional[int] = None

    def __post_init__(self) -> None:
        if self.signed and self.bits is None:
            raise ValueError(f"{self.name}: signed signals need a bit width")
        if self.length is not None and self.length < 1:
            raise ValueError(f"{self.name}: array length must be positive")

    @property
    def is_array(self) -> bool:
        return self.length is not None

    def bounds(self) -> Tuple[int, int]:
        """Inclusive (min, max) of application values for this signal."""
        if self.bits is None:
            return 0, SCALAR_FIELD - 1
        if self.signed:
            low, high = -(1 << (self.bits - 1)), (1 << (self.bits - 1)) - 1
        else:
            low, high = 0, (1 << self.bits) - 1
        if self.max_value is not None:
            high = min(high, self.max_value)
        return low, high

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "bits": self.bits,
            "length": self.length,
            "signed": self.signed,
            "max": self.max_value,
        }


@dataclass(frozen=True)
class CircuitDefinition:
    """
    Fixed circuit: ordered signal schemas, evaluation and R1CS synthesis.

    The public-signal vector of a proof is ``output_signals`` followed by
    ``public_signals``, each in declaration order (circom convention).
    ``evaluate`` computes outputs and hint values natively; ``synthesis``
    emits the constraints that pin them down.
    """

    circuit_id: str
    version: int
    private_signals: Tuple[SignalSpec, ...]
    public_signals: Tuple[SignalSpec, ...]
    output_signals: Tuple[SignalSpec, ...]
    evaluate: Callable[[Mapping[str, SignalValue]], Evaluation] = field(
        compare=False, repr=False
    )
    synthesis: Synthesis = field(compare=False, repr=False)

    def __post_init__(self) -> None:
        names = [s.name for s in self.all_signals]
        if len(names) != len(set(names)):
            raise ValueError(f"{self.circuit_id}: duplicate signal names")
        for spec in self.public_signals + self.output_signals:
            if spec.is_array:
                raise ValueError(
                    f"{self.circuit_id}: public signal {spec.name} must be scalar"
                )

    @property
    def all_signals(self) -> Tuple[SignalSpec, ...]:
        return self.private_signals + self.public_signals + self.output_signals

    @property
    def public_signal_names(self) -> Tuple[str, ...]:
        return tuple(s.name for s in self.output_signals + self.public_signals)

    @property
    def n_public(self) -> int:
        return len(self.output_signals) + len(self.public_signals)

    def synthesize(self, assignment: Mapping[str, SignalValue]) -> ConstraintSystem:
        """
        Constraint system for ``assignment``.

        Declared inputs are range-checked under ``range:<signal>`` labels;
        the circuit's own constraints follow. Hint values the synthesis
        needs beyond the declared signals default to 0.
        """
        cs = ConstraintSystem([assignment[name] for name in self.public_signal_names])
        signals: Dict[str, Any] = {
            name: cs.public(i) for i, name in enumerate(self.public_signal_names)
        }
        for spec in self.private_signals:
            value = assignment[spec.name]
            if spec.is_array:
                signals[spec.name] = tuple(cs.alloc(v) for v in value)
            else:
                signals[spec.name] = cs.alloc(value)

        for spec in self.private_signals + self.public_signals:
            with cs.label(f"range:{spec.name}"):
                elements = signals[spec.name] if spec.is_array else (signals[spec.name],)
                for element in elements:
                    _range_gadget(cs, spec, element)

        self.synthesis(cs, signals, assignment)
        return cs

    def compile(self) -> ConstraintSystem:
        """The circuit's constraint matrices (synthesized over zeros)."""
        return _compile(self)

    def describe(self) -> Dict[str, Any]:
        """Compiled constraint-system descriptor (what ``circuit.cbor`` holds)."""
        cs = self.compile()
        return {
            "id": self.circuit_id,
            "version": self.version,
            "private": [s.describe() for s in self.private_signals],
            "public": [s.describe() for s in self.public_signals],
            "outputs": [s.describe() for s in self.output_signals],
            "constraints": list(dict.fromkeys(cs.labels)),
            "r1cs": {
                "constraints": cs.num_constraints,
                "variables": cs.num_variables,
                "digest": cs.digest(),
            },
        }

    @property
    def digest(self) -> str:
        return _digest(self)

    def unsatisfied(self, assignment: Mapping[str, SignalValue]) -> List[str]:
        """
        Labels of constraints the assignment violates.

        Declared signals that are not canonical in-range field elements are
        reported as ``range:<signal>`` without synthesizing anything.
        """
        failed = [
            f"range:{spec.name}"
            for spec in self.all_signals
            if not _in_field_range(spec, assignment.get(spec.name))
        ]
        if failed:
            return failed
        return self.synthesize(assignment).unsatisfied()

    def zero_assignment(self) -> Dict[str, SignalValue]:
        return {
            spec.name: (0,) * spec.length if spec.is_array else 0
            for spec in self.all_signals
        }


@functools.lru_cache(maxsize=None)
def _compile(circuit: CircuitDefinition) -> ConstraintSystem:
    return circuit.synthesize(circuit.zero_assignment())


@functools.lru_cache(maxsize=None)
def _digest(circuit: CircuitDefinition) -> str:
    encoded = cbor2.dumps(circuit.describe(), canonical=True)
    return digest_hex(encoded, DOMAIN_SEPARATORS["circuit_digest"])


def _range_gadget(cs: ConstraintSystem, spec: SignalSpec, x: LinearCombination) -> None:
    if spec.bits is None:
        return
    if spec.signed:
        cs.bits(x + (1 << (spec.bits - 1)), spec.bits)
        return
    cs.bits(x, spec.bits)
    if spec.max_value is not None and spec.max_value < (1 << spec.bits) - 1:
        cs.assert_equal(cs.less_than(x, spec.max_value + 1, spec.bits), 1)


def encode_field(value: int) -> int:
    """Map a (possibly negative) integer into the scalar field."""
    return value % SCALAR_FIELD


def decode_signed(element: int, bits: int) -> int:
    """Inverse of encode_field for a signed ``bits``-wide signal."""
    half = 1 << (bits - 1)
    if element < half:
        return element
    if element >= SCALAR_FIELD - half:
        return element - SCALAR_FIELD
    raise ValueError("field element outside signed range")


def _element_in_range(spec: SignalSpec, element: Any) -> bool:
    if not isinstance(element, int) or isinstance(element, bool):
        return False
    if not 0 <= element < SCALAR_FIELD:
        return False
    low, high = spec.bounds()
    if spec.signed:
        try:
            value = decode_signed(element, spec.bits)
        except ValueError:
            return False
        return low <= value <= high
    return low <= element <= high


def _in_field_range(spec: SignalSpec, value: Any) -> bool:
    if spec.is_array:
        if not isinstance(value, tuple) or len(value) != spec.length:
            return False
        return all(_element_in_range(spec, v) for v in value)
    return _element_in_range(spec, value)
