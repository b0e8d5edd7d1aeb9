"""
Rank-1 constraint systems.

A ConstraintSystem records constraints ``<A, w> * <B, w> == <C, w>`` over a
witness vector ``w`` laid out as::

    w[0]                  the constant 1
    w[1 .. n_public]      public signals (outputs, then public inputs)
    w[n_public + 1 ..]    private inputs and intermediates

Synthesis emits constraints and fills ``w`` in the same pass. The gadgets
below never branch on witness values, so every assignment of a circuit
yields the same matrices and only ``w`` differs. Gadgets never raise on bad
values either: a wrong hint simply leaves its constraint unsatisfied.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Dict, Iterator, List, Sequence, Tuple, Union

import cbor2

from .config import DOMAIN_SEPARATORS, MAX_COMPARATOR_BITS, SCALAR_FIELD
from .security import digest_hex

_P = SCALAR_FIELD

ONE = 0  # witness index of the constant 1


class LinearCombination:
    """Sparse linear combination of witness variables, coefficients mod r."""

    __slots__ = ("terms",)

    def __init__(self, terms: Dict[int, int] = None) -> None:
        self.terms: Dict[int, int] = terms if terms is not None else {}

    @classmethod
    def constant(cls, value: int) -> "LinearCombination":
        value %= _P
        return cls({ONE: value} if value else {})

    @classmethod
    def variable(cls, index: int) -> "LinearCombination":
        return cls({index: 1})

    def __add__(self, other: "Operand") -> "LinearCombination":
        terms = dict(self.terms)
        for index, coeff in as_lc(other).terms.items():
            total = (terms.get(index, 0) + coeff) % _P
            if total:
                terms[index] = total
            else:
                terms.pop(index, None)
        return LinearCombination(terms)

    __radd__ = __add__

    def __neg__(self) -> "LinearCombination":
        return LinearCombination({i: _P - c for i, c in self.terms.items()})

    def __sub__(self, other: "Operand") -> "LinearCombination":
        return self + (-as_lc(other))

    def __rsub__(self, other: "Operand") -> "LinearCombination":
        return as_lc(other) + (-self)

    def __mul__(self, scalar: int) -> "LinearCombination":
        if isinstance(scalar, bool) or not isinstance(scalar, int):
            return NotImplemented
        scalar %= _P
        if not scalar:
            return LinearCombination()
        return LinearCombination({i: c * scalar % _P for i, c in self.terms.items()})

    __rmul__ = __mul__

    def __repr__(self) -> str:
        return f"LinearCombination({len(self.terms)} terms)"


Operand = Union[LinearCombination, int]


def as_lc(value: Operand) -> LinearCombination:
    if isinstance(value, LinearCombination):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return LinearCombination.constant(value)
    raise TypeError(f"cannot use {type(value).__name__} in a linear combination")


class ConstraintSystem:
    """
    Constraints plus the witness that (hopefully) satisfies them.

    Args:
        public_values: Public signal values in vector order; they occupy
            w[1 .. n_public]

    Example:
        >>> cs = ConstraintSystem([6])
        >>> x = cs.alloc(2)
        >>> cs.assert_equal(cs.mul(x, x + 1), cs.public(0))
        >>> cs.unsatisfied()
        []
    """

    def __init__(self, public_values: Sequence[int]) -> None:
        self.n_public = len(public_values)
        self.values: List[int] = [1] + [_field_value(v) for v in public_values]
        self.constraints: List[Tuple[LinearCombination, LinearCombination, LinearCombination]] = []
        self.labels: List[str] = []
        self._label = "unlabelled"

    def __repr__(self) -> str:
        return (
            f"ConstraintSystem(constraints={self.num_constraints}, "
            f"variables={self.num_variables}, public={self.n_public})"
        )

    @property
    def num_variables(self) -> int:
        return len(self.values)

    @property
    def num_constraints(self) -> int:
        return len(self.constraints)

    @property
    def public_values(self) -> Tuple[int, ...]:
        return tuple(self.values[1:self.n_public + 1])

    def public(self, position: int) -> LinearCombination:
        """The public signal at ``position`` of the public vector."""
        if not 0 <= position < self.n_public:
            raise IndexError(f"public signal {position} out of range")
        return LinearCombination.variable(position + 1)

    @contextmanager
    def label(self, name: str) -> Iterator[None]:
        """Tag constraints emitted inside the block with ``name``."""
        previous, self._label = self._label, name
        try:
            yield
        finally:
            self._label = previous

    def alloc(self, value: int) -> LinearCombination:
        """New private variable holding ``value``."""
        self.values.append(_field_value(value))
        return LinearCombination.variable(len(self.values) - 1)

    def evaluate(self, lc: Operand) -> int:
        values = self.values
        return sum(values[i] * c for i, c in as_lc(lc).terms.items()) % _P

    def enforce(self, a: Operand, b: Operand, c: Operand) -> None:
        self.constraints.append((as_lc(a), as_lc(b), as_lc(c)))
        self.labels.append(self._label)

    def unsatisfied(self) -> List[str]:
        """Labels of violated constraints, in emission order, each once."""
        failed: List[str] = []
        for (a, b, c), label in zip(self.constraints, self.labels):
            if label in failed:
                continue
            if self.evaluate(a) * self.evaluate(b) % _P != self.evaluate(c):
                failed.append(label)
        return failed

    def digest(self) -> str:
        """Digest of the constraint matrices; independent of the witness."""
        rows = [
            [sorted(lc.terms.items()) for lc in row]
            for row in self.constraints
        ]
        encoded = cbor2.dumps(
            {"public": self.n_public, "variables": self.num_variables, "constraints": rows},
            canonical=True,
        )
        return digest_hex(encoded, DOMAIN_SEPARATORS["r1cs_digest"])

    # ------------------------------------------------------------------
    # Gadgets
    # ------------------------------------------------------------------

    def mul(self, a: Operand, b: Operand) -> LinearCombination:
        out = self.alloc(self.evaluate(a) * self.evaluate(b))
        self.enforce(a, b, out)
        return out

    def assert_equal(self, a: Operand, b: Operand) -> None:
        self.enforce(as_lc(a) - b, 1, 0)

    def assert_boolean(self, x: Operand) -> None:
        x = as_lc(x)
        self.enforce(x, x - 1, 0)

    def bits(self, x: Operand, n: int) -> List[LinearCombination]:
        """Little-endian decomposition of ``x`` into ``n`` boolean variables."""
        if not 0 < n <= MAX_COMPARATOR_BITS + 1:
            raise ValueError(f"cannot decompose into {n} bits")
        value = self.evaluate(x)
        out = []
        packed: Dict[int, int] = {}
        for i in range(n):
            bit = self.alloc((value >> i) & 1)
            self.assert_boolean(bit)
            out.append(bit)
            packed[len(self.values) - 1] = 1 << i
        self.assert_equal(LinearCombination(packed), x)
        return out

    def less_than(self, a: Operand, b: Operand, n: int) -> LinearCombination:
        """
        1 if a < b else 0, for a and b already constrained below 2^n.

        circomlib LessThan: out = 1 - bit_n(a + 2^n - b).
        """
        if n > MAX_COMPARATOR_BITS:
            raise ValueError(f"comparator width {n} too large")
        bits = self.bits(as_lc(a) + (1 << n) - b, n + 1)
        return 1 - bits[n]

    def greater_eq(self, a: Operand, b: Operand, n: int) -> LinearCombination:
        return 1 - self.less_than(a, b, n)

    def is_zero(self, x: Operand) -> LinearCombination:
        value = self.evaluate(x)
        inverse = self.alloc(pow(value, -1, _P) if value else 0)
        out = self.alloc(0 if value else 1)
        self.enforce(x, inverse, 1 - out)
        self.enforce(x, out, 0)
        return out

    def and_all(self, bits: Sequence[Operand]) -> LinearCombination:
        """Product of boolean operands."""
        result = as_lc(bits[0])
        for bit in bits[1:]:
            result = self.mul(result, bit)
        return result

    def lookup(self, index: Operand, table: Sequence[int]) -> LinearCombination:
        """``table[index]``; 0 when index is outside the table."""
        result = LinearCombination()
        for position, entry in enumerate(table):
            result = result + self.is_zero(as_lc(index) - position) * entry
        return result


def pack(fields: Sequence[Tuple[Operand, int]]) -> Operand:
    """
    Concatenate (value, width) pairs little-endian into one element.

    Works on plain integers and on linear combinations alike, so native
    hashing and in-circuit hashing share one layout. Integer results are
    exact; reduce them mod r before hashing.
    """
    total: Operand = 0
    shift = 0
    for value, width in fields:
        total = total + value * (1 << shift)
        shift += width
    if shift > MAX_COMPARATOR_BITS + 1:
        raise ValueError(f"packed width {shift} exceeds a field element")
    return total


def _field_value(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"witness values must be integers, got {type(value).__name__}")
    return value % _P
